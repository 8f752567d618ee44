"""File endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import FileResponse

from tagbrowser.api.dependencies import DbSession, Storage
from tagbrowser.db.repositories import file_repo, tag_repo
from tagbrowser.models.envelope import success_response
from tagbrowser.models.file import FileListItem, FileOut, FileRename
from tagbrowser.models.tag import TagAssignment, TagOut, TagSelection
from tagbrowser.services import cleanup, disk, file_service, listing, tag_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_files(
    db: DbSession,
    storage: Storage,
    folder_id: int | None = Query(None, description="Folder to list; omit for the root"),
    search: str | None = Query(None, description="Case-insensitive substring of the name"),
    tags: str | None = Query(None, description="Comma-separated slugs; files must carry all of them"),
) -> dict:
    """List the files of a folder. Files missing on disk are left out and cleaned up later."""
    slugs = tag_service.parse_list(tags)
    rows = await listing.list_folder_files(db, storage, folder_id, search, slugs)
    data = [
        FileListItem(
            **FileOut.model_validate(row.file).model_dump(),
            tags=[TagOut.model_validate(t) for t in row.tags],
        ).model_dump(mode="json")
        for row in rows
    ]
    return success_response(data, count=len(data))


@router.get("/{file_id}")
async def get_file(file_id: int, db: DbSession) -> dict:
    file = await file_repo.get_file_by_id(db, file_id)
    if file is None:
        raise HTTPException(status_code=404, detail="File not found")
    return success_response(FileOut.model_validate(file).model_dump(mode="json"))


@router.patch("/{file_id}")
async def rename_file(file_id: int, body: FileRename, db: DbSession, storage: Storage) -> dict:
    """Change the display name. The stored file is renamed in the background."""
    file = await file_service.rename_file(db, storage, file_id, body.name)
    return success_response(FileOut.model_validate(file).model_dump(mode="json"))


@router.delete("/{file_id}")
async def delete_file(file_id: int, db: DbSession, storage: Storage) -> dict:
    await file_service.delete_file(db, storage, file_id)
    return success_response({"deleted": True, "id": file_id})


@router.get("/{file_id}/download")
async def download_file(file_id: int, db: DbSession, storage: Storage) -> FileResponse:
    """Send the stored file under its display name."""
    file = await file_repo.get_file_by_id(db, file_id)
    if file is None:
        raise HTTPException(status_code=404, detail="File not found")
    if not await disk.is_regular_file(file.storage_path):
        cleanup.schedule_file_removal(storage, file.id)
        raise HTTPException(status_code=404, detail="File is missing on disk")
    return FileResponse(path=file.storage_path, media_type=file.mime_type, filename=file.name)


@router.get("/{file_id}/tags")
async def get_file_tags(file_id: int, db: DbSession) -> dict:
    """All tags, each flagged with whether the file carries it."""
    if await file_repo.get_file_by_id(db, file_id) is None:
        raise HTTPException(status_code=404, detail="File not found")
    rows = await tag_repo.list_tags_for_file(db, file_id)
    data = [
        TagSelection.model_validate(tag).model_copy(update={"selected": selected}).model_dump()
        for tag, selected in rows
    ]
    return success_response(data)


@router.put("/{file_id}/tags")
async def set_file_tags(file_id: int, body: TagAssignment, db: DbSession) -> dict:
    """Replace the file's tags with ``tag_ids``."""
    if await file_repo.get_file_by_id(db, file_id) is None:
        raise HTTPException(status_code=404, detail="File not found")
    tag_ids = await tag_service.resolve_tag_ids(db, body.tag_ids)
    await tag_repo.set_file_tags(db, file_id, tag_ids)
    return success_response({"id": file_id, "tag_ids": tag_ids})
