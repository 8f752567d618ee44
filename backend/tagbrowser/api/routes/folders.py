"""Folder endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from tagbrowser.api.dependencies import DbSession, Storage
from tagbrowser.config import settings
from tagbrowser.core.path_mapper import name_of
from tagbrowser.db.repositories import folder_repo, tag_repo
from tagbrowser.models.envelope import success_response
from tagbrowser.models.folder import FolderCreate, FolderListItem, FolderOut, FolderRename
from tagbrowser.models.tag import TagAssignment, TagOut, TagSelection
from tagbrowser.services import archive, disk, folder_service, listing, tag_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _listing_item(row: listing.FolderRow) -> dict:
    item = FolderListItem(
        **FolderOut.model_validate(row.folder).model_dump(),
        has_children=row.has_children,
        tags=[TagOut.model_validate(t) for t in row.tags],
    )
    return item.model_dump(mode="json")


@router.get("/root")
async def get_root_folder(db: DbSession, storage: Storage) -> dict:
    """Return the root folder, creating its record and directory if needed."""
    root = await folder_repo.ensure_root_folder(db)
    await db.commit()
    await disk.ensure_dir(storage.mapper.to_physical(root.full_path))
    return success_response(FolderOut.model_validate(root).model_dump(mode="json"))


@router.get("")
async def list_folders(
    db: DbSession,
    storage: Storage,
    parent_id: int | None = Query(None, description="Parent folder; omit for the root level"),
) -> dict:
    """List child folders. Folders missing on disk are left out and cleaned up later."""
    rows = await listing.list_child_folders(db, storage, parent_id)
    return success_response([_listing_item(r) for r in rows], count=len(rows))


@router.get("/{folder_id}")
async def get_folder(folder_id: int, db: DbSession) -> dict:
    folder = await folder_repo.get_folder_by_id(db, folder_id)
    if folder is None:
        raise HTTPException(status_code=404, detail="Folder not found")
    return success_response(FolderOut.model_validate(folder).model_dump(mode="json"))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_folder(body: FolderCreate, db: DbSession, storage: Storage) -> dict:
    if body.parent_id is not None and await folder_repo.get_folder_by_id(db, body.parent_id) is None:
        raise HTTPException(status_code=400, detail="Parent folder does not exist")
    folder = await folder_service.create_folder(db, storage, body.name, body.parent_id)
    return success_response(FolderOut.model_validate(folder).model_dump(mode="json"))


@router.patch("/{folder_id}")
async def rename_folder(folder_id: int, body: FolderRename, db: DbSession, storage: Storage) -> dict:
    """Rename a folder. The directory on disk is renamed in the background."""
    folder = await folder_service.rename_folder(db, storage, folder_id, body.name)
    return success_response(FolderOut.model_validate(folder).model_dump(mode="json"))


@router.delete("/{folder_id}")
async def delete_folder(folder_id: int, db: DbSession, storage: Storage) -> dict:
    """Delete a folder subtree. The directory is removed in the background."""
    await folder_service.delete_folder(db, storage, folder_id)
    return success_response({"deleted": True, "id": folder_id})


@router.get("/{folder_id}/download")
async def download_folder(folder_id: int, db: DbSession, storage: Storage) -> FileResponse:
    """Stream the folder's directory as a ZIP archive."""
    folder = await folder_repo.get_folder_by_id(db, folder_id)
    if folder is None:
        raise HTTPException(status_code=404, detail="Folder not found")
    source = storage.mapper.to_physical(folder.full_path)
    if not await disk.is_dir(source):
        raise HTTPException(status_code=404, detail="Folder is missing on disk")

    archive_path = await archive.build_zip(source, settings.staging_dir)
    return FileResponse(
        path=archive_path,
        media_type="application/zip",
        filename=f"{name_of(folder.full_path)}.zip",
        background=BackgroundTask(disk.unlink, archive_path),
    )


@router.get("/{folder_id}/tags")
async def get_folder_tags(folder_id: int, db: DbSession) -> dict:
    """All tags, each flagged with whether the folder carries it."""
    if await folder_repo.get_folder_by_id(db, folder_id) is None:
        raise HTTPException(status_code=404, detail="Folder not found")
    rows = await tag_repo.list_tags_for_folder(db, folder_id)
    data = [
        TagSelection.model_validate(tag).model_copy(update={"selected": selected}).model_dump()
        for tag, selected in rows
    ]
    return success_response(data)


@router.put("/{folder_id}/tags")
async def set_folder_tags(folder_id: int, body: TagAssignment, db: DbSession) -> dict:
    """Replace the folder's tags with ``tag_ids``."""
    if await folder_repo.get_folder_by_id(db, folder_id) is None:
        raise HTTPException(status_code=404, detail="Folder not found")
    tag_ids = await tag_service.resolve_tag_ids(db, body.tag_ids)
    await tag_repo.set_folder_tags(db, folder_id, tag_ids)
    return success_response({"id": folder_id, "tag_ids": tag_ids})
