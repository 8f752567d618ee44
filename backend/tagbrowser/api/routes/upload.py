"""Upload endpoint.

Browsers send directory uploads as one part per file whose filename is the
path relative to the picked directory (``holiday/day1/img.jpg``).
"""

import logging

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from tagbrowser.api.dependencies import DbSession, Storage
from tagbrowser.config import settings
from tagbrowser.db.repositories import folder_repo, tag_repo
from tagbrowser.models.envelope import success_response
from tagbrowser.models.file import UploadResult
from tagbrowser.models.tag import TagOut
from tagbrowser.services import tag_service, upload_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def upload_files(
    db: DbSession,
    storage: Storage,
    files: list[UploadFile] = File(..., description="Files; filenames may carry relative paths"),
    folder_id: int | None = Form(None),
    tag_slugs: str | None = Form(None, description="Comma-separated slugs of existing tags"),
    new_tags: str | None = Form(None, description="Comma-separated names of tags to create or reuse"),
) -> dict:
    """Store the uploaded files below ``folder_id`` (the root when omitted) and tag them."""
    if folder_id is not None and await folder_repo.get_folder_by_id(db, folder_id) is None:
        raise HTTPException(status_code=404, detail="Folder not found")

    tags = await tag_repo.get_tags_by_slugs(db, tag_service.parse_list(tag_slugs))
    created = []
    for name in tag_service.parse_list(new_tags):
        tag, was_created = await tag_service.get_or_create_tag(db, name)
        tags.append(tag)
        if was_created:
            created.append(tag)
    await db.commit()
    tag_ids = list(dict.fromkeys(t.id for t in tags))

    staged = await upload_service.stage_all(
        files,
        settings.staging_dir,
        settings.max_upload_size_mb * 1024 * 1024,
        settings.upload_chunk_size,
    )
    file_ids = await upload_service.finalize(db, storage, folder_id, staged, tag_ids)
    logger.info("Upload of %d files into folder %s finished", len(file_ids), folder_id or "root")

    result = UploadResult(
        ok=True,
        file_ids=file_ids,
        created_tags=[TagOut.model_validate(t) for t in created],
    )
    return success_response(result.model_dump(), count=len(file_ids))
