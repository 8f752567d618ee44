"""Upload ingestion.

Uploads happen in two steps. ``stage`` streams each multipart part into
the staging directory without touching the folder tree. ``finalize`` then
maps every staged item's relative path onto folders (creating missing
ones), moves the bytes under a collision-proof disk name and records the
file.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Protocol

import aiofiles
from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.core.path_mapper import split_relative
from tagbrowser.db.exceptions import DuplicateRecordError, RecordNotFoundError
from tagbrowser.db.repositories import file_repo, folder_repo, tag_repo
from tagbrowser.services import disk
from tagbrowser.services.context import StorageContext
from tagbrowser.services.folder_chain import FolderChainResolver
from tagbrowser.services.reconciler import guess_mime_type

logger = logging.getLogger(__name__)


class UploadTooLargeError(ValueError):
    """Raised when a single uploaded file exceeds the configured limit."""

    pass


class UploadPart(Protocol):
    """What ``stage`` needs from a multipart part (Starlette's UploadFile)."""

    filename: str | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass
class StagedUpload:
    relative_path: str
    byte_size: int
    staging_path: str


async def stage(part: UploadPart, staging_dir: str, max_bytes: int, chunk_size: int = 1024 * 1024) -> StagedUpload:
    """Stream one part to the staging directory."""
    relative_path = part.filename or ""
    # Reject bad paths before writing anything
    split_relative(relative_path)

    await disk.ensure_dir(staging_dir)
    staging_path = os.path.join(staging_dir, f"{uuid.uuid4().hex}.part")
    written = 0
    try:
        async with aiofiles.open(staging_path, "wb") as out:
            while True:
                chunk = await part.read(chunk_size)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLargeError(f"{relative_path} exceeds {max_bytes} bytes")
                await out.write(chunk)
    except Exception:
        await disk.unlink(staging_path)
        raise

    logger.debug("Staged %s (%d bytes) at %s", relative_path, written, staging_path)
    return StagedUpload(relative_path, written, staging_path)


async def stage_all(
    parts: list[UploadPart], staging_dir: str, max_bytes: int, chunk_size: int = 1024 * 1024
) -> list[StagedUpload]:
    """Stage every part; on failure nothing staged so far is left behind."""
    staged: list[StagedUpload] = []
    try:
        for part in parts:
            staged.append(await stage(part, staging_dir, max_bytes, chunk_size))
    except Exception:
        await discard(staged)
        raise
    return staged


async def discard(staged: list[StagedUpload]) -> None:
    for item in staged:
        await disk.unlink(item.staging_path)


def disk_name(filename: str) -> str:
    """Stored name of an upload; the prefix keeps equal names apart."""
    return f"{uuid.uuid4().hex[:12]}_{filename}"


async def finalize(
    db: AsyncSession,
    ctx: StorageContext,
    folder_id: int | None,
    staged: list[StagedUpload],
    tag_ids: list[int] | None = None,
) -> list[int]:
    """Place staged uploads below ``folder_id`` (the root when None).

    Each item is committed on its own; returns the new file ids in order.
    """
    file_ids: list[int] = []
    try:
        if folder_id is None:
            base = await folder_repo.ensure_root_folder(db)
        else:
            base = await folder_repo.get_folder_by_id(db, folder_id)
            if base is None:
                raise RecordNotFoundError(f"Folder {folder_id} not found")
        base_id, base_path = base.id, base.full_path
        resolver = FolderChainResolver(db, ctx.mapper)

        for item in staged:
            segments = split_relative(item.relative_path)
            directories, filename = segments[:-1], segments[-1]
            target_id, target_path = await resolver.resolve(base_id, base_path, directories)

            target_dir = await disk.ensure_dir(ctx.mapper.to_physical(target_path))
            destination = os.path.join(target_dir, disk_name(filename))
            await disk.move(item.staging_path, destination)

            file_id = await _record(db, target_id, filename, destination, item.byte_size)
            if tag_ids:
                await tag_repo.set_file_tags(db, file_id, tag_ids)
            await db.commit()
            file_ids.append(file_id)
            logger.info("Stored upload %s at %s", item.relative_path, destination)
    except Exception:
        await discard(staged[len(file_ids):])
        raise
    return file_ids


async def _record(db: AsyncSession, folder_id: int, name: str, storage_path: str, size: int) -> int:
    try:
        file = await file_repo.create_file(db, folder_id, name, storage_path, size, guess_mime_type(name))
        return file.id
    except DuplicateRecordError:
        # A reconcile pass found the moved file first; give it the display name
        await db.rollback()
        existing = await file_repo.get_file_by_storage_path(db, storage_path)
        if existing is None:
            raise
        await file_repo.update_file(db, existing.id, {"name": name, "mime_type": guess_mime_type(name)})
        return existing.id
