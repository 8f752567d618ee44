"""User-driven file mutations."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.core.path_mapper import InvalidPathError
from tagbrowser.db.exceptions import RecordNotFoundError
from tagbrowser.db.models import File
from tagbrowser.db.repositories import file_repo
from tagbrowser.services import cleanup
from tagbrowser.services.context import StorageContext

logger = logging.getLogger(__name__)


def validate_display_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise InvalidPathError("File name must not be empty")
    if "\x00" in name or "/" in name or "\\" in name:
        raise InvalidPathError(f"File name must not contain separators: {name!r}")
    if name in (".", ".."):
        raise InvalidPathError(f"Illegal file name: {name!r}")
    return name


async def rename_file(db: AsyncSession, ctx: StorageContext, file_id: int, new_name: str) -> File:
    """Change the display name; the stored file follows in a queued job."""
    new_name = validate_display_name(new_name)
    file = await file_repo.update_file(db, file_id, {"name": new_name})
    if file is None:
        raise RecordNotFoundError(f"File {file_id} not found")
    await db.commit()
    ctx.queue.enqueue(
        cleanup.rename_stored_file_job(ctx, file_id, new_name),
        label=f"rename-file:{file_id}",
    )
    logger.info("Renamed file %s to %s", file_id, new_name)
    return file


async def delete_file(db: AsyncSession, ctx: StorageContext, file_id: int) -> None:
    file = await file_repo.get_file_by_id(db, file_id)
    if file is None:
        raise RecordNotFoundError(f"File {file_id} not found")
    storage_path = file.storage_path
    await file_repo.delete_file_cascade(db, file_id)
    await db.commit()
    ctx.queue.enqueue(cleanup.unlink_job(storage_path), label=f"unlink:{storage_path}")
    logger.info("Deleted file %s (%s)", file_id, storage_path)
