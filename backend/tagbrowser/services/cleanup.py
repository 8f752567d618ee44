"""Background jobs that bring disk and database back in line.

Record cleanups are delete-if-exists and look at the disk once more right
before deleting: a record whose file came back in the meantime is kept.
Disk-side jobs carry out the physical half of user deletes and renames.
"""

import logging
import os

from tagbrowser.core.job_queue import Job
from tagbrowser.db.repositories import file_repo, folder_repo
from tagbrowser.services import disk
from tagbrowser.services.context import StorageContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stale records
# ---------------------------------------------------------------------------


async def remove_stale_file(ctx: StorageContext, file_id: int) -> bool:
    """Delete a file record whose physical file is gone. True if deleted."""
    async with ctx.session_factory() as db:
        file = await file_repo.get_file_by_id(db, file_id)
        if file is None:
            return False
        if await disk.is_regular_file(file.storage_path):
            logger.info("File %s is back at %s, keeping its record", file_id, file.storage_path)
            return False
        deleted = await file_repo.delete_file_cascade(db, file_id)
        await db.commit()
    if deleted:
        logger.info("Removed record of missing file %s (%s)", file_id, file.storage_path)
    return deleted


async def remove_stale_folder(ctx: StorageContext, folder_id: int) -> bool:
    """Delete a folder record (and everything under it) whose directory is gone."""
    async with ctx.session_factory() as db:
        folder = await folder_repo.get_folder_by_id(db, folder_id)
        if folder is None:
            return False
        if folder.parent_id is None:
            logger.warning("Refusing to remove the root folder record %s", folder.full_path)
            return False
        if await disk.is_regular_dir(ctx.mapper.to_physical(folder.full_path)):
            logger.info("Folder %s is back on disk, keeping its record", folder.full_path)
            return False
        deleted = await folder_repo.delete_folder_cascade(db, folder_id)
        await db.commit()
    if deleted:
        logger.info("Removed record of missing folder %s", folder.full_path)
    return deleted


def stale_file_job(ctx: StorageContext, file_id: int) -> Job:
    async def _remove_stale_file() -> None:
        await remove_stale_file(ctx, file_id)

    return _remove_stale_file


def stale_folder_job(ctx: StorageContext, folder_id: int) -> Job:
    async def _remove_stale_folder() -> None:
        await remove_stale_folder(ctx, folder_id)

    return _remove_stale_folder


def schedule_file_removal(ctx: StorageContext, file_id: int) -> None:
    ctx.queue.enqueue(stale_file_job(ctx, file_id), label=f"remove-file-record:{file_id}")


def schedule_folder_removal(ctx: StorageContext, folder_id: int) -> None:
    ctx.queue.enqueue(stale_folder_job(ctx, folder_id), label=f"remove-folder-record:{folder_id}")


# ---------------------------------------------------------------------------
# Physical side of user mutations
# ---------------------------------------------------------------------------


def unlink_job(path: str) -> Job:
    async def _unlink() -> None:
        if await disk.unlink(path):
            logger.info("Deleted file %s", path)

    return _unlink


def remove_tree_job(path: str) -> Job:
    async def _remove_tree() -> None:
        if await disk.remove_tree(path):
            logger.info("Deleted directory %s", path)

    return _remove_tree


async def restore_storage_paths(ctx: StorageContext, old_path: str, new_path: str) -> int:
    """Point the files of a renamed folder back at the directory they are still in."""
    async with ctx.session_factory() as db:
        subtree = [f.id for f in await folder_repo.list_folders_under(db, ctx.mapper.to_logical(new_path))]
        restored = await file_repo.rewrite_storage_prefix(db, subtree, new_path + os.sep, old_path + os.sep)
        await db.commit()
    return restored


def rename_directory_job(ctx: StorageContext, old_path: str, new_path: str) -> Job:
    """Physical half of a folder rename; the records are already updated.

    When the directory cannot be moved, file records go back to their old
    storage paths so they keep matching the bytes on disk.
    """

    async def _rename_directory() -> None:
        if not await disk.is_dir(old_path):
            logger.warning("Cannot rename %s: directory is missing", old_path)
        elif await disk.exists(new_path):
            logger.warning("Cannot rename %s: %s already exists", old_path, new_path)
        else:
            await disk.rename(old_path, new_path)
            logger.info("Renamed directory %s -> %s", old_path, new_path)
            return
        restored = await restore_storage_paths(ctx, old_path, new_path)
        if restored:
            logger.warning("Restored %d file paths under %s", restored, old_path)

    return _rename_directory


def physical_name(display_name: str, current_path: str) -> str:
    """Disk name for a renamed file, keeping the old extension if none is given."""
    name = display_name.replace("/", "_").replace("\\", "_").replace("\x00", "")
    if not os.path.splitext(name)[1]:
        name += os.path.splitext(current_path)[1]
    return name


def rename_stored_file_job(ctx: StorageContext, file_id: int, display_name: str) -> Job:
    """Rename a file on disk after its display name changed.

    Never overwrites: when the target exists the file stays where it is.
    """

    async def _rename_stored_file() -> None:
        async with ctx.session_factory() as db:
            file = await file_repo.get_file_by_id(db, file_id)
            if file is None or not await disk.is_file(file.storage_path):
                return
            old_path = file.storage_path
            new_path = os.path.join(os.path.dirname(old_path), physical_name(display_name, old_path))
            if new_path == old_path:
                return
            if await disk.exists(new_path):
                logger.warning("Target %s exists, keeping %s", new_path, old_path)
                return
            await disk.rename(old_path, new_path)
            await file_repo.update_file(db, file_id, {"storage_path": new_path})
            await db.commit()
        logger.info("Renamed file %s -> %s", old_path, new_path)

    return _rename_stored_file
