"""User-driven folder mutations.

Records change synchronously and are committed before the physical side
(mkdir aside) is queued, so background jobs see the new state.
"""

import logging
import os

from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.core.path_mapper import InvalidPathError, child_path, parent_path, split_relative
from tagbrowser.db.exceptions import DuplicateRecordError, RecordNotFoundError
from tagbrowser.db.models import Folder
from tagbrowser.db.repositories import file_repo, folder_repo
from tagbrowser.services import cleanup, disk
from tagbrowser.services.context import StorageContext

logger = logging.getLogger(__name__)


def validate_folder_name(name: str) -> str:
    """A folder name is exactly one safe path segment."""
    segments = split_relative(name or "")
    if len(segments) != 1:
        raise InvalidPathError(f"Folder name must not contain separators: {name!r}")
    return segments[0]


async def create_folder(db: AsyncSession, ctx: StorageContext, name: str, parent_id: int | None) -> Folder:
    name = validate_folder_name(name)
    if parent_id is None:
        parent = await folder_repo.ensure_root_folder(db)
    else:
        parent = await folder_repo.get_folder_by_id(db, parent_id)
        if parent is None:
            raise RecordNotFoundError(f"Parent folder {parent_id} not found")

    folder = await folder_repo.create_folder(db, name, parent.id, child_path(parent.full_path, name))
    await db.commit()
    await disk.ensure_dir(ctx.mapper.to_physical(folder.full_path))
    logger.info("Created folder %s", folder.full_path)
    return folder


async def rename_folder(db: AsyncSession, ctx: StorageContext, folder_id: int, new_name: str) -> Folder:
    """Rename a folder; the directory itself is renamed by a queued job."""
    new_name = validate_folder_name(new_name)
    folder = await folder_repo.get_folder_by_id(db, folder_id)
    if folder is None:
        raise RecordNotFoundError(f"Folder {folder_id} not found")
    if folder.parent_id is None:
        raise InvalidPathError("The root folder cannot be renamed")
    target = child_path(parent_path(folder.full_path) or "", new_name)
    if target != folder.full_path and await disk.exists(ctx.mapper.to_physical(target)):
        # An untracked directory already sits there; never merge into it
        raise DuplicateRecordError(f"{target} already exists on disk")

    result = await folder_repo.rename_folder(db, folder_id, new_name)
    if result is None:
        raise RecordNotFoundError(f"Folder {folder_id} not found")
    folder, old_full = result
    if folder.full_path == old_full:
        return folder

    old_physical = ctx.mapper.to_physical(old_full)
    new_physical = ctx.mapper.to_physical(folder.full_path)
    subtree = [f.id for f in await folder_repo.list_folders_under(db, folder.full_path)]
    moved = await file_repo.rewrite_storage_prefix(db, subtree, old_physical + os.sep, new_physical + os.sep)
    await db.commit()

    ctx.queue.enqueue(
        cleanup.rename_directory_job(ctx, old_physical, new_physical),
        label=f"rename-dir:{old_full}",
    )
    logger.info("Renamed folder %s -> %s (%d file paths moved)", old_full, folder.full_path, moved)
    return folder


async def delete_folder(db: AsyncSession, ctx: StorageContext, folder_id: int) -> None:
    """Delete the subtree's records now and its directory later."""
    folder = await folder_repo.get_folder_by_id(db, folder_id)
    if folder is None:
        raise RecordNotFoundError(f"Folder {folder_id} not found")
    if folder.parent_id is None:
        raise InvalidPathError("The root folder cannot be deleted")

    full_path = folder.full_path
    await folder_repo.delete_folder_cascade(db, folder_id)
    await db.commit()
    physical = ctx.mapper.to_physical(full_path)
    ctx.queue.enqueue(cleanup.remove_tree_job(physical), label=f"rm-tree:{full_path}")
    logger.info("Deleted folder %s", full_path)
