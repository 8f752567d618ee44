"""Folder and file listings.

Every listing queues a reconciliation pass for the folder being looked at
and answers straight away from the records it has. Rows whose disk
counterpart is already gone are left out of the answer and queued for
removal.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.core.path_mapper import ROOT_FULL_PATH
from tagbrowser.db.exceptions import RecordNotFoundError
from tagbrowser.db.models import File, Folder, Tag
from tagbrowser.db.repositories import file_repo, folder_repo, tag_repo
from tagbrowser.services import cleanup, disk
from tagbrowser.services.context import StorageContext
from tagbrowser.services.reconciler import Reconciler

logger = logging.getLogger(__name__)


@dataclass
class FolderRow:
    folder: Folder
    has_children: bool
    tags: list[Tag] = field(default_factory=list)


@dataclass
class FileRow:
    file: File
    tags: list[Tag] = field(default_factory=list)


async def _resolve_folder(db: AsyncSession, folder_id: int | None) -> tuple[int | None, str]:
    if folder_id is None:
        root = await folder_repo.get_root_folder(db)
        return (root.id, root.full_path) if root else (None, ROOT_FULL_PATH)
    folder = await folder_repo.get_folder_by_id(db, folder_id)
    if folder is None:
        raise RecordNotFoundError(f"Folder {folder_id} not found")
    return folder.id, folder.full_path


async def list_child_folders(db: AsyncSession, ctx: StorageContext, parent_id: int | None) -> list[FolderRow]:
    """Children of ``parent_id`` (or the parentless root when None)."""
    sync_id, sync_path = await _resolve_folder(db, parent_id)
    Reconciler(ctx).schedule_sync(sync_id, sync_path)

    rows = await folder_repo.list_folders_by_parent(db, parent_id)
    present: list[tuple[Folder, bool]] = []
    for folder, has_children in rows:
        # The root record is never dropped; its directory is recreated at startup
        if folder.parent_id is None or await disk.is_regular_dir(ctx.mapper.to_physical(folder.full_path)):
            present.append((folder, has_children))
        else:
            logger.info("Folder %s missing on disk, hiding it", folder.full_path)
            cleanup.schedule_folder_removal(ctx, folder.id)

    tags = await tag_repo.tags_by_folder(db, [f.id for f, _ in present])
    return [FolderRow(folder, has_children, tags.get(folder.id, [])) for folder, has_children in present]


async def list_folder_files(
    db: AsyncSession,
    ctx: StorageContext,
    folder_id: int | None,
    search: str | None = None,
    tag_slugs: list[str] | None = None,
) -> list[FileRow]:
    """Files of a folder (the root when None), filtered by name and tags."""
    resolved_id, full_path = await _resolve_folder(db, folder_id)
    Reconciler(ctx).schedule_sync(resolved_id, full_path)
    if resolved_id is None:
        return []

    present: list[File] = []
    for file in await file_repo.search_files(db, resolved_id, search, tag_slugs):
        if await disk.is_regular_file(file.storage_path):
            present.append(file)
        else:
            logger.info("File %s missing on disk, hiding it", file.storage_path)
            cleanup.schedule_file_removal(ctx, file.id)

    tags = await tag_repo.tags_by_file(db, [f.id for f in present])
    return [FileRow(file, tags.get(file.id, [])) for file in present]
