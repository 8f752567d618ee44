"""Disk-to-database reconciliation.

One pass over a folder subtree:

1. bail out if the folder's directory does not exist
2. load the known folders (the folder and everything under it) and their files
3. walk the directory tree
4. insert folders found on disk, shallowest first, so every parent exists
   before its children
5. insert files found on disk into their containing folder
6. schedule removal of known files that were not seen
7. schedule removal of known folders that were not seen

Insertions happen inside the pass; removals are queued as separate jobs.
The disk is only ever read here.
"""

import logging
import mimetypes
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.core.job_queue import Job
from tagbrowser.core.path_mapper import ROOT_FULL_PATH, depth, is_within, name_of, parent_path
from tagbrowser.db.exceptions import DuplicateRecordError
from tagbrowser.db.repositories import file_repo, folder_repo
from tagbrowser.services import cleanup, disk
from tagbrowser.services.context import StorageContext

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(filename: str) -> str:
    mime, _ = mimetypes.guess_type(filename)
    return mime or DEFAULT_MIME_TYPE


@dataclass
class SyncReport:
    """What one reconciliation pass did."""

    full_path: str
    folders_added: int = 0
    files_added: int = 0
    files_scheduled_for_removal: int = 0
    folders_scheduled_for_removal: int = 0
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(
            self.folders_added
            or self.files_added
            or self.files_scheduled_for_removal
            or self.folders_scheduled_for_removal
        )


class Reconciler:
    """Keeps the folder/file records of a subtree in line with the disk."""

    def __init__(self, ctx: StorageContext) -> None:
        self._ctx = ctx

    async def sync(self, folder_id: int | None, folder_full_path: str) -> SyncReport:
        """Run one reconciliation pass over ``folder_full_path``.

        ``folder_id`` identifies the folder for logging only; an unknown or
        missing id simply means the subtree has no known records yet.
        """
        mapper = self._ctx.mapper
        folder_full_path = folder_full_path.rstrip("/") or "/"
        report = SyncReport(folder_full_path)
        base = mapper.to_physical(folder_full_path)

        if not await disk.is_dir(base):
            logger.debug("Nothing to reconcile for folder %s, %s is not on disk", folder_id, base)
            return report

        async with self._ctx.session_factory() as db:
            # Plain tuples: inserts below commit or roll back, which expires ORM rows
            known_folders = [
                (f.id, f.full_path, f.parent_id)
                for f in await folder_repo.list_folders_under(db, folder_full_path)
            ]
            known: dict[str, int] = {path: fid for fid, path, _ in known_folders}
            path_by_id = {fid: path for fid, path, _ in known_folders}
            known_files = [
                (f.id, f.folder_id, f.storage_path)
                for f in await file_repo.list_files_in_folders(db, list(known.values()))
            ]
            known_paths = {path for _, _, path in known_files}

            tree = await disk.walk(mapper, base)
            seen_dirs = set(tree.directories)
            seen_files = set(tree.files)

            for full_path in sorted(seen_dirs - known.keys(), key=depth):
                if await self._insert_folder(db, full_path, known):
                    report.folders_added += 1
                else:
                    report.skipped += 1

            for storage_path in sorted(seen_files - known_paths):
                if await self._insert_file(db, storage_path, known):
                    report.files_added += 1
                else:
                    report.skipped += 1

        def _hidden(full_path: str) -> bool:
            # Below a directory the walk could not list
            return any(is_within(full_path, u) for u in tree.unreadable)

        for file_id, owner_id, storage_path in known_files:
            if storage_path in seen_files:
                continue
            owner = path_by_id.get(owner_id)
            if owner is not None and _hidden(owner):
                continue
            cleanup.schedule_file_removal(self._ctx, file_id)
            report.files_scheduled_for_removal += 1

        for fid, full_path, parent_id in known_folders:
            if full_path in seen_dirs or parent_id is None or _hidden(full_path):
                continue
            cleanup.schedule_folder_removal(self._ctx, fid)
            report.folders_scheduled_for_removal += 1

        if report.changed:
            logger.info(
                "Reconciled %s: +%d folders, +%d files, %d files and %d folders scheduled for removal",
                folder_full_path,
                report.folders_added,
                report.files_added,
                report.files_scheduled_for_removal,
                report.folders_scheduled_for_removal,
            )
        return report

    async def _parent_id(self, db: AsyncSession, full_path: str, known: dict[str, int]) -> tuple[bool, int | None]:
        """Resolve the parent id of ``full_path``; first item is False if impossible."""
        parent = parent_path(full_path)
        if parent is None:
            # Only the root may be parentless
            return full_path == ROOT_FULL_PATH, None
        if parent in known:
            return True, known[parent]
        # Only reachable for the pass's own base folder
        record = await folder_repo.get_folder_by_path(db, parent)
        if record is None:
            return False, None
        known[parent] = record.id
        return True, record.id

    async def _insert_folder(self, db: AsyncSession, full_path: str, known: dict[str, int]) -> bool:
        ok, parent_id = await self._parent_id(db, full_path, known)
        if not ok:
            logger.warning("No parent record for discovered folder %s, skipping", full_path)
            return False
        try:
            folder = await folder_repo.create_folder(db, name_of(full_path), parent_id, full_path)
            await db.commit()
        except DuplicateRecordError:
            # Created concurrently by a request; adopt the existing record
            await db.rollback()
            existing = await folder_repo.get_folder_by_path(db, full_path)
            if existing is None:
                raise
            known[full_path] = existing.id
            return False
        known[full_path] = folder.id
        logger.debug("Discovered folder %s", full_path)
        return True

    async def _insert_file(self, db: AsyncSession, storage_path: str, known: dict[str, int]) -> bool:
        owner = self._ctx.mapper.folder_of(storage_path)
        folder_id = known.get(owner)
        if folder_id is None:
            logger.warning("No folder record for %s (folder %s), skipping", storage_path, owner)
            return False
        try:
            size = await disk.file_size(storage_path)
        except OSError as e:
            logger.warning("Could not stat discovered file %s: %s", storage_path, e)
            return False
        name = name_of(self._ctx.mapper.to_logical(storage_path))
        try:
            await file_repo.create_file(db, folder_id, name, storage_path, size, guess_mime_type(name))
            await db.commit()
        except DuplicateRecordError:
            await db.rollback()
            return False
        logger.debug("Discovered file %s", storage_path)
        return True

    def sync_job(self, folder_id: int | None, folder_full_path: str) -> Job:
        async def _reconcile() -> None:
            await self.sync(folder_id, folder_full_path)

        return _reconcile

    def schedule_sync(self, folder_id: int | None, folder_full_path: str) -> None:
        """Queue a pass; listings call this and return without waiting."""
        self._ctx.queue.enqueue(self.sync_job(folder_id, folder_full_path), label=f"reconcile:{folder_full_path}")
