"""Map the directory part of an uploaded item's relative path to folders.

``holiday/day1/img.jpg`` uploaded into ``/root/photos`` ends up in
``/root/photos/holiday/day1``; missing links of that chain are created as
records and directories on the way down.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.core.path_mapper import PathMapper, child_path
from tagbrowser.db.exceptions import DuplicateRecordError
from tagbrowser.db.repositories import folder_repo
from tagbrowser.services import disk

logger = logging.getLogger(__name__)


class FolderChainResolver:
    """Looks up or creates nested folders; remembers what it resolved."""

    def __init__(self, db: AsyncSession, mapper: PathMapper) -> None:
        self._db = db
        self._mapper = mapper
        self._resolved: dict[str, int] = {}

    async def resolve(self, base_id: int, base_path: str, segments: list[str]) -> tuple[int, str]:
        """Walk ``segments`` below the base folder and return the deepest folder."""
        current_id, current_path = base_id, base_path
        for segment in segments:
            path = child_path(current_path, segment)
            folder_id = self._resolved.get(path)
            if folder_id is None:
                folder_id = await self._get_or_create(current_id, path, segment)
                self._resolved[path] = folder_id
            current_id, current_path = folder_id, path
        return current_id, current_path

    async def _get_or_create(self, parent_id: int, path: str, name: str) -> int:
        folder = await folder_repo.get_child_by_name(self._db, parent_id, name)
        if folder is None:
            try:
                folder = await folder_repo.create_folder(self._db, name, parent_id, path)
                await self._db.commit()
                logger.info("Created folder %s for upload", path)
            except DuplicateRecordError:
                # The reconciler got there first
                await self._db.rollback()
                folder = await folder_repo.get_folder_by_path(self._db, path)
                if folder is None:
                    raise
        await disk.ensure_dir(self._mapper.to_physical(folder.full_path))
        return folder.id
