"""Folder repository."""

import logging

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from tagbrowser.core.path_mapper import ROOT_FULL_PATH, ROOT_NAME, child_path, parent_path
from tagbrowser.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError
from tagbrowser.db.models import File, FileTag, Folder, FolderTag

logger = logging.getLogger(__name__)


def _under(prefix: str):
    """Filter matching ``prefix`` itself and every folder below it."""
    prefix = prefix.rstrip("/")
    return or_(
        Folder.full_path == prefix,
        Folder.full_path.startswith(prefix + "/", autoescape=True),
    )


async def get_folder_by_id(db: AsyncSession, folder_id: int) -> Folder | None:
    """Get a single folder by ID."""
    try:
        result = await db.execute(select(Folder).where(Folder.id == folder_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_folder_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to get folder: {e}") from e


async def get_folder_by_path(db: AsyncSession, full_path: str) -> Folder | None:
    """Get a single folder by its logical path."""
    try:
        result = await db.execute(select(Folder).where(Folder.full_path == full_path))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_folder_by_path: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting folder {full_path}: {e}")
        raise DatabaseError(f"Failed to get folder: {e}") from e


async def get_root_folder(db: AsyncSession) -> Folder | None:
    """Get the parentless folder, lowest id first."""
    try:
        result = await db.execute(
            select(Folder).where(Folder.parent_id.is_(None)).order_by(Folder.id).limit(1)
        )
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_root_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting root folder: {e}")
        raise DatabaseError(f"Failed to get root folder: {e}") from e


async def ensure_root_folder(db: AsyncSession) -> Folder:
    """Return the root folder, inserting it on first use."""
    root = await get_root_folder(db)
    if root is not None:
        return root
    logger.info("Creating root folder %s", ROOT_FULL_PATH)
    return await create_folder(db, ROOT_NAME, None, ROOT_FULL_PATH)


async def get_child_by_name(db: AsyncSession, parent_id: int, name: str) -> Folder | None:
    """Get the direct child of ``parent_id`` called ``name``."""
    try:
        result = await db.execute(
            select(Folder).where(Folder.parent_id == parent_id, Folder.name == name)
        )
        return result.scalars().first()
    except OperationalError as e:
        logger.error(f"Database connection error in get_child_by_name: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting child {name} of folder {parent_id}: {e}")
        raise DatabaseError(f"Failed to get folder: {e}") from e


async def list_folders_by_parent(db: AsyncSession, parent_id: int | None) -> list[tuple[Folder, bool]]:
    """List child folders ordered by name, each paired with has_children.

    ``parent_id=None`` lists the parentless folders (just the root).
    """
    child = aliased(Folder)
    has_children = exists().where(child.parent_id == Folder.id).label("has_children")
    condition = Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id
    try:
        result = await db.execute(
            select(Folder, has_children).where(condition).order_by(Folder.name)
        )
        return [(folder, bool(flag)) for folder, flag in result.all()]
    except OperationalError as e:
        logger.error(f"Database connection error in list_folders_by_parent: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing folders of parent {parent_id}: {e}")
        raise DatabaseError(f"Failed to list folders: {e}") from e


async def list_folders_under(db: AsyncSession, prefix: str) -> list[Folder]:
    """List ``prefix`` and all of its descendant folders."""
    try:
        result = await db.execute(select(Folder).where(_under(prefix)).order_by(Folder.full_path))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in list_folders_under: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing folders under {prefix}: {e}")
        raise DatabaseError(f"Failed to list folders: {e}") from e


async def create_folder(db: AsyncSession, name: str, parent_id: int | None, full_path: str) -> Folder:
    """Insert a folder record."""
    try:
        folder = Folder(name=name, parent_id=parent_id, full_path=full_path)
        db.add(folder)
        await db.flush()
        await db.refresh(folder)
        return folder
    except IntegrityError as e:
        logger.error(f"Duplicate folder {full_path}: {e}")
        raise DuplicateRecordError(f"Folder {full_path} already exists") from e
    except OperationalError as e:
        logger.error(f"Database connection error in create_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating folder {full_path}: {e}")
        raise DatabaseError(f"Failed to create folder: {e}") from e


async def rename_folder(db: AsyncSession, folder_id: int, new_name: str) -> tuple[Folder, str] | None:
    """Rename a folder and rewrite the paths of all its descendants.

    Returns the updated folder and its previous full path, or None if the
    folder does not exist.
    """
    try:
        folder = await get_folder_by_id(db, folder_id)
        if folder is None:
            return None

        old_full = folder.full_path
        parent_full = parent_path(old_full) or ""
        new_full = child_path(parent_full, new_name)
        if new_full == old_full:
            return folder, old_full
        if await get_folder_by_path(db, new_full) is not None:
            raise DuplicateRecordError(f"Folder {new_full} already exists")

        for node in await list_folders_under(db, old_full):
            node.full_path = new_full + node.full_path[len(old_full):]
        folder.name = new_name
        await db.flush()
        await db.refresh(folder)
        return folder, old_full
    except DatabaseError:
        raise
    except IntegrityError as e:
        logger.error(f"Duplicate folder path renaming {folder_id}: {e}")
        raise DuplicateRecordError(f"Folder named {new_name} already exists") from e
    except OperationalError as e:
        logger.error(f"Database connection error in rename_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error renaming folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to rename folder: {e}") from e


async def delete_folder_cascade(db: AsyncSession, folder_id: int) -> bool:
    """Delete a folder, its descendants, their files and tag rows.

    Returns False when the folder is already gone, so repeated calls are
    harmless.
    """
    try:
        folder = await get_folder_by_id(db, folder_id)
        if folder is None:
            return False

        folder_ids = list(
            (await db.execute(select(Folder.id).where(_under(folder.full_path)))).scalars().all()
        )
        file_ids = list(
            (await db.execute(select(File.id).where(File.folder_id.in_(folder_ids)))).scalars().all()
        )
        if file_ids:
            await db.execute(delete(FileTag).where(FileTag.file_id.in_(file_ids)))
            await db.execute(delete(File).where(File.id.in_(file_ids)))
        await db.execute(delete(FolderTag).where(FolderTag.folder_id.in_(folder_ids)))
        await db.execute(delete(Folder).where(Folder.id.in_(folder_ids)))
        await db.flush()
        return True
    except OperationalError as e:
        logger.error(f"Database connection error in delete_folder_cascade: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to delete folder: {e}") from e
