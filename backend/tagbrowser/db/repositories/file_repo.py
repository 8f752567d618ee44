"""File repository."""

import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError
from tagbrowser.db.models import File, FileTag, Tag

logger = logging.getLogger(__name__)


async def get_file_by_id(db: AsyncSession, file_id: int) -> File | None:
    """Get a single file by ID."""
    try:
        result = await db.execute(select(File).where(File.id == file_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_file_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting file {file_id}: {e}")
        raise DatabaseError(f"Failed to get file: {e}") from e


async def get_file_by_storage_path(db: AsyncSession, storage_path: str) -> File | None:
    try:
        result = await db.execute(select(File).where(File.storage_path == storage_path))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_file_by_storage_path: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting file {storage_path}: {e}")
        raise DatabaseError(f"Failed to get file: {e}") from e


async def list_files_in_folders(db: AsyncSession, folder_ids: list[int]) -> list[File]:
    """List every file owned by any of ``folder_ids``."""
    if not folder_ids:
        return []
    try:
        result = await db.execute(select(File).where(File.folder_id.in_(folder_ids)))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in list_files_in_folders: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing files of {len(folder_ids)} folders: {e}")
        raise DatabaseError(f"Failed to list files: {e}") from e


async def search_files(
    db: AsyncSession,
    folder_id: int,
    search: str | None = None,
    tag_slugs: list[str] | None = None,
) -> list[File]:
    """Files of a folder ordered by name.

    ``search`` is a case-insensitive substring of the display name; a file
    must carry every slug in ``tag_slugs`` to match.
    """
    query = select(File).where(File.folder_id == folder_id)
    if search:
        query = query.where(func.lower(File.name).contains(search.lower(), autoescape=True))
    slugs = sorted({s.lower() for s in tag_slugs or [] if s})
    if slugs:
        tagged = (
            select(FileTag.file_id)
            .join(Tag, Tag.id == FileTag.tag_id)
            .where(Tag.slug.in_(slugs))
            .group_by(FileTag.file_id)
            .having(func.count(func.distinct(Tag.slug)) == len(slugs))
        )
        query = query.where(File.id.in_(tagged))
    try:
        result = await db.execute(query.order_by(File.name, File.id))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in search_files: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error searching files in folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to search files: {e}") from e


async def create_file(
    db: AsyncSession,
    folder_id: int,
    name: str,
    storage_path: str,
    size_bytes: int = 0,
    mime_type: str = "application/octet-stream",
) -> File:
    """Insert a file record."""
    try:
        file = File(
            folder_id=folder_id,
            name=name,
            storage_path=storage_path,
            size_bytes=size_bytes,
            mime_type=mime_type,
        )
        db.add(file)
        await db.flush()
        await db.refresh(file)
        return file
    except IntegrityError as e:
        logger.error(f"Duplicate file {storage_path}: {e}")
        raise DuplicateRecordError(f"File {storage_path} already exists") from e
    except OperationalError as e:
        logger.error(f"Database connection error in create_file: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating file {storage_path}: {e}")
        raise DatabaseError(f"Failed to create file: {e}") from e


async def update_file(db: AsyncSession, file_id: int, updates: dict[str, Any]) -> File | None:
    """Update a file. Returns None if not found."""
    try:
        file = await get_file_by_id(db, file_id)
        if not file:
            return None
        for key, value in updates.items():
            if hasattr(file, key):
                setattr(file, key, value)
        await db.flush()
        await db.refresh(file)
        return file
    except IntegrityError as e:
        logger.error(f"Duplicate storage path updating file {file_id}: {e}")
        raise DuplicateRecordError(f"File {file_id} conflicts with an existing file") from e
    except OperationalError as e:
        logger.error(f"Database connection error in update_file: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error updating file {file_id}: {e}")
        raise DatabaseError(f"Failed to update file: {e}") from e


async def rewrite_storage_prefix(
    db: AsyncSession,
    folder_ids: list[int],
    old_prefix: str,
    new_prefix: str,
) -> int:
    """Move the storage paths of files in ``folder_ids`` to a new directory prefix."""
    files = await list_files_in_folders(db, folder_ids)
    try:
        count = 0
        for file in files:
            if file.storage_path.startswith(old_prefix):
                file.storage_path = new_prefix + file.storage_path[len(old_prefix):]
                count += 1
        await db.flush()
        return count
    except OperationalError as e:
        logger.error(f"Database connection error in rewrite_storage_prefix: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error rewriting storage paths under {old_prefix}: {e}")
        raise DatabaseError(f"Failed to rewrite storage paths: {e}") from e


async def delete_file_cascade(db: AsyncSession, file_id: int) -> bool:
    """Delete a file and its tag rows. Returns True if a row was deleted."""
    try:
        await db.execute(delete(FileTag).where(FileTag.file_id == file_id))
        result = await db.execute(delete(File).where(File.id == file_id))
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_file_cascade: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting file {file_id}: {e}")
        raise DatabaseError(f"Failed to delete file: {e}") from e
