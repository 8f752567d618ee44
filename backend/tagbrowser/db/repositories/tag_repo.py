"""Tag and tag-association repository."""

import logging
from collections import defaultdict
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError
from tagbrowser.db.models import FileTag, FolderTag, Tag

logger = logging.getLogger(__name__)


async def list_tags(db: AsyncSession) -> list[Tag]:
    """All tags ordered by name."""
    try:
        result = await db.execute(select(Tag).order_by(Tag.name))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in list_tags: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing tags: {e}")
        raise DatabaseError(f"Failed to list tags: {e}") from e


async def get_tag_by_id(db: AsyncSession, tag_id: int) -> Tag | None:
    try:
        result = await db.execute(select(Tag).where(Tag.id == tag_id))
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_tag_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting tag {tag_id}: {e}")
        raise DatabaseError(f"Failed to get tag: {e}") from e


async def get_tags_by_slugs(db: AsyncSession, slugs: list[str]) -> list[Tag]:
    if not slugs:
        return []
    try:
        result = await db.execute(select(Tag).where(Tag.slug.in_(slugs)))
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_tags_by_slugs: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting tags {slugs}: {e}")
        raise DatabaseError(f"Failed to get tags: {e}") from e


async def create_tag(db: AsyncSession, name: str, slug: str, color_hex: str) -> Tag:
    """Insert a tag."""
    try:
        tag = Tag(name=name, slug=slug, color_hex=color_hex)
        db.add(tag)
        await db.flush()
        await db.refresh(tag)
        return tag
    except IntegrityError as e:
        logger.error(f"Duplicate tag slug {slug}: {e}")
        raise DuplicateRecordError(f"Tag {slug} already exists") from e
    except OperationalError as e:
        logger.error(f"Database connection error in create_tag: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error creating tag {slug}: {e}")
        raise DatabaseError(f"Failed to create tag: {e}") from e


async def update_tag(db: AsyncSession, tag_id: int, updates: dict[str, Any]) -> Tag | None:
    """Update a tag. Returns None if not found."""
    try:
        tag = await get_tag_by_id(db, tag_id)
        if not tag:
            return None
        for key, value in updates.items():
            if hasattr(tag, key):
                setattr(tag, key, value)
        await db.flush()
        await db.refresh(tag)
        return tag
    except IntegrityError as e:
        logger.error(f"Duplicate tag slug updating tag {tag_id}: {e}")
        raise DuplicateRecordError("A tag with that name already exists") from e
    except OperationalError as e:
        logger.error(f"Database connection error in update_tag: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error updating tag {tag_id}: {e}")
        raise DatabaseError(f"Failed to update tag: {e}") from e


async def delete_tag(db: AsyncSession, tag_id: int) -> bool:
    """Delete a tag and every association to it."""
    try:
        await db.execute(delete(FileTag).where(FileTag.tag_id == tag_id))
        await db.execute(delete(FolderTag).where(FolderTag.tag_id == tag_id))
        result = await db.execute(delete(Tag).where(Tag.id == tag_id))
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_tag: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting tag {tag_id}: {e}")
        raise DatabaseError(f"Failed to delete tag: {e}") from e


# ---------------------------------------------------------------------------
# Associations
# ---------------------------------------------------------------------------


async def list_tags_for_folder(db: AsyncSession, folder_id: int) -> list[tuple[Tag, bool]]:
    """Every tag paired with whether it is attached to the folder."""
    try:
        result = await db.execute(
            select(Tag, FolderTag.folder_id)
            .outerjoin(FolderTag, (FolderTag.tag_id == Tag.id) & (FolderTag.folder_id == folder_id))
            .order_by(Tag.name)
        )
        return [(tag, attached is not None) for tag, attached in result.all()]
    except OperationalError as e:
        logger.error(f"Database connection error in list_tags_for_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing tags of folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to list folder tags: {e}") from e


async def list_tags_for_file(db: AsyncSession, file_id: int) -> list[tuple[Tag, bool]]:
    """Every tag paired with whether it is attached to the file."""
    try:
        result = await db.execute(
            select(Tag, FileTag.file_id)
            .outerjoin(FileTag, (FileTag.tag_id == Tag.id) & (FileTag.file_id == file_id))
            .order_by(Tag.name)
        )
        return [(tag, attached is not None) for tag, attached in result.all()]
    except OperationalError as e:
        logger.error(f"Database connection error in list_tags_for_file: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing tags of file {file_id}: {e}")
        raise DatabaseError(f"Failed to list file tags: {e}") from e


async def tags_by_folder(db: AsyncSession, folder_ids: list[int]) -> dict[int, list[Tag]]:
    """Attached tags for each folder id."""
    grouped: dict[int, list[Tag]] = defaultdict(list)
    if not folder_ids:
        return grouped
    try:
        result = await db.execute(
            select(FolderTag.folder_id, Tag)
            .join(Tag, Tag.id == FolderTag.tag_id)
            .where(FolderTag.folder_id.in_(folder_ids))
            .order_by(Tag.name)
        )
        for folder_id, tag in result.all():
            grouped[folder_id].append(tag)
        return grouped
    except OperationalError as e:
        logger.error(f"Database connection error in tags_by_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error loading folder tags: {e}")
        raise DatabaseError(f"Failed to load folder tags: {e}") from e


async def tags_by_file(db: AsyncSession, file_ids: list[int]) -> dict[int, list[Tag]]:
    """Attached tags for each file id."""
    grouped: dict[int, list[Tag]] = defaultdict(list)
    if not file_ids:
        return grouped
    try:
        result = await db.execute(
            select(FileTag.file_id, Tag)
            .join(Tag, Tag.id == FileTag.tag_id)
            .where(FileTag.file_id.in_(file_ids))
            .order_by(Tag.name)
        )
        for file_id, tag in result.all():
            grouped[file_id].append(tag)
        return grouped
    except OperationalError as e:
        logger.error(f"Database connection error in tags_by_file: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error loading file tags: {e}")
        raise DatabaseError(f"Failed to load file tags: {e}") from e


async def set_folder_tags(db: AsyncSession, folder_id: int, tag_ids: list[int]) -> None:
    """Replace the folder's tag set."""
    try:
        await db.execute(delete(FolderTag).where(FolderTag.folder_id == folder_id))
        for tag_id in dict.fromkeys(tag_ids):
            db.add(FolderTag(folder_id=folder_id, tag_id=tag_id))
        await db.flush()
    except IntegrityError as e:
        logger.error(f"Invalid tag association for folder {folder_id}: {e}")
        raise DatabaseError(f"Invalid tags for folder {folder_id}") from e
    except OperationalError as e:
        logger.error(f"Database connection error in set_folder_tags: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error setting tags of folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to set folder tags: {e}") from e


async def set_file_tags(db: AsyncSession, file_id: int, tag_ids: list[int]) -> None:
    """Replace the file's tag set."""
    try:
        await db.execute(delete(FileTag).where(FileTag.file_id == file_id))
        for tag_id in dict.fromkeys(tag_ids):
            db.add(FileTag(file_id=file_id, tag_id=tag_id))
        await db.flush()
    except IntegrityError as e:
        logger.error(f"Invalid tag association for file {file_id}: {e}")
        raise DatabaseError(f"Invalid tags for file {file_id}") from e
    except OperationalError as e:
        logger.error(f"Database connection error in set_file_tags: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error setting tags of file {file_id}: {e}")
        raise DatabaseError(f"Failed to set file tags: {e}") from e
