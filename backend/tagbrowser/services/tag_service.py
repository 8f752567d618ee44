"""Tag naming rules and get-or-create."""

import logging
import random
import re

from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.db.exceptions import DuplicateRecordError, RecordNotFoundError
from tagbrowser.db.models import Tag
from tagbrowser.db.repositories import tag_repo

logger = logging.getLogger(__name__)

COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


class InvalidTagError(ValueError):
    """Raised for tag names without a usable slug and malformed colors."""

    pass


def slugify(name: str) -> str:
    """``"Summer Trip 2023!"`` -> ``"summer-trip-2023"``."""
    slug = re.sub(r"\s+", "-", (name or "").strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


def random_color() -> str:
    return "#{:06x}".format(random.randint(0, 0xFFFFFF))


def validate_color(color_hex: str) -> str:
    if not COLOR_PATTERN.match(color_hex or ""):
        raise InvalidTagError(f"Color must look like #RRGGBB, got {color_hex!r}")
    return color_hex


def parse_list(raw: str | None) -> list[str]:
    """Split a comma-separated form value, dropping blanks and repeats."""
    items = [part.strip() for part in (raw or "").split(",")]
    return list(dict.fromkeys(item for item in items if item))


async def get_or_create_tag(db: AsyncSession, name: str, color_hex: str | None = None) -> tuple[Tag, bool]:
    """Return the tag with ``name``'s slug, creating it if needed.

    The second item is True when the tag was created. An existing tag keeps
    its name and color.
    """
    name = (name or "").strip()
    slug = slugify(name)
    if not slug:
        raise InvalidTagError(f"Tag name {name!r} has no usable characters")
    color = validate_color(color_hex) if color_hex else random_color()

    existing = await tag_repo.get_tags_by_slugs(db, [slug])
    if existing:
        return existing[0], False
    try:
        # Savepoint: tags created earlier in this session must survive a lost race
        async with db.begin_nested():
            tag = await tag_repo.create_tag(db, name, slug, color)
    except DuplicateRecordError:
        existing = await tag_repo.get_tags_by_slugs(db, [slug])
        if not existing:
            raise
        return existing[0], False
    logger.info("Created tag %s (%s)", slug, color)
    return tag, True


async def update_tag(db: AsyncSession, tag_id: int, name: str | None = None, color_hex: str | None = None) -> Tag:
    updates: dict[str, str] = {}
    if name is not None:
        slug = slugify(name)
        if not slug:
            raise InvalidTagError(f"Tag name {name!r} has no usable characters")
        updates["name"] = name.strip()
        updates["slug"] = slug
    if color_hex is not None:
        updates["color_hex"] = validate_color(color_hex)
    tag = await tag_repo.update_tag(db, tag_id, updates)
    if tag is None:
        raise RecordNotFoundError(f"Tag {tag_id} not found")
    return tag


async def resolve_tag_ids(db: AsyncSession, tag_ids: list[int]) -> list[int]:
    """Keep the ids that name existing tags, in the given order."""
    known = {t.id for t in await tag_repo.list_tags(db)}
    unknown = [tid for tid in tag_ids if tid not in known]
    if unknown:
        raise InvalidTagError(f"Unknown tag ids: {unknown}")
    return list(dict.fromkeys(tag_ids))
