"""Filesystem access for the upload tree.

Every call runs off the event loop (``aiofiles.os`` or
``asyncio.to_thread``) so a slow disk never stalls request handling.
"""

import asyncio
import enum
import logging
import os
import shutil
from dataclasses import dataclass, field

import aiofiles.os

from tagbrowser.core.path_mapper import PathMapper

logger = logging.getLogger(__name__)


class EntryKind(str, enum.Enum):
    DIRECTORY = "directory"
    FILE = "file"


@dataclass(frozen=True)
class DiskEntry:
    """One item produced by :func:`walk`."""

    kind: EntryKind
    logical_path: str
    physical_path: str


@dataclass
class WalkResult:
    """Depth-first listing of a subtree.

    ``unreadable`` holds the logical paths of directories whose contents
    could not be listed; nothing below them is reported.
    """

    entries: list[DiskEntry] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)

    @property
    def directories(self) -> list[str]:
        return [e.logical_path for e in self.entries if e.kind is EntryKind.DIRECTORY]

    @property
    def files(self) -> list[str]:
        return [e.physical_path for e in self.entries if e.kind is EntryKind.FILE]


async def exists(path: str) -> bool:
    return await aiofiles.os.path.exists(path)


async def is_dir(path: str) -> bool:
    return await aiofiles.os.path.isdir(path)


async def is_file(path: str) -> bool:
    return await aiofiles.os.path.isfile(path)


async def is_regular_file(path: str) -> bool:
    """A file :func:`walk` would report; symlinks do not count."""
    return not await aiofiles.os.path.islink(path) and await is_file(path)


async def is_regular_dir(path: str) -> bool:
    """A directory :func:`walk` would descend into; symlinks do not count."""
    return not await aiofiles.os.path.islink(path) and await is_dir(path)


async def ensure_dir(path: str) -> str:
    """``mkdir -p``; returns the path."""
    await aiofiles.os.makedirs(path, exist_ok=True)
    return path


async def file_size(path: str) -> int:
    stat = await aiofiles.os.stat(path)
    return stat.st_size


async def rename(src: str, dst: str) -> None:
    """Rename ``src`` to ``dst``, creating the destination parent first."""
    await ensure_dir(os.path.dirname(dst))
    await aiofiles.os.rename(src, dst)


async def move(src: str, dst: str) -> None:
    """Move across filesystems if needed (staging may be on another mount)."""
    await ensure_dir(os.path.dirname(dst))
    await asyncio.to_thread(shutil.move, src, dst)


async def remove_tree(path: str) -> bool:
    """``rm -rf``. Returns False when there was nothing to remove."""
    if not await exists(path):
        return False
    await asyncio.to_thread(shutil.rmtree, path)
    return True


async def unlink(path: str) -> bool:
    """Remove a file. Returns False when it was already gone."""
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        return False
    return True


def _scan(path: str) -> list[tuple[str, bool, bool]]:
    with os.scandir(path) as it:
        return [
            (entry.name, entry.is_dir(follow_symlinks=False), entry.is_file(follow_symlinks=False))
            for entry in it
        ]


async def list_dir(path: str) -> list[tuple[str, bool, bool]]:
    """``(name, is_dir, is_file)`` for each entry, sorted by name."""
    entries = await asyncio.to_thread(_scan, path)
    return sorted(entries)


async def walk(mapper: PathMapper, root: str) -> WalkResult:
    """Walk the tree under the physical directory ``root`` depth-first.

    The root itself is the first entry. Symlinks and special files are
    ignored. Unreadable directories are logged and skipped.
    """
    result = WalkResult()
    result.entries.append(DiskEntry(EntryKind.DIRECTORY, mapper.to_logical(root), root))

    async def _visit(directory: str) -> None:
        try:
            children = await list_dir(directory)
        except OSError as e:
            logger.warning("Skipping unreadable directory %s: %s", directory, e)
            result.unreadable.append(mapper.to_logical(directory))
            return
        for name, child_is_dir, child_is_file in children:
            physical = os.path.join(directory, name)
            if child_is_dir:
                result.entries.append(DiskEntry(EntryKind.DIRECTORY, mapper.to_logical(physical), physical))
                await _visit(physical)
            elif child_is_file:
                result.entries.append(DiskEntry(EntryKind.FILE, mapper.to_logical(physical), physical))

    await _visit(root)
    return result
