"""Translation between logical folder paths and physical disk paths.

Logical paths are what the database stores: ``/root/photos/2023``.
Physical paths live under the upload root:
``{upload_root}/root/photos/2023``.

All functions here are pure; nothing touches the filesystem.
"""

import os

SEPARATOR = "/"

# Logical path of the single folder without a parent
ROOT_FULL_PATH = "/root"
ROOT_NAME = "root"

_FORBIDDEN_SEGMENTS = {".", ".."}


class InvalidPathError(ValueError):
    """Raised when a client-supplied path cannot be mapped safely."""

    pass


def parent_path(full_path: str) -> str | None:
    """Return the logical parent of ``full_path``, or None at the top."""
    idx = full_path.rstrip(SEPARATOR).rfind(SEPARATOR)
    if idx <= 0:
        return None
    return full_path[:idx]


def name_of(full_path: str) -> str:
    """Return the last segment of a logical path."""
    return full_path.rstrip(SEPARATOR).rsplit(SEPARATOR, 1)[-1]


def child_path(full_path: str, name: str) -> str:
    """Join a folder name onto a logical parent path."""
    return f"{full_path.rstrip(SEPARATOR)}{SEPARATOR}{name.strip(SEPARATOR)}"


def depth(full_path: str) -> int:
    """Number of non-empty segments in a logical path."""
    return len([p for p in full_path.split(SEPARATOR) if p])


def is_within(full_path: str, prefix: str) -> bool:
    """True if ``full_path`` is ``prefix`` or one of its descendants.

    Matches whole segments only: ``/root/ab`` is not within ``/root/a``.
    """
    prefix = prefix.rstrip(SEPARATOR)
    return full_path == prefix or full_path.startswith(prefix + SEPARATOR)


def split_relative(relative_path: str) -> list[str]:
    """Split an upload's relative path into validated segments.

    Accepts both ``/`` and ``\\`` as separators (browsers on Windows send
    the latter). Raises InvalidPathError on traversal attempts, NUL bytes,
    or when nothing is left.
    """
    if "\x00" in relative_path:
        raise InvalidPathError("Path contains a NUL byte")

    segments = [s.strip() for s in relative_path.replace("\\", SEPARATOR).split(SEPARATOR)]
    segments = [s for s in segments if s]
    if not segments:
        raise InvalidPathError("Empty path")
    for segment in segments:
        if segment in _FORBIDDEN_SEGMENTS:
            raise InvalidPathError(f"Illegal path segment: {segment!r}")
    return segments


class PathMapper:
    """Maps logical folder paths onto a fixed upload root and back."""

    def __init__(self, upload_root: str) -> None:
        self._root = os.path.abspath(upload_root)

    @property
    def upload_root(self) -> str:
        return self._root

    def to_physical(self, full_path: str) -> str:
        """Convert a logical path to its physical location.

        Empty segments are dropped, so malformed input degenerates to the
        upload root rather than raising.
        """
        parts = [p for p in (full_path or "").split(SEPARATOR) if p]
        return os.path.join(self._root, *parts)

    def to_logical(self, physical_path: str) -> str:
        """Convert a physical path under the upload root to a logical path."""
        rel = os.path.relpath(physical_path, self._root)
        if rel == os.curdir:
            return SEPARATOR
        return SEPARATOR + rel.replace(os.sep, SEPARATOR)

    def folder_of(self, storage_path: str) -> str:
        """Logical path of the directory containing a physical file."""
        return self.to_logical(os.path.dirname(storage_path))
