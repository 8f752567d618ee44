"""ZIP archives of folder directories."""

import asyncio
import logging
import os
import uuid
import zipfile

from tagbrowser.services import disk

logger = logging.getLogger(__name__)


def _write_zip(source_dir: str, archive_path: str) -> int:
    """Zip ``source_dir`` into ``archive_path``; names are relative to it."""
    count = 0
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for current, dirs, files in os.walk(source_dir):
            dirs.sort()
            rel_dir = os.path.relpath(current, source_dir)
            if rel_dir != os.curdir and not files and not dirs:
                # Keep empty directories
                zf.writestr(rel_dir.replace(os.sep, "/") + "/", "")
            for name in sorted(files):
                path = os.path.join(current, name)
                if os.path.islink(path):
                    continue
                zf.write(path, os.path.relpath(path, source_dir).replace(os.sep, "/"))
                count += 1
    return count


async def build_zip(source_dir: str, work_dir: str) -> str:
    """Write a ZIP of ``source_dir`` into ``work_dir`` and return its path.

    The caller removes the archive once it has been sent.
    """
    await disk.ensure_dir(work_dir)
    archive_path = os.path.join(work_dir, f"{uuid.uuid4().hex}.zip")
    try:
        count = await asyncio.to_thread(_write_zip, source_dir, archive_path)
    except Exception:
        await disk.unlink(archive_path)
        raise
    logger.info("Archived %d files from %s", count, source_dir)
    return archive_path
