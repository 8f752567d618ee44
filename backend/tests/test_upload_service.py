"""Tests for upload staging, folder-chain resolution and placement."""

import io

import pytest

from tagbrowser.core.path_mapper import InvalidPathError
from tagbrowser.db.exceptions import RecordNotFoundError
from tagbrowser.db.repositories import file_repo, folder_repo, tag_repo
from tagbrowser.services import upload_service
from tagbrowser.services.folder_chain import FolderChainResolver


class FakePart:
    """Stands in for Starlette's UploadFile."""

    def __init__(self, filename: str, content: bytes):
        self.filename = filename
        self._buffer = io.BytesIO(content)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


# ---------------------------------------------------------------------------
# Folder chain
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_folder_chain_creates_missing_links(db, mapper, root_folder, upload_root):
    resolver = FolderChainResolver(db, mapper)

    folder_id, path = await resolver.resolve(root_folder.id, "/root", ["holiday", "day1"])

    assert path == "/root/holiday/day1"
    day1 = await folder_repo.get_folder_by_id(db, folder_id)
    holiday = await folder_repo.get_folder_by_path(db, "/root/holiday")
    assert day1.parent_id == holiday.id
    assert holiday.parent_id == root_folder.id
    assert (upload_root / "root" / "holiday" / "day1").is_dir()


@pytest.mark.asyncio
async def test_folder_chain_reuses_existing_folders(db, mapper, root_folder, upload_root):
    existing = await folder_repo.create_folder(db, "holiday", root_folder.id, "/root/holiday")
    await db.commit()
    resolver = FolderChainResolver(db, mapper)

    first = await resolver.resolve(root_folder.id, "/root", ["holiday"])
    second = await resolver.resolve(root_folder.id, "/root", ["holiday", "day2"])

    assert first == (existing.id, "/root/holiday")
    assert second[1] == "/root/holiday/day2"
    assert len(await folder_repo.list_folders_under(db, "/root/holiday")) == 2


@pytest.mark.asyncio
async def test_folder_chain_without_segments_returns_base(db, mapper, root_folder):
    resolver = FolderChainResolver(db, mapper)

    assert await resolver.resolve(root_folder.id, "/root", []) == (root_folder.id, "/root")


# ---------------------------------------------------------------------------
# Staging
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stage_writes_part_to_staging(tmp_path):
    staging = tmp_path / "staging"

    staged = await upload_service.stage(FakePart("a/b.txt", b"hello"), str(staging), max_bytes=100, chunk_size=2)

    assert staged.relative_path == "a/b.txt"
    assert staged.byte_size == 5
    with open(staged.staging_path, "rb") as f:
        assert f.read() == b"hello"


@pytest.mark.asyncio
async def test_stage_rejects_oversized_part(tmp_path):
    staging = tmp_path / "staging"

    with pytest.raises(upload_service.UploadTooLargeError):
        await upload_service.stage(FakePart("big.bin", b"x" * 10), str(staging), max_bytes=4, chunk_size=3)

    assert list(staging.iterdir()) == []


@pytest.mark.asyncio
async def test_stage_rejects_traversal(tmp_path):
    with pytest.raises(InvalidPathError):
        await upload_service.stage(FakePart("../evil.txt", b"x"), str(tmp_path / "staging"), max_bytes=10)


@pytest.mark.asyncio
async def test_stage_all_discards_on_failure(tmp_path):
    staging = tmp_path / "staging"
    parts = [FakePart("ok.txt", b"1"), FakePart("..", b"2")]

    with pytest.raises(InvalidPathError):
        await upload_service.stage_all(parts, str(staging), max_bytes=10)

    assert list(staging.iterdir()) == []


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_finalize_places_files_under_folder_chain(db, ctx, root_folder, upload_root, tmp_path):
    tag = await tag_repo.create_tag(db, "Trip", "trip", "#00ff00")
    await db.commit()
    parts = [FakePart("holiday/day1/img.jpg", b"jpeg"), FakePart("notes.txt", b"text")]
    staged = await upload_service.stage_all(parts, str(tmp_path / "staging"), max_bytes=100)

    file_ids = await upload_service.finalize(db, ctx, root_folder.id, staged, [tag.id])

    assert len(file_ids) == 2
    img = await file_repo.get_file_by_id(db, file_ids[0])
    notes = await file_repo.get_file_by_id(db, file_ids[1])
    day1 = await folder_repo.get_folder_by_path(db, "/root/holiday/day1")
    assert img.folder_id == day1.id
    assert img.name == "img.jpg"
    assert img.mime_type == "image/jpeg"
    assert img.size_bytes == 4
    assert img.storage_path.startswith(str(upload_root / "root" / "holiday" / "day1"))
    assert img.storage_path.endswith("_img.jpg")
    with open(img.storage_path, "rb") as f:
        assert f.read() == b"jpeg"
    assert notes.folder_id == root_folder.id

    tagged = await tag_repo.tags_by_file(db, file_ids)
    assert [t.slug for t in tagged[file_ids[0]]] == ["trip"]
    assert list((tmp_path / "staging").iterdir()) == []


@pytest.mark.asyncio
async def test_finalize_keeps_same_named_uploads_apart(db, ctx, root_folder, tmp_path):
    parts = [FakePart("same.txt", b"1"), FakePart("same.txt", b"2")]
    staged = await upload_service.stage_all(parts, str(tmp_path / "staging"), max_bytes=10)

    file_ids = await upload_service.finalize(db, ctx, None, staged)

    paths = [(await file_repo.get_file_by_id(db, fid)).storage_path for fid in file_ids]
    assert len(set(paths)) == 2


@pytest.mark.asyncio
async def test_finalize_unknown_folder_discards_staged(db, ctx, root_folder, tmp_path):
    staged = await upload_service.stage_all([FakePart("a.txt", b"1")], str(tmp_path / "staging"), max_bytes=10)

    with pytest.raises(RecordNotFoundError):
        await upload_service.finalize(db, ctx, 987654, staged)

    assert list((tmp_path / "staging").iterdir()) == []
