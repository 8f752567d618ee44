"""HTTP tests for the folder, file, tag and upload endpoints."""

import io
import zipfile

import pytest

from tagbrowser.db.repositories import file_repo, folder_repo, tag_repo


def _data(response):
    body = response.json()
    assert body["status"] == "success", body
    return body["data"]


def _error_code(response) -> str:
    body = response.json()
    assert body["status"] == "error"
    return body["errors"][0]["code"]


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert response.headers["x-request-id"]
    assert response.headers["x-content-type-options"] == "nosniff"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})

    assert response.headers["x-request-id"] == "abc123"


@pytest.mark.asyncio
async def test_readiness_reports_checks(client, upload_root, monkeypatch):
    from tagbrowser.config import settings

    monkeypatch.setattr(settings, "upload_root", str(upload_root))
    ready = await client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["services"] == {"database": "ok", "upload_root": "ok"}

    monkeypatch.setattr(settings, "upload_root", str(upload_root / "missing"))
    degraded = await client.get("/health/ready")
    assert degraded.status_code == 503
    assert degraded.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_version(client):
    response = await client.get("/api/v1/version")

    assert response.json()["api_prefix"] == "/api/v1"


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_root_folder(client, upload_root):
    response = await client.get("/api/v1/folders/root")

    assert response.status_code == 200
    assert _data(response)["full_path"] == "/root"
    assert (upload_root / "root").is_dir()


@pytest.mark.asyncio
async def test_create_list_rename_delete_folder(client, ctx, root_folder, upload_root):
    created = await client.post("/api/v1/folders", json={"name": "photos", "parent_id": root_folder.id})
    assert created.status_code == 201
    folder = _data(created)
    assert folder["full_path"] == "/root/photos"

    listed = await client.get("/api/v1/folders", params={"parent_id": root_folder.id})
    assert [f["name"] for f in _data(listed)] == ["photos"]
    assert listed.json()["meta"]["count"] == 1

    renamed = await client.patch(f"/api/v1/folders/{folder['id']}", json={"name": "pictures"})
    assert _data(renamed)["full_path"] == "/root/pictures"
    await ctx.queue.join()
    assert (upload_root / "root" / "pictures").is_dir()

    deleted = await client.delete(f"/api/v1/folders/{folder['id']}")
    assert _data(deleted) == {"deleted": True, "id": folder["id"]}
    await ctx.queue.join()
    assert not (upload_root / "root" / "pictures").exists()

    missing = await client.get(f"/api/v1/folders/{folder['id']}")
    assert missing.status_code == 404
    assert _error_code(missing) == "NOT_FOUND"


@pytest.mark.asyncio
async def test_root_level_listing(client, root_folder):
    response = await client.get("/api/v1/folders")

    assert [f["full_path"] for f in _data(response)] == ["/root"]


@pytest.mark.asyncio
async def test_create_folder_with_unknown_parent(client, root_folder):
    response = await client.post("/api/v1/folders", json={"name": "x", "parent_id": 999})

    assert response.status_code == 400
    assert _error_code(response) == "BAD_REQUEST"


@pytest.mark.asyncio
async def test_create_folder_with_bad_name(client, root_folder):
    response = await client.post("/api/v1/folders", json={"name": "a/b", "parent_id": root_folder.id})

    assert response.status_code == 400
    assert _error_code(response) == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_create_folder_validation_error(client, root_folder):
    response = await client.post("/api/v1/folders", json={"parent_id": root_folder.id})

    assert response.status_code == 400
    body = response.json()
    assert body["errors"][0]["code"] == "VALIDATION_ERROR"
    assert body["errors"][0]["field"] == "name"


@pytest.mark.asyncio
async def test_duplicate_folder_conflicts(client, root_folder):
    payload = {"name": "dup", "parent_id": root_folder.id}
    await client.post("/api/v1/folders", json=payload)

    response = await client.post("/api/v1/folders", json=payload)

    assert response.status_code == 409
    assert _error_code(response) == "CONFLICT"


@pytest.mark.asyncio
async def test_root_cannot_be_deleted(client, root_folder):
    response = await client.delete(f"/api/v1/folders/{root_folder.id}")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_unknown_parent(client, root_folder):
    response = await client.get("/api/v1/folders", params={"parent_id": 4242})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_folder_tags(client, db, root_folder):
    red = await tag_repo.create_tag(db, "Red", "red", "#ff0000")
    await tag_repo.create_tag(db, "Blue", "blue", "#0000ff")
    await db.commit()
    red_id = red.id

    put = await client.put(f"/api/v1/folders/{root_folder.id}/tags", json={"tag_ids": [red_id]})
    assert _data(put)["tag_ids"] == [red_id]

    got = await client.get(f"/api/v1/folders/{root_folder.id}/tags")
    assert [(t["slug"], t["selected"]) for t in _data(got)] == [("blue", False), ("red", True)]

    bad = await client.put(f"/api/v1/folders/{root_folder.id}/tags", json={"tag_ids": [red_id, 777]})
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_download_folder_as_zip(client, db, root_folder, upload_root, tmp_path):
    album = upload_root / "root" / "album"
    (album / "empty").mkdir(parents=True)
    (album / "a.txt").write_text("A")
    folder = await folder_repo.create_folder(db, "album", root_folder.id, "/root/album")
    await db.commit()

    response = await client.get(f"/api/v1/folders/{folder.id}/download")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert "album.zip" in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
        assert sorted(zf.namelist()) == ["a.txt", "empty/"]
        assert zf.read("a.txt") == b"A"
    assert list((tmp_path / "staging").iterdir()) == []


@pytest.mark.asyncio
async def test_download_folder_missing_on_disk(client, db, root_folder):
    folder = await folder_repo.create_folder(db, "ghost", root_folder.id, "/root/ghost")
    await db.commit()

    response = await client.get(f"/api/v1/folders/{folder.id}/download")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


async def _stored_file(db, folder_id, upload_root, name, content=b"data"):
    path = upload_root / "root" / name
    path.write_bytes(content)
    file = await file_repo.create_file(db, folder_id, name, str(path), len(content), "text/plain")
    await db.commit()
    return file.id


@pytest.mark.asyncio
async def test_list_files_with_search_and_tags(client, db, root_folder, upload_root):
    report_id = await _stored_file(db, root_folder.id, upload_root, "report.txt")
    await _stored_file(db, root_folder.id, upload_root, "notes.txt")
    tag = await tag_repo.create_tag(db, "Work", "work", "#123456")
    await tag_repo.set_file_tags(db, report_id, [tag.id])
    await db.commit()

    everything = await client.get("/api/v1/files", params={"folder_id": root_folder.id})
    assert [f["name"] for f in _data(everything)] == ["notes.txt", "report.txt"]

    searched = await client.get("/api/v1/files", params={"search": "REP"})
    assert [f["id"] for f in _data(searched)] == [report_id]

    tagged = await client.get("/api/v1/files", params={"folder_id": root_folder.id, "tags": "work"})
    items = _data(tagged)
    assert [f["id"] for f in items] == [report_id]
    assert items[0]["tags"][0]["slug"] == "work"
    assert "storage_path" not in items[0]


@pytest.mark.asyncio
async def test_rename_and_download_file(client, ctx, db, root_folder, upload_root):
    file_id = await _stored_file(db, root_folder.id, upload_root, "draft.txt", b"hello")

    renamed = await client.patch(f"/api/v1/files/{file_id}", json={"name": "final.txt"})
    assert _data(renamed)["name"] == "final.txt"
    await ctx.queue.join()

    download = await client.get(f"/api/v1/files/{file_id}/download")
    assert download.status_code == 200
    assert download.content == b"hello"
    assert "final.txt" in download.headers["content-disposition"]


@pytest.mark.asyncio
async def test_download_file_missing_on_disk(client, ctx, db, root_folder, upload_root):
    file_id = await _stored_file(db, root_folder.id, upload_root, "gone.txt")
    (upload_root / "root" / "gone.txt").unlink()

    response = await client.get(f"/api/v1/files/{file_id}/download")

    assert response.status_code == 404
    await ctx.queue.join()
    missing = await client.get(f"/api/v1/files/{file_id}")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_delete_file(client, ctx, db, root_folder, upload_root):
    file_id = await _stored_file(db, root_folder.id, upload_root, "bye.txt")

    response = await client.delete(f"/api/v1/files/{file_id}")

    assert _data(response)["deleted"] is True
    await ctx.queue.join()
    assert not (upload_root / "root" / "bye.txt").exists()
    again = await client.delete(f"/api/v1/files/{file_id}")
    assert again.status_code == 404
    assert _error_code(again) == "NOT_FOUND"


@pytest.mark.asyncio
async def test_file_tags(client, db, root_folder, upload_root):
    file_id = await _stored_file(db, root_folder.id, upload_root, "x.txt")
    tag = await tag_repo.create_tag(db, "Keep", "keep", "#000000")
    await db.commit()
    tag_id = tag.id

    await client.put(f"/api/v1/files/{file_id}/tags", json={"tag_ids": [tag_id]})
    got = await client.get(f"/api/v1/files/{file_id}/tags")

    assert [(t["slug"], t["selected"]) for t in _data(got)] == [("keep", True)]


@pytest.mark.asyncio
async def test_unknown_file_tags(client, root_folder):
    response = await client.get("/api/v1/files/555/tags")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_tag_then_reuse(client):
    first = await client.post("/api/v1/tags", json={"name": "Summer Trip", "color_hex": "#ABCDEF"})
    assert first.status_code == 201
    assert first.json()["meta"]["created"] is True
    tag = _data(first)
    assert tag["slug"] == "summer-trip"

    second = await client.post("/api/v1/tags", json={"name": "summer  trip"})
    assert second.status_code == 200
    assert second.json()["meta"]["created"] is False
    assert _data(second)["id"] == tag["id"]

    listed = await client.get("/api/v1/tags")
    assert [t["slug"] for t in _data(listed)] == ["summer-trip"]


@pytest.mark.asyncio
async def test_create_tag_with_bad_color(client):
    response = await client.post("/api/v1/tags", json={"name": "x", "color_hex": "blue"})

    assert response.status_code == 400
    assert _error_code(response) == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_update_recolor_and_delete_tag(client):
    tag = _data(await client.post("/api/v1/tags", json={"name": "Old", "color_hex": "#000000"}))

    updated = await client.patch(f"/api/v1/tags/{tag['id']}", json={"name": "New"})
    assert _data(updated)["slug"] == "new"

    colored = await client.post(f"/api/v1/tags/{tag['id']}/color", json={"color_hex": "#FF00FF"})
    assert _data(colored)["color_hex"] == "#FF00FF"

    deleted = await client.delete(f"/api/v1/tags/{tag['id']}")
    assert _data(deleted)["deleted"] is True

    again = await client.delete(f"/api/v1/tags/{tag['id']}")
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_update_unknown_tag(client):
    response = await client.patch("/api/v1/tags/999", json={"name": "x"})

    assert response.status_code == 404
    assert _error_code(response) == "NOT_FOUND"


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_upload_directory_with_tags(client, db, root_folder, upload_root, tmp_path):
    existing = await tag_repo.create_tag(db, "Trip", "trip", "#00ff00")
    await db.commit()
    existing_id = existing.id
    files = [
        ("files", ("holiday/day1/img.jpg", b"jpeg-bytes", "image/jpeg")),
        ("files", ("holiday/readme.txt", b"hi", "text/plain")),
    ]

    response = await client.post(
        "/api/v1/upload",
        files=files,
        data={"folder_id": str(root_folder.id), "tag_slugs": "trip", "new_tags": "Beach, trip"},
    )

    assert response.status_code == 200
    result = _data(response)
    assert result["ok"] is True
    assert len(result["file_ids"]) == 2
    assert [t["slug"] for t in result["created_tags"]] == ["beach"]
    assert response.json()["meta"]["count"] == 2

    day1 = await folder_repo.get_folder_by_path(db, "/root/holiday/day1")
    assert day1 is not None
    img = await file_repo.get_file_by_id(db, result["file_ids"][0])
    assert img.folder_id == day1.id
    assert img.name == "img.jpg"
    tags = await tag_repo.tags_by_file(db, [img.id])
    assert {t.id for t in tags[img.id]} >= {existing_id}
    assert {t.slug for t in tags[img.id]} == {"beach", "trip"}
    assert list((tmp_path / "staging").iterdir()) == []


@pytest.mark.asyncio
async def test_upload_defaults_to_root(client, db, root_folder):
    response = await client.post("/api/v1/upload", files=[("files", ("a.txt", b"a", "text/plain"))])

    file_id = _data(response)["file_ids"][0]
    assert (await file_repo.get_file_by_id(db, file_id)).folder_id == root_folder.id


@pytest.mark.asyncio
async def test_upload_into_unknown_folder(client, root_folder):
    response = await client.post(
        "/api/v1/upload",
        files=[("files", ("a.txt", b"a", "text/plain"))],
        data={"folder_id": "9999"},
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_upload_rejects_traversal(client, root_folder, tmp_path):
    response = await client.post("/api/v1/upload", files=[("files", ("../evil.txt", b"x", "text/plain"))])

    assert response.status_code == 400
    assert _error_code(response) == "INVALID_INPUT"
