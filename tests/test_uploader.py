"""Tests for RemoteFileCache upload dedup and eviction."""

import asyncio

import pytest

from menuscan.errors import UploadError
from menuscan.uploader import RemoteFileCache

from conftest import FakeBackend, make_document


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_concurrent_uploads_share_one_request(tmp_path):
    backend = FakeBackend(upload_delay=0.05)
    cache = RemoteFileCache(backend)
    doc = make_document(tmp_path, "menu.pdf", b"%PDF menu")

    first, second = await asyncio.gather(
        cache.upload_document(doc), cache.upload_document(doc)
    )

    assert backend.uploads == ["menu.pdf"]
    assert first is second
    assert cache.get_stats()["pendingUploads"] == 0


@pytest.mark.asyncio
async def test_cache_hit_skips_upload(tmp_path):
    backend = FakeBackend()
    cache = RemoteFileCache(backend)
    doc = make_document(tmp_path, "menu.pdf", b"%PDF menu")

    handle = await cache.upload_document(doc)
    again = await cache.upload_document(doc)

    assert again is handle
    assert len(backend.uploads) == 1
    assert cache.get_uploaded_file(doc.document_id) is handle
    assert handle.uri == "https://files.example/1"
    assert handle.name == "files/1"
    assert handle.mime_type == "application/pdf"
    assert handle.size == doc.size


@pytest.mark.asyncio
async def test_same_content_under_same_name_is_uploaded_once(tmp_path):
    backend = FakeBackend()
    cache = RemoteFileCache(backend)
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    doc_a = make_document(tmp_path / "a", "menu.png", b"image bytes")
    doc_b = make_document(tmp_path / "b", "menu.png", b"image bytes")

    await cache.upload_all_documents([doc_a, doc_b])

    assert len(backend.uploads) == 1
    assert len(cache.get_all_uploaded_files()) == 1


@pytest.mark.asyncio
async def test_upload_timeout_raises_upload_error(tmp_path):
    backend = FakeBackend(upload_delay=1.0)
    cache = RemoteFileCache(backend, upload_timeout=0.05)
    doc = make_document(tmp_path, "menu.pdf", b"%PDF menu")

    with pytest.raises(UploadError, match="Timed out") as exc_info:
        await cache.upload_document(doc)

    assert exc_info.value.stage == "upload"
    assert exc_info.value.document_id == doc.document_id
    assert cache.get_uploaded_file(doc.document_id) is None
    assert cache.get_stats()["pendingUploads"] == 0


@pytest.mark.asyncio
async def test_provider_error_becomes_upload_error(tmp_path):
    backend = FakeBackend(upload_error=RuntimeError("quota exceeded"))
    cache = RemoteFileCache(backend)
    doc = make_document(tmp_path, "menu.pdf", b"%PDF menu")

    with pytest.raises(UploadError, match="quota exceeded"):
        await cache.upload_document(doc)


@pytest.mark.asyncio
async def test_upload_all_raises_first_failure_after_settling(tmp_path):
    backend = FakeBackend(upload_error=RuntimeError("rejected"))
    cache = RemoteFileCache(backend)
    docs = [
        make_document(tmp_path, "a.pdf", b"a"),
        make_document(tmp_path, "b.pdf", b"b"),
    ]

    with pytest.raises(UploadError):
        await cache.upload_all_documents(docs)
    assert len(backend.uploads) == 2


@pytest.mark.asyncio
async def test_delete_old_files(tmp_path):
    clock = FakeClock()
    backend = FakeBackend()
    cache = RemoteFileCache(backend, clock=clock)

    old = make_document(tmp_path, "old.pdf", b"old")
    await cache.upload_document(old)
    clock.now += 7200
    fresh = make_document(tmp_path, "fresh.pdf", b"fresh")
    await cache.upload_document(fresh)

    summary = await cache.delete_old_files(3600)

    assert summary.deleted == 1
    assert summary.failed == 0
    assert backend.deleted == ["files/1"]
    assert cache.get_uploaded_file(old.document_id) is None
    assert cache.get_uploaded_file(fresh.document_id) is not None


@pytest.mark.asyncio
async def test_delete_old_files_skips_files_in_use(tmp_path):
    clock = FakeClock()
    backend = FakeBackend()
    cache = RemoteFileCache(backend, clock=clock)
    doc = make_document(tmp_path, "menu.pdf", b"%PDF menu")
    await cache.upload_document(doc)
    cache.acquire([doc.document_id])
    clock.now += 7200

    summary = await cache.delete_old_files(3600)
    assert summary.deleted == 0
    assert backend.deleted == []

    cache.release([doc.document_id])
    summary = await cache.delete_old_files(3600)
    assert summary.deleted == 1


@pytest.mark.asyncio
async def test_delete_files_only_touches_idle_listed_documents(tmp_path):
    backend = FakeBackend()
    cache = RemoteFileCache(backend)
    mine = make_document(tmp_path, "mine.pdf", b"mine")
    shared = make_document(tmp_path, "shared.pdf", b"shared")
    other = make_document(tmp_path, "other.pdf", b"other")
    await cache.upload_all_documents([mine, shared, other])

    cache.acquire([mine.document_id, shared.document_id])
    cache.acquire([shared.document_id])
    cache.release([mine.document_id, shared.document_id])
    assert cache.in_use(shared.document_id)
    assert not cache.in_use(mine.document_id)

    summary = await cache.delete_files([mine.document_id, shared.document_id])

    assert summary.deleted == 1
    assert cache.get_uploaded_file(mine.document_id) is None
    assert cache.get_uploaded_file(shared.document_id) is not None
    assert cache.get_uploaded_file(other.document_id) is not None


@pytest.mark.asyncio
async def test_failed_deletions_stay_cached_for_retry(tmp_path):
    clock = FakeClock()
    backend = FakeBackend(delete_error_names={"files/1"})
    cache = RemoteFileCache(backend, clock=clock)
    doc = make_document(tmp_path, "menu.pdf", b"menu")
    await cache.upload_document(doc)
    clock.now += 10

    summary = await cache.delete_old_files(5)

    assert summary.deleted == 0
    assert summary.failed == 1
    assert cache.get_uploaded_file(doc.document_id) is not None

    backend.delete_error_names.clear()
    summary = await cache.delete_old_files(5)
    assert summary.deleted == 1
    assert cache.get_all_uploaded_files() == {}


@pytest.mark.asyncio
async def test_delete_unknown_document_returns_false(tmp_path):
    cache = RemoteFileCache(FakeBackend())
    assert await cache.delete_file("missing-pdf-00000000") is False


@pytest.mark.asyncio
async def test_delete_all_and_stats(tmp_path):
    backend = FakeBackend()
    cache = RemoteFileCache(backend)
    await cache.upload_all_documents([
        make_document(tmp_path, "a.pdf", b"aaaa"),
        make_document(tmp_path, "b.pdf", b"bb"),
    ])

    stats = cache.get_stats()
    assert stats == {
        "totalFiles": 2,
        "totalSize": 6,
        "averageSize": 3,
        "pendingUploads": 0,
    }

    summary = await cache.delete_all_files()
    assert summary.deleted == 2
    assert sorted(backend.deleted) == ["files/1", "files/2"]
    assert cache.get_stats()["totalFiles"] == 0


@pytest.mark.asyncio
async def test_clear_cache_keeps_remote_files(tmp_path):
    backend = FakeBackend()
    cache = RemoteFileCache(backend)
    await cache.upload_document(make_document(tmp_path, "a.pdf", b"a"))

    cache.clear_cache()

    assert cache.get_all_uploaded_files() == {}
    assert backend.deleted == []
