"""Tests for cover image acquisition."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from harvest.models import AssetStatus
from harvest.services.assets import AssetAcquirer, AssetStorage, sniff_extension
from harvest.services.fetcher import PageFetcher

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class _RecordingStore:
    def __init__(self) -> None:
        self.references: list[tuple[str, str]] = []

    async def set_asset_reference(self, item_id: str, filename: str) -> None:
        self.references.append((item_id, filename))


@pytest.mark.parametrize(
    ("content_type", "url", "expected"),
    [
        ("image/png", "https://cdn.test/cover", ".png"),
        ("image/jpeg; charset=binary", "https://cdn.test/cover.png", ".jpg"),
        ("image/svg+xml", "https://cdn.test/a", ".svg"),
        ("application/octet-stream", "https://cdn.test/cover.JPEG?w=300", ".jpg"),
        ("application/octet-stream", "https://cdn.test/cover.webp", ".webp"),
        (None, "https://cdn.test/cover.php", ".jpg"),
    ],
)
def test_sniff_extension(content_type: str | None, url: str, expected: str) -> None:
    assert sniff_extension(content_type, url) == expected


def _acquire(tmp_path, handler, *, has_asset: bool = False, image_url: str | None = "https://cdn.test/c"):
    store = _RecordingStore()
    storage = AssetStorage(tmp_path / "images")

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            acquirer = AssetAcquirer(PageFetcher(client), storage, store)  # type: ignore[arg-type]
            return await acquirer.acquire_if_missing("item42", has_asset, image_url)

    return asyncio.run(_run()), store, storage


def test_acquire_streams_image_and_records_reference(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})

    outcome, store, storage = _acquire(tmp_path, handler)

    assert outcome.status is AssetStatus.ACQUIRED
    assert outcome.filename == "item42.png"
    assert storage.path_for("item42.png").read_bytes() == PNG_BYTES
    assert store.references == [("item42", "item42.png")]
    assert not list(storage.directory.glob("*.part"))


def test_existing_asset_is_skipped_without_request(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("No download expected")

    outcome, store, _ = _acquire(tmp_path, handler, has_asset=True)

    assert outcome.status is AssetStatus.SKIPPED
    assert store.references == []


def test_missing_image_url_is_skipped(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("No download expected")

    outcome, _, _ = _acquire(tmp_path, handler, image_url=None)

    assert outcome.status is AssetStatus.SKIPPED


def test_download_failure_is_reported_not_raised(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    outcome, store, storage = _acquire(tmp_path, handler)

    assert outcome.status is AssetStatus.FAILED
    assert "HTTP 404" in (outcome.detail or "")
    assert store.references == []
    assert not storage.exists("item42.jpg")


def test_empty_body_leaves_no_partial_file(tmp_path) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"", headers={"content-type": "image/jpeg"})

    outcome, store, storage = _acquire(tmp_path, handler)

    assert outcome.status is AssetStatus.FAILED
    assert store.references == []
    assert not list(storage.directory.glob("item42*"))


def test_storage_rejects_nested_filenames(tmp_path) -> None:
    with pytest.raises(ValueError):
        AssetStorage(tmp_path).path_for("../escape.jpg")
