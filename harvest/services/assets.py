"""Cover image download and local storage."""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath
from typing import AsyncIterable
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError

from ..errors import AssetAcquisitionError, FetchError
from ..models import AssetOutcome, AssetStatus
from .catalog_store import CatalogStore
from .fetcher import PageFetcher

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jpg"

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/svg+xml": ".svg",
}

URL_EXTENSIONS = {
    ".jpg": ".jpg",
    ".jpeg": ".jpg",
    ".png": ".png",
    ".gif": ".gif",
    ".webp": ".webp",
    ".bmp": ".bmp",
    ".svg": ".svg",
}


def sniff_extension(content_type: str | None, url: str) -> str:
    """Pick a file extension from the content type, then the URL path."""

    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in CONTENT_TYPE_EXTENSIONS:
            return CONTENT_TYPE_EXTENSIONS[mime]
    suffix = PurePosixPath(urlparse(url).path).suffix.lower()
    return URL_EXTENSIONS.get(suffix, DEFAULT_EXTENSION)


class AssetStorage:
    """Flat directory of cover images named after catalog item ids."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, filename: str) -> Path:
        if Path(filename).name != filename:
            raise ValueError(f"Asset filenames must not contain directories: {filename!r}")
        return self.directory / filename

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    async def write_stream(self, filename: str, chunks: AsyncIterable[bytes]) -> Path:
        """Write ``chunks`` to ``filename``; partial files never become visible."""

        target = self.path_for(filename)
        self.directory.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(f"{target.name}.part")
        written = 0
        try:
            with partial.open("wb") as handle:
                async for chunk in chunks:
                    handle.write(chunk)
                    written += len(chunk)
            if written == 0:
                raise OSError("empty response body")
            os.replace(partial, target)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        return target


class AssetAcquirer:
    """Download a cover once per item and record it on the catalog item."""

    def __init__(
        self,
        fetcher: PageFetcher,
        storage: AssetStorage,
        store: CatalogStore,
        *,
        timeout: float = 30.0,
    ):
        self._fetcher = fetcher
        self._storage = storage
        self._store = store
        self._timeout = timeout

    async def download(self, item_id: str, image_url: str) -> str:
        """Stream ``image_url`` into storage and return the stored filename."""

        try:
            async with self._fetcher.stream(image_url, timeout=self._timeout) as response:
                extension = sniff_extension(response.headers.get("content-type"), image_url)
                filename = f"{item_id}{extension}"
                await self._storage.write_stream(filename, response.aiter_bytes())
        except FetchError as exc:
            raise AssetAcquisitionError(image_url, exc.cause) from exc
        except OSError as exc:
            raise AssetAcquisitionError(image_url, str(exc)) from exc
        return filename

    async def acquire_if_missing(
        self, item_id: str, has_existing_asset: bool, image_url: str | None
    ) -> AssetOutcome:
        if has_existing_asset:
            return AssetOutcome(AssetStatus.SKIPPED, detail="asset already stored")
        if not image_url:
            return AssetOutcome(AssetStatus.SKIPPED, detail="no image URL")

        try:
            filename = await self.download(item_id, image_url)
        except AssetAcquisitionError as exc:
            logger.warning("Cover download failed for %s: %s", item_id, exc)
            return AssetOutcome(AssetStatus.FAILED, detail=str(exc))

        try:
            await self._store.set_asset_reference(item_id, filename)
        except SQLAlchemyError as exc:
            logger.warning("Could not record cover %s for %s: %s", filename, item_id, exc)
            return AssetOutcome(AssetStatus.FAILED, filename=filename, detail=str(exc))
        logger.info("Stored cover %s for %s", filename, item_id)
        return AssetOutcome(AssetStatus.ACQUIRED, filename=filename)
