"""Direct filesystem transport for engines installed on this machine."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

from sbsrf_update.archive import extract_zip_async
from sbsrf_update.backups import copy_tree
from sbsrf_update.download import download_file
from sbsrf_update.progress import Reporter, download_callback
from sbsrf_update.release import Asset
from sbsrf_update.transport.base import Transport

logger = logging.getLogger(__name__)


class LocalCopyTransport(Transport):
    """Downloads into the shared cache and extracts straight into *destination*.

    The cache is keyed by asset name only: a cached file is reused as long as
    it exists, whatever release it came from.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache_dir: Path,
        destination: Path,
        workers: int = 4,
    ) -> None:
        self._client = client
        self.cache_dir = Path(cache_dir)
        self.destination = Path(destination)
        self.workers = workers
        self._locks: dict[str, asyncio.Lock] = {}

    def cache_path(self, asset: Asset) -> Path:
        return self.cache_dir / asset.name

    async def fetch(self, asset: Asset, reporter: Reporter | None = None) -> Path:
        """Return the cached archive for *asset*, downloading it if missing."""
        reporter = self._reporter(reporter)
        path = self.cache_path(asset)
        lock = self._locks.setdefault(asset.name, asyncio.Lock())
        async with lock:
            if path.exists():
                logger.info("Using cached %s", path)
                return path
            bar = reporter.bar(f"Download {asset.name}", unit="B")
            try:
                await download_file(self._client, asset.download_url, path, download_callback(bar))
            finally:
                bar.close()
        return path

    async def install(self, asset: Asset, reporter: Reporter | None = None) -> None:
        reporter = self._reporter(reporter)
        archive = await self.fetch(asset, reporter)
        bar = reporter.bar(f"Install {asset.name}")
        try:
            written = await extract_zip_async(
                archive, self.destination, lambda name: bar.update(1, name), self.workers
            )
        finally:
            bar.close("done")
        logger.info("Installed %s (%d files) into %s", asset.name, len(written), self.destination)

    async def push_tree(self, source_dir: Path, reporter: Reporter | None = None) -> int:
        bar = self._reporter(reporter).bar("Restore")
        try:
            return await asyncio.to_thread(
                copy_tree, source_dir, self.destination, lambda p: bar.update(1, p.name)
            )
        finally:
            bar.close("done")
