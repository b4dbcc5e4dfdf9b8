"""Shared behaviour for engines whose live directory is on this machine."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

import httpx

from sbsrf_update.config import DeviceConfig
from sbsrf_update.devices.base import Device
from sbsrf_update.errors import FilesystemError
from sbsrf_update.progress import Reporter
from sbsrf_update.settings import Settings
from sbsrf_update.transport import LocalCopyTransport

logger = logging.getLogger(__name__)


class LocalDevice(Device):
    """Backs up by copying the live directory, restores by wipe-and-copy."""

    @classmethod
    def build(
        cls,
        config: DeviceConfig,
        settings: Settings,
        client: httpx.AsyncClient,
        host: str | None = None,
        reporter: Reporter | None = None,
    ) -> Device:
        transport = LocalCopyTransport(
            client, settings.cache_dir, cls._live_dir(config), workers=settings.max_workers
        )
        return cls(config, settings, transport, guard=cls.make_guard(config), reporter=reporter)

    @classmethod
    def make_guard(cls, config: DeviceConfig):
        return None

    @staticmethod
    def _live_dir(config: DeviceConfig) -> Path:
        if config.live_dir is None:
            raise FilesystemError(f"Device {config.work_dir.name} has no live_dir configured")
        return config.live_dir

    @property
    def live_dir(self) -> Path:
        return self._live_dir(self.config)

    async def backup(self) -> Path | None:
        store = self.backups
        if not store.enabled:
            return None
        if not self.live_dir.is_dir():
            logger.info("Nothing to back up, %s does not exist yet", self.live_dir)
            return None
        bar = self.reporter.bar(f"Backup {self.config.version}")
        try:
            return await asyncio.to_thread(
                store.snapshot,
                self.live_dir,
                self.config.version,
                lambda p: bar.update(1, p.name),
            )
        finally:
            bar.close("done")

    async def restore(self, version: str) -> int:
        source = self.backups.restore_source(version)
        await asyncio.to_thread(self._wipe_live_dir)
        count = await self.transport.push_tree(source, self.reporter)
        logger.info("Restored %d files of version %s into %s", count, version, self.live_dir)
        return count

    def _wipe_live_dir(self) -> None:
        live = self.live_dir
        if not live.exists():
            return
        try:
            shutil.rmtree(live)
        except OSError as exc:
            raise FilesystemError(f"Cannot clear live directory {live}: {exc}") from exc
        logger.info("Cleared live directory %s", live)
