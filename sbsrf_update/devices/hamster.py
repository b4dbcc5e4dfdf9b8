"""Hamster, the iOS engine, reachable only over its Wi-Fi file server.

There is no local live directory: updates are uploaded file by file, a backup
is the namespace downloaded as one zip, and redeploying has to be done on the
phone.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

import httpx

from sbsrf_update.archive import extract_zip_async
from sbsrf_update.config import DeviceConfig
from sbsrf_update.devices.base import Device
from sbsrf_update.errors import RemoteHostRequiredError
from sbsrf_update.progress import Reporter
from sbsrf_update.settings import Settings
from sbsrf_update.transport import RemoteUploadTransport
from sbsrf_update.transport.remote import DEFAULT_NAMESPACE

logger = logging.getLogger(__name__)


class HamsterDevice(Device):
    engine = "Hamster"
    archive_name = f"{DEFAULT_NAMESPACE}.zip"
    deploy_notice = "Redeploy on the phone to apply the changes."

    transport: RemoteUploadTransport

    @classmethod
    def build(
        cls,
        config: DeviceConfig,
        settings: Settings,
        client: httpx.AsyncClient,
        host: str | None = None,
        reporter: Reporter | None = None,
    ) -> Device:
        if not host:
            raise RemoteHostRequiredError(config.work_dir.name)
        transport = RemoteUploadTransport(client, host, workers=settings.max_workers)
        return cls(config, settings, transport, reporter=reporter)

    @classmethod
    def default_config(cls, settings: Settings, name: str) -> DeviceConfig:
        return DeviceConfig(name=cls.engine, work_dir=settings.device_dir(name))

    async def backup(self) -> Path | None:
        async def _fetch(staging: Path) -> None:
            await self.transport.fetch_snapshot(staging / self.archive_name, self.reporter)

        return await self.backups.capture(self.config.version, _fetch)

    async def restore(self, version: str) -> int:
        archive = self.backups.restore_source(version)
        scratch = Path(tempfile.mkdtemp(prefix="sbsrf-restore-"))
        try:
            await extract_zip_async(archive, scratch, workers=self.settings.max_workers)
            source = scratch / DEFAULT_NAMESPACE
            if not source.is_dir():
                source = scratch
            count = await self.transport.push_tree(source, self.reporter)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        logger.info("Restored %d files of version %s to %s", count, version, self.transport.host)
        return count
