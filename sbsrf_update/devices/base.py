"""Abstract device interface.

A :class:`Device` wraps one :class:`~sbsrf_update.config.DeviceConfig` and
the capabilities needed to drive it (a transport, an optional process guard).
The orchestrator only ever talks to this interface.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from pathlib import Path
from typing import ClassVar

import httpx

from sbsrf_update.backups import BackupStore
from sbsrf_update.batch import BatchResult, run_batch
from sbsrf_update.config import DeviceConfig
from sbsrf_update.errors import ProcessControlError
from sbsrf_update.matcher import select_assets
from sbsrf_update.process import ProcessGuard
from sbsrf_update.progress import NullReporter, Reporter
from sbsrf_update.release import Asset, Release
from sbsrf_update.settings import Settings
from sbsrf_update.transport import Transport

logger = logging.getLogger(__name__)


class Device(abc.ABC):
    """One engine installation.

    Subclasses set :attr:`engine` (the variant tag that also prefixes the
    engine's own release assets) and implement :meth:`backup` and
    :meth:`restore`.
    """

    engine: ClassVar[str] = ""
    archive_name: ClassVar[str | None] = None
    deploy_notice: ClassVar[str] = ""

    def __init__(
        self,
        config: DeviceConfig,
        settings: Settings,
        transport: Transport,
        guard: ProcessGuard | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.transport = transport
        self.guard = guard
        self.reporter = reporter or NullReporter()

    # ── Construction ──────────────────────────────────────────────

    @classmethod
    @abc.abstractmethod
    def build(
        cls,
        config: DeviceConfig,
        settings: Settings,
        client: httpx.AsyncClient,
        host: str | None = None,
        reporter: Reporter | None = None,
    ) -> Device:
        """Wire a device with the transport and guard its engine needs."""
        raise NotImplementedError

    @classmethod
    @abc.abstractmethod
    def default_config(cls, settings: Settings, name: str) -> DeviceConfig:
        raise NotImplementedError

    @classmethod
    def detect(cls) -> bool:
        """Whether this engine appears to be installed on this machine."""
        return False

    # ── Capabilities ──────────────────────────────────────────────

    @property
    def backups(self) -> BackupStore:
        return BackupStore(self.config.backup_root, self.config.max_backups, self.archive_name)

    @abc.abstractmethod
    async def backup(self) -> Path | None:
        """Snapshot the current live state under the *current* version."""
        raise NotImplementedError

    @abc.abstractmethod
    async def restore(self, version: str) -> int:
        """Replace the live state with backup *version*; returns files written."""
        raise NotImplementedError

    def matching_assets(self, release: Release) -> list[Asset]:
        return select_assets(release.assets, self.engine, self.config.sentence_mode)

    async def install(self, assets: list[Asset]) -> BatchResult:
        """Install *assets* concurrently; one failure never stops the others."""
        jobs = {
            asset.name: (lambda a=asset: self.transport.install(a, self.reporter))
            for asset in assets
        }
        result = await run_batch(
            jobs, limit=self.settings.max_workers, timeout=self.settings.task_timeout
        )
        for outcome in result.failed:
            logger.error("Installing %s failed: %s", outcome.name, outcome.error)
        return result

    async def update(self, release: Release) -> BatchResult:
        assets = self.matching_assets(release)
        logger.info(
            "%s: %d of %d assets match", self.engine, len(assets), len(release.assets)
        )
        return await self.install(assets)

    async def deploy(self) -> None:
        """Ask the running engine to reload; a no-op by default."""

    async def install_engine(self, release: Release) -> bool:
        """Install the engine itself from *release*; ``False`` if unsupported."""
        return False

    # ── Helpers ───────────────────────────────────────────────────

    @staticmethod
    async def _run(*cmd: str) -> None:
        """Run an external command to completion. Raises on non-zero exit."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr_bytes = await proc.communicate()
        except OSError as exc:
            raise ProcessControlError(f"Cannot run {cmd[0]}: {exc}") from exc
        if proc.returncode != 0:
            stderr = stderr_bytes.decode("utf-8", errors="replace")
            raise ProcessControlError(
                f"Command {cmd[0]} failed (rc={proc.returncode}): {stderr[:500]}"
            )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.config.work_dir.name} version={self.config.version}>"
