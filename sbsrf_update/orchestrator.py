"""Update and restore flows.

Written once against :class:`~sbsrf_update.devices.Device`; nothing here
knows which engine it is driving.

Update::

    fetch release ─► up to date? ─► confirm ─► [quiesce] backup ─► install [resume]
                                                 ─► deploy ─► persist version

Restore::

    list backups ─► select ─► confirm ─► [quiesce] wipe + copy/upload [resume]
                                          ─► deploy ─► persist version

A failed backup or restore aborts before the version is persisted. Asset
failures during install are isolated and reported; the version is persisted
once every asset task has finished.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol

import httpx

from sbsrf_update.batch import BatchResult
from sbsrf_update.config import DeviceConfig
from sbsrf_update.devices import Device, create_device, engine_class
from sbsrf_update.errors import NoBackupsError, UpdateError
from sbsrf_update.process import quiesced
from sbsrf_update.progress import NullReporter, Reporter
from sbsrf_update.registry import DeviceRegistry
from sbsrf_update.release import Release, ReleaseSource
from sbsrf_update.settings import Settings

logger = logging.getLogger(__name__)


class Prompter(Protocol):
    def confirm(self, message: str, default: bool) -> bool: ...

    def select(self, message: str, options: list[str], default: int) -> int: ...


class Outcome(enum.Enum):
    UP_TO_DATE = "up_to_date"
    DECLINED = "declined"
    DONE = "done"


@dataclass
class UpdateReport:
    outcome: Outcome
    device: str
    previous_version: str
    release_version: str
    backup: Path | None = None
    batch: BatchResult = field(default_factory=BatchResult)
    deploy_error: str = ""


@dataclass
class RestoreReport:
    outcome: Outcome
    device: str
    version: str = ""
    files: int = 0
    engine_restarted: bool = False
    deploy_error: str = ""


class UpdateOrchestrator:
    """Drives update and restore for any registered device.

    Args:
        settings: Process-wide settings.
        registry: Where device configs are loaded from and saved to.
        source:   Release collaborator (``fetch_latest() -> Release``).
        client:   Shared HTTP client for downloads and uploads.
        prompter: Confirmation/selection collaborator.
        reporter: Progress sink (presentation only).
        echo:     Where user-facing lines go.
    """

    def __init__(
        self,
        settings: Settings,
        registry: DeviceRegistry,
        source: ReleaseSource,
        client: httpx.AsyncClient,
        prompter: Prompter,
        reporter: Reporter | None = None,
        echo: Callable[[str], None] = print,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.source = source
        self.client = client
        self.prompter = prompter
        self.reporter = reporter or NullReporter()
        self.echo = echo

    def device_for(self, config: DeviceConfig, host: str | None = None) -> Device:
        return create_device(config, self.settings, self.client, host=host, reporter=self.reporter)

    # ── Update ────────────────────────────────────────────────────

    async def update(
        self,
        name: str,
        force: bool = False,
        host: str | None = None,
        release: Release | None = None,
    ) -> UpdateReport:
        config = self.registry.load(name)
        device = self.device_for(config, host)

        if release is None:
            release = await self.source.fetch_latest()

        current = config.version
        report = UpdateReport(Outcome.UP_TO_DATE, name, current, release.version)
        reinstall = release.version == current
        if reinstall and not force:
            self.echo(f"Device {name} already has the latest version: {current}")
            return report

        if not reinstall:
            self.echo(release.changelog)
            self.echo(f"New version {release.version} is available")
        question = (
            "The device is already up to date. Reinstall anyway?"
            if reinstall
            else "Upgrade to the latest version?"
        )
        if not self.prompter.confirm(question, True):
            report.outcome = Outcome.DECLINED
            return report

        logger.info("Updating %s (%s) from %s to %s", name, device.engine, current, release.version)
        async with quiesced(device.guard, self.settings.process_timeout):
            report.backup = await device.backup()
            report.batch = await device.update(release)

        report.deploy_error = await self._deploy(device)

        config.version = release.version
        self.registry.save(config)
        report.outcome = Outcome.DONE

        failed = report.batch.failed
        if failed:
            self.echo(f"Update finished with {len(failed)} failed asset(s):")
            for outcome in failed:
                self.echo(f"  {outcome.name}: {outcome.error}")
        else:
            self.echo(f"Device {name} updated to {release.version}")
        if device.deploy_notice:
            self.echo(device.deploy_notice)
        return report

    # ── Restore ───────────────────────────────────────────────────

    async def restore(self, name: str, host: str | None = None) -> RestoreReport:
        config = self.registry.load(name)
        device = self.device_for(config, host)

        versions = device.backups.list()
        if not versions:
            raise NoBackupsError(name)

        index = self.prompter.select(
            "Select the version to restore", versions, versions.index(device.backups.latest())
        )
        version = versions[index]
        report = RestoreReport(Outcome.DECLINED, name, version)
        question = f"Restore {name} to version {version}? Its current configuration will be overwritten"
        if not self.prompter.confirm(question, False):
            return report

        logger.info("Restoring %s (%s) to %s", name, device.engine, version)
        async with quiesced(device.guard, self.settings.process_timeout) as stopped:
            report.files = await device.restore(version)
        report.engine_restarted = stopped

        report.deploy_error = await self._deploy(device)

        config.version = version
        self.registry.save(config)
        report.outcome = Outcome.DONE
        self.echo(f"Device {name} restored to {version}")
        if device.deploy_notice:
            self.echo(device.deploy_notice)
        return report

    # ── Bare invocation ───────────────────────────────────────────

    async def bootstrap(self, release: Release) -> DeviceConfig:
        """Make sure the local OS device has a config, installing the engine if offered."""
        name = self.settings.os_name
        config = self.registry.load_or_init(name)
        if self.registry.exists(name):
            return config

        engine = engine_class(config.name)
        if not engine.detect():
            device = self.device_for(config)
            question = f"No supported input method found. Install {engine.engine}?"
            if self.prompter.confirm(question, True):
                if not await device.install_engine(release):
                    self.echo(f"Please install {engine.engine} manually, then run this again")
        self.registry.save(config)
        self.echo(f"Created device {name} ({config.name}) at {config.work_dir}")
        return config

    async def run_default(self, force: bool = False) -> UpdateReport:
        """Bootstrap the local device, then update it."""
        release = await self.source.fetch_latest()
        await self.bootstrap(release)
        return await self.update(self.settings.os_name, force=force, release=release)

    async def _deploy(self, device: Device) -> str:
        try:
            await device.deploy()
        except UpdateError as exc:
            logger.error("Deploy failed on %s: %s", device.engine, exc)
            self.echo(f"Deploy failed: {exc}")
            return str(exc)
        return ""
