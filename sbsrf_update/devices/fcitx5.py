"""Fcitx5 (with fcitx5-rime), the Linux engine."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from sbsrf_update.config import DeviceConfig
from sbsrf_update.devices.local import LocalDevice
from sbsrf_update.settings import Settings

logger = logging.getLogger(__name__)


class Fcitx5Device(LocalDevice):
    engine = "Fcitx5"

    @classmethod
    def default_config(cls, settings: Settings, name: str) -> DeviceConfig:
        remote = shutil.which("fcitx5-remote")
        return DeviceConfig(
            name=cls.engine,
            work_dir=settings.device_dir(name),
            live_dir=Path.home() / ".local/share/fcitx5/rime",
            executable_path=Path(remote) if remote else None,
        )

    @classmethod
    def detect(cls) -> bool:
        return shutil.which("fcitx5") is not None or (Path.home() / ".local/share/fcitx5").is_dir()

    async def deploy(self) -> None:
        exe = self.config.executable_path
        if exe is None:
            return
        await self._run(str(exe), "-r")
        logger.info("Fcitx5 reloaded")
