"""Weasel, the Windows engine.

``WeaselServer.exe`` holds the live directory open while it runs, so every
mutation happens with the server stopped (see :func:`sbsrf_update.process.quiesced`).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from sbsrf_update.config import DeviceConfig
from sbsrf_update.devices.local import LocalDevice
from sbsrf_update.process import WindowsProcessGuard
from sbsrf_update.settings import Settings

logger = logging.getLogger(__name__)

SERVER_IMAGE = "WeaselServer.exe"
DEPLOYER_IMAGE = "WeaselDeployer.exe"

_REGISTRY_KEYS = (
    r"SOFTWARE\WOW6432Node\Rime\Weasel",
    r"SOFTWARE\Rime\Weasel",
)


def weasel_root() -> Path | None:
    """Return the Weasel install dir recorded in the registry, if any."""
    if sys.platform != "win32":
        return None
    import winreg

    for key_path in _REGISTRY_KEYS:
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path) as key:
                value, _ = winreg.QueryValueEx(key, "WeaselRoot")
                return Path(value)
        except OSError:
            continue
    return None


def _appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


class WeaselDevice(LocalDevice):
    engine = "Weasel"

    @classmethod
    def default_config(cls, settings: Settings, name: str) -> DeviceConfig:
        root = weasel_root()
        return DeviceConfig(
            name=cls.engine,
            work_dir=settings.device_dir(name),
            live_dir=_appdata() / "Rime",
            executable_path=root / SERVER_IMAGE if root else None,
        )

    @classmethod
    def detect(cls) -> bool:
        return weasel_root() is not None

    @classmethod
    def make_guard(cls, config: DeviceConfig) -> WindowsProcessGuard:
        return WindowsProcessGuard(config.executable_path, SERVER_IMAGE)

    async def deploy(self) -> None:
        exe = self.config.executable_path
        if exe is None:
            return
        await self._run(str(exe.parent / DEPLOYER_IMAGE), "/deploy")
        logger.info("Weasel redeployed")
