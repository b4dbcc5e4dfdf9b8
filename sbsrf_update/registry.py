"""Device registry: one directory (and one config file) per device name.

Layout::

    <work_root>/
        _cache/                 shared download cache (not a device)
        macos/config.json       the local device, named after the OS
        macos/backups/<version>/
        iphone/config.json      a remote device added with ``device add``
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from sbsrf_update.config import CONFIG_FILE, DeviceConfig
from sbsrf_update.devices import HamsterDevice, LOCAL_ENGINES, engine_class
from sbsrf_update.errors import ConfigNotFoundError, FilesystemError
from sbsrf_update.settings import Settings

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Load, create and persist :class:`DeviceConfig` records by name."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def root(self) -> Path:
        return self.settings.work_root

    def config_path(self, name: str) -> Path:
        return self.settings.device_dir(name) / CONFIG_FILE

    def exists(self, name: str) -> bool:
        return self.config_path(name).is_file()

    def names(self) -> list[str]:
        """Return device names, skipping internal ``_``-prefixed directories."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir() if p.is_dir() and not p.name.startswith("_")
        )

    def load(self, name: str) -> DeviceConfig:
        """Return the stored config for *name*; raises :class:`ConfigNotFoundError`."""
        path = self.config_path(name)
        if not path.is_file():
            raise ConfigNotFoundError(name)
        config = DeviceConfig.load(path)
        logger.debug("Loaded %s from %s", name, path)
        return config

    def load_or_init(self, name: str) -> DeviceConfig:
        """Like :meth:`load`, but the local OS device gets a detected default.

        The default is not written until the caller saves it.
        """
        if self.exists(name):
            return self.load(name)
        if name != self.settings.os_name:
            raise ConfigNotFoundError(name)
        return self.detect_local(name)

    def detect_local(self, name: str | None = None) -> DeviceConfig:
        """Build a default config for the engine installed on this OS."""
        name = name or self.settings.os_name
        candidates = LOCAL_ENGINES.get(self.settings.os_name, [])
        if not candidates:
            raise ConfigNotFoundError(name)
        chosen = next((cls for cls in candidates if cls.detect()), candidates[0])
        logger.info("Using %s as the default engine for %s", chosen.engine, name)
        return chosen.default_config(self.settings, name)

    def save(self, config: DeviceConfig) -> None:
        config.save()

    def create(self, name: str, engine: str = HamsterDevice.engine) -> DeviceConfig:
        """Create and persist a new device of *engine* (remote by default)."""
        config = engine_class(engine).default_config(self.settings, name)
        config.save()
        logger.info("Created device %s (%s) at %s", name, config.name, config.work_dir)
        return config

    def remove(self, name: str) -> None:
        """Delete the device directory, backups included."""
        path = self.settings.device_dir(name)
        if not path.exists() and not path.is_symlink():
            raise ConfigNotFoundError(name)
        try:
            if path.is_symlink():
                path.unlink()
            else:
                shutil.rmtree(path)
        except OSError as exc:
            raise FilesystemError(f"Cannot remove {path}: {exc}") from exc
        logger.info("Removed device %s", name)

    def set_default(self, name: str) -> Path:
        """Point the OS-named device at *name*'s directory via a symlink."""
        target = self.settings.device_dir(name)
        if not (target / CONFIG_FILE).is_file():
            raise ConfigNotFoundError(name)
        link = self.settings.device_dir(self.settings.os_name)
        if link == target:
            return link
        try:
            if link.is_symlink() or link.is_file():
                link.unlink()
            elif link.is_dir():
                raise FilesystemError(
                    f"{link} is a real device directory; remove it before choosing another default"
                )
            os.symlink(target, link, target_is_directory=True)
        except OSError as exc:
            raise FilesystemError(f"Cannot link {link} -> {target}: {exc}") from exc
        logger.info("Default device is now %s", name)
        return link

    def clean(self, everything: bool = False) -> Path:
        """Remove the download cache, or the whole work root when *everything*."""
        path = self.root if everything else self.settings.cache_dir
        if path.exists():
            try:
                shutil.rmtree(path)
            except OSError as exc:
                raise FilesystemError(f"Cannot remove {path}: {exc}") from exc
        return path
