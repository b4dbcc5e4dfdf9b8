"""sbsrf_update.devices — one class per supported engine.

Usage::

    from sbsrf_update.devices import create_device
    device = create_device(config, settings, client, host="192.168.1.108")
"""

from __future__ import annotations

import httpx

from sbsrf_update.config import DeviceConfig
from sbsrf_update.errors import UnsupportedEngineError
from sbsrf_update.progress import Reporter
from sbsrf_update.settings import Settings

from .base import Device
from .fcitx5 import Fcitx5Device
from .hamster import HamsterDevice
from .local import LocalDevice
from .squirrel import SquirrelDevice
from .weasel import WeaselDevice

__all__ = [
    "Device",
    "LocalDevice",
    "SquirrelDevice",
    "WeaselDevice",
    "Fcitx5Device",
    "HamsterDevice",
    "ENGINES",
    "LOCAL_ENGINES",
    "create_device",
    "engine_class",
]

ENGINES: dict[str, type[Device]] = {
    "squirrel": SquirrelDevice,
    "weasel": WeaselDevice,
    "fcitx5": Fcitx5Device,
    "hamster": HamsterDevice,
}

# Engines that can live on each host OS, in order of preference.
LOCAL_ENGINES: dict[str, list[type[Device]]] = {
    "macos": [SquirrelDevice],
    "windows": [WeaselDevice],
    "linux": [Fcitx5Device],
}


def engine_class(engine: str) -> type[Device]:
    cls = ENGINES.get(engine.lower())
    if cls is None:
        raise UnsupportedEngineError(
            f"Unsupported engine '{engine}'. Choose from: {[c.engine for c in ENGINES.values()]}"
        )
    return cls


def create_device(
    config: DeviceConfig,
    settings: Settings,
    client: httpx.AsyncClient,
    host: str | None = None,
    reporter: Reporter | None = None,
) -> Device:
    """Return the :class:`Device` for *config*'s engine, fully wired."""
    return engine_class(config.name).build(config, settings, client, host=host, reporter=reporter)
