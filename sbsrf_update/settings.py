"""Process-wide settings, resolved once at start-up.

Every component receives a :class:`Settings` instance through its constructor;
nothing reads the environment after :meth:`Settings.from_env` has run.

Environment variables:

    SBSRF_UPDATE_HOME              work root (default ``~/.sbsrf-update``)
    SBSRF_UPDATE_RELEASE_SOURCE    ``gitee`` (default) or ``github``
    SBSRF_UPDATE_MAX_WORKERS       concurrent asset tasks / unzip threads (default 4)
    SBSRF_UPDATE_TASK_TIMEOUT      seconds per asset task, 0 disables (default 600)
    SBSRF_UPDATE_PROCESS_TIMEOUT   seconds to wait for an engine to stop/start (default 10)
"""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

RELEASE_SOURCES = ("gitee", "github")

_OS_NAMES = {"Darwin": "macos", "Windows": "windows", "Linux": "linux"}


def current_os() -> str:
    """Return the short OS identifier used as the default device name."""
    system = platform.system()
    return _OS_NAMES.get(system, system.lower())


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    work_root: Path
    release_source: str = "gitee"
    max_workers: int = 4
    task_timeout: float | None = 600.0
    process_timeout: float = 10.0
    os_name: str = ""

    def __post_init__(self) -> None:
        if self.release_source not in RELEASE_SOURCES:
            raise ValueError(
                f"Unknown release source '{self.release_source}'. Choose from: {list(RELEASE_SOURCES)}"
            )
        if self.max_workers < 1:
            object.__setattr__(self, "max_workers", 1)
        if not self.os_name:
            object.__setattr__(self, "os_name", current_os())

    @classmethod
    def from_env(cls, work_root: Path | None = None) -> Settings:
        root = work_root or Path(
            os.environ.get("SBSRF_UPDATE_HOME", str(Path.home() / ".sbsrf-update"))
        )
        timeout = _int_env("SBSRF_UPDATE_TASK_TIMEOUT", 600)
        return cls(
            work_root=root.expanduser(),
            release_source=os.environ.get("SBSRF_UPDATE_RELEASE_SOURCE", "gitee").lower(),
            max_workers=_int_env("SBSRF_UPDATE_MAX_WORKERS", 4),
            task_timeout=float(timeout) if timeout > 0 else None,
            process_timeout=float(_int_env("SBSRF_UPDATE_PROCESS_TIMEOUT", 10)),
        )

    @property
    def cache_dir(self) -> Path:
        """Download cache shared by every local device."""
        return self.work_root / "_cache"

    def device_dir(self, name: str) -> Path:
        return self.work_root / name
