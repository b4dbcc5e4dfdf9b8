"""Per-device configuration record, persisted as ``<work_dir>/config.json``."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from sbsrf_update.errors import ConfigNotFoundError, FilesystemError

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
INITIAL_VERSION = "20051203"

_PATH_FIELDS = ("executable_path", "live_dir", "work_dir")


@dataclass
class DeviceConfig:
    """One engine installation this tool keeps in sync.

    ``version`` is an opaque release tag, compared for equality only.
    """

    name: str
    work_dir: Path
    live_dir: Path | None = None
    executable_path: Path | None = None
    max_backups: int = 1
    sentence_mode: bool = False
    version: str = INITIAL_VERSION

    def __post_init__(self) -> None:
        self.work_dir = Path(self.work_dir)
        if self.live_dir is not None:
            self.live_dir = Path(self.live_dir)
        if self.executable_path is not None:
            self.executable_path = Path(self.executable_path)
        if self.max_backups < 0:
            raise ValueError(f"max_backups must be >= 0, got {self.max_backups}")

    @property
    def config_path(self) -> Path:
        return self.work_dir / CONFIG_FILE

    @property
    def backup_root(self) -> Path:
        return self.work_dir / "backups"

    @classmethod
    def load(cls, path: str | Path) -> DeviceConfig:
        path = Path(path)
        if not path.exists():
            raise ConfigNotFoundError(path.parent.name)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise FilesystemError(f"Cannot read device config {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise FilesystemError(f"Invalid device config {path}: expected a JSON object")
        known = {k for k in cls.__dataclass_fields__}
        filtered = {k: v for k, v in data.items() if k in known}
        filtered.setdefault("work_dir", str(path.parent))
        try:
            return cls(**filtered)
        except (TypeError, ValueError) as exc:
            raise FilesystemError(f"Invalid device config {path}: {exc}") from exc

    def to_dict(self) -> dict:
        data = {}
        for k, v in self.__dict__.items():
            if k in _PATH_FIELDS:
                data[k] = str(v) if v is not None else None
            else:
                data[k] = v
        return data

    def save(self) -> None:
        """Write the whole record back; there are no partial-field updates."""
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            tmp = self.config_path.with_suffix(".json.tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
            tmp.replace(self.config_path)
        except OSError as exc:
            raise FilesystemError(f"Cannot write device config {self.config_path}: {exc}") from exc
        logger.debug("Saved config for %s (version=%s)", self.name, self.version)
