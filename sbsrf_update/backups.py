"""Versioned snapshots of a device's live directory.

Layout::

    <work_dir>/backups/<version>/...              local engines (a directory copy)
    <work_dir>/backups/<version>/<archive-name>   remote engine (one zip file)

A backup is named by the version it was taken *before* overwriting, and the
collection is ordered by name, not by creation time. ``backups/<version>``
exists only for completed snapshots: work happens in a hidden staging
directory that is renamed into place on success and removed on failure.
"""

from __future__ import annotations

import logging
import shutil
from collections import deque
from pathlib import Path
from typing import Awaitable, Callable

from sbsrf_update.errors import FilesystemError

logger = logging.getLogger(__name__)


def copy_tree(src: Path, dst: Path, on_file: Callable[[Path], None] | None = None) -> int:
    """Recursively copy the contents of *src* into *dst* (created if needed).

    Existing files under *dst* are overwritten. Returns the number of files
    copied; ``on_file`` is called once per file before it is copied.
    """
    src, dst = Path(src), Path(dst)
    if not src.is_dir():
        raise FilesystemError(f"Source directory does not exist: {src}")
    copied = 0
    pending = deque([(src, dst)])
    try:
        dst.mkdir(parents=True, exist_ok=True)
        while pending:
            current, target = pending.popleft()
            for entry in sorted(current.iterdir()):
                out = target / entry.name
                if entry.is_dir():
                    out.mkdir(parents=True, exist_ok=True)
                    pending.append((entry, out))
                else:
                    if on_file:
                        on_file(entry)
                    shutil.copy2(entry, out)
                    copied += 1
    except OSError as exc:
        raise FilesystemError(f"Copying {src} to {dst} failed: {exc}") from exc
    return copied


class BackupStore:
    """The ordered snapshot history of one device.

    Args:
        root:         ``<work_dir>/backups``.
        max_backups:  Retention limit; ``0`` disables backups entirely.
        archive_name: For engines whose snapshot is a single archive, the
                      file name inside ``<version>/`` (e.g. ``"Rime.zip"``).
    """

    def __init__(self, root: Path, max_backups: int, archive_name: str | None = None) -> None:
        self.root = Path(root)
        self.max_backups = max_backups
        self.archive_name = archive_name

    @property
    def enabled(self) -> bool:
        return self.max_backups > 0

    def path_for(self, version: str) -> Path:
        return self.root / version

    def exists(self, version: str) -> bool:
        return self.path_for(version).is_dir()

    def list(self) -> list[str]:
        """Return backup names sorted ascending; hidden staging dirs are skipped."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir() if p.is_dir() and not p.name.startswith(".")
        )

    def latest(self) -> str | None:
        names = self.list()
        return names[-1] if names else None

    def restore_source(self, version: str) -> Path:
        """Resolve what a restore of *version* reads from."""
        base = self.path_for(version)
        if not base.is_dir():
            raise FilesystemError(f"Backup {version} does not exist under {self.root}")
        if self.archive_name:
            archive = base / self.archive_name
            if not archive.is_file():
                raise FilesystemError(f"Backup {version} has no {self.archive_name}")
            return archive
        return base

    def ensure_capacity(self) -> list[str]:
        """Drop the oldest backups so one more fits within ``max_backups``.

        Returns the removed names. A removal failure raises
        :class:`FilesystemError` rather than letting the store overflow.
        """
        if not self.root.exists():
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FilesystemError(f"Cannot create {self.root}: {exc}") from exc
            return []

        names = self.list()
        removed: list[str] = []
        while names and len(names) >= self.max_backups:
            oldest = names.pop(0)
            try:
                shutil.rmtree(self.path_for(oldest))
            except OSError as exc:
                raise FilesystemError(f"Cannot remove old backup {oldest}: {exc}") from exc
            logger.info("Removed old backup %s", oldest)
            removed.append(oldest)
        return removed

    def snapshot(
        self,
        source_dir: Path,
        version: str,
        on_file: Callable[[Path], None] | None = None,
    ) -> Path | None:
        """Copy *source_dir* into ``backups/<version>/``.

        Returns the backup path, or ``None`` when backups are disabled. An
        existing backup of the same version is kept as is.
        """
        if not self.enabled:
            logger.debug("Backups disabled (max_backups=0)")
            return None
        target = self.path_for(version)
        if target.exists():
            logger.info("Version %s already backed up at %s, skipping", version, target)
            return target

        self.ensure_capacity()
        staging = self._staging(version)
        try:
            count = copy_tree(source_dir, staging, on_file)
            staging.rename(target)
        except (FilesystemError, OSError) as exc:
            shutil.rmtree(staging, ignore_errors=True)
            if isinstance(exc, FilesystemError):
                raise
            raise FilesystemError(f"Cannot finalize backup {version}: {exc}") from exc
        logger.info("Backed up %d files of version %s to %s", count, version, target)
        return target

    async def capture(
        self,
        version: str,
        writer: Callable[[Path], Awaitable[None]],
    ) -> Path | None:
        """Like :meth:`snapshot`, but *writer* fills the staging directory.

        Used by engines whose live state is fetched rather than copied.
        """
        if not self.enabled:
            logger.debug("Backups disabled (max_backups=0)")
            return None
        target = self.path_for(version)
        if target.exists():
            logger.info("Version %s already backed up at %s, skipping", version, target)
            return target

        self.ensure_capacity()
        staging = self._staging(version)
        try:
            await writer(staging)
            staging.rename(target)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise FilesystemError(f"Cannot finalize backup {version}: {exc}") from exc
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        logger.info("Backed up version %s to %s", version, target)
        return target

    def _staging(self, version: str) -> Path:
        staging = self.root / f".{version}.partial"
        try:
            if staging.exists():
                shutil.rmtree(staging)
            staging.mkdir(parents=True)
        except OSError as exc:
            raise FilesystemError(f"Cannot prepare staging dir {staging}: {exc}") from exc
        return staging
