"""Zip extraction into a live or scratch directory.

Directory entries (and the parents of every file entry) are created up front,
then file entries are written in parallel by a thread pool. Each worker opens
its own :class:`zipfile.ZipFile` handle; a single handle is not safe to read
from several threads at once.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import threading
import zipfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Callable

from sbsrf_update.errors import FilesystemError

logger = logging.getLogger(__name__)

_UTF8_FLAG = 0x800


def entry_name(info: zipfile.ZipInfo) -> str:
    """Return the entry name, recovering UTF-8 names stored without the UTF-8 flag."""
    if info.flag_bits & _UTF8_FLAG:
        return info.filename
    try:
        return info.filename.encode("cp437").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return info.filename


def _target_for(dest: Path, name: str) -> Path:
    parts = PurePosixPath(name.replace("\\", "/")).parts
    if not parts or parts[0] in ("/", "") or ".." in parts or ":" in parts[0]:
        raise FilesystemError(f"Unsafe path in archive: {name}")
    return dest.joinpath(*parts)


def extract_zip(
    archive: Path,
    dest: Path,
    on_file: Callable[[str], None] | None = None,
    workers: int = 4,
    cancel: threading.Event | None = None,
) -> list[Path]:
    """Extract *archive* into *dest*, overwriting existing files.

    Args:
        archive: Path of the zip file.
        dest:    Destination directory (created when missing).
        on_file: Called with the entry name once per file written.
        workers: Size of the writer thread pool.
        cancel:  When set, entries not yet started are skipped.

    Returns:
        The list of files written before any cancellation.
    """
    archive = Path(archive)
    dest = Path(dest)
    try:
        with zipfile.ZipFile(archive) as zf:
            infos = zf.infolist()
    except (OSError, zipfile.BadZipFile) as exc:
        raise FilesystemError(f"Cannot open archive {archive}: {exc}") from exc

    files: list[tuple[zipfile.ZipInfo, str, Path]] = []
    try:
        dest.mkdir(parents=True, exist_ok=True)
        for info in infos:
            name = entry_name(info)
            target = _target_for(dest, name)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                files.append((info, name, target))
    except OSError as exc:
        raise FilesystemError(f"Cannot create directories under {dest}: {exc}") from exc

    local = threading.local()
    handles: list[zipfile.ZipFile] = []
    handles_lock = threading.Lock()

    def _handle() -> zipfile.ZipFile:
        zf = getattr(local, "zf", None)
        if zf is None:
            zf = zipfile.ZipFile(archive)
            local.zf = zf
            with handles_lock:
                handles.append(zf)
        return zf

    def _write(item: tuple[zipfile.ZipInfo, str, Path]) -> Path | None:
        if cancel is not None and cancel.is_set():
            return None
        info, name, target = item
        with _handle().open(info) as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
        if on_file:
            on_file(name)
        return target

    try:
        with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
            written = [p for p in pool.map(_write, files) if p is not None]
    except (OSError, zipfile.BadZipFile) as exc:
        raise FilesystemError(f"Extracting {archive.name} into {dest} failed: {exc}") from exc
    finally:
        for zf in handles:
            zf.close()

    if cancel is not None and cancel.is_set():
        logger.warning(
            "Extraction of %s cancelled after %d of %d files", archive.name, len(written), len(files)
        )
    logger.debug("Extracted %d files from %s into %s", len(written), archive.name, dest)
    return written


async def extract_zip_async(
    archive: Path,
    dest: Path,
    on_file: Callable[[str], None] | None = None,
    workers: int = 4,
) -> list[Path]:
    """Run :func:`extract_zip` in a worker thread.

    Cancelling the awaiting task (a batch timeout, for instance) stops the
    extraction between entries instead of leaving it writing in the background.
    """
    cancel = threading.Event()
    try:
        return await asyncio.to_thread(extract_zip, archive, dest, on_file, workers, cancel)
    except asyncio.CancelledError:
        cancel.set()
        raise
