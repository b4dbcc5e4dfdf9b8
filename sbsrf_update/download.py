"""Streaming HTTP download to a local file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import httpx

from sbsrf_update.errors import FilesystemError, NetworkError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


async def download_file(
    client: httpx.AsyncClient,
    url: str,
    target: Path,
    on_progress: Callable[[int, int | None], None] | None = None,
) -> Path:
    """Stream *url* into *target*.

    Data is written to ``<target>.part`` and renamed only after the body has
    been fully received, so a failed download never leaves a file under the
    final name.

    ``on_progress(bytes_so_far, total_bytes)`` is called once before the first
    chunk and after every chunk; *total_bytes* is ``None`` when the server
    sends no Content-Length.
    """
    target = Path(target)
    partial = target.with_name(target.name + ".part")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(f"Cannot create {target.parent}: {exc}") from exc

    try:
        async with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            length = response.headers.get("content-length")
            total = int(length) if length and length.isdigit() else None
            done = 0
            if on_progress:
                on_progress(done, total)
            with open(partial, "wb") as f:
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    f.write(chunk)
                    done += len(chunk)
                    if on_progress:
                        on_progress(done, total)
        partial.replace(target)
    except httpx.HTTPStatusError as exc:
        partial.unlink(missing_ok=True)
        raise NetworkError(
            f"Download of {url} failed with status {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        partial.unlink(missing_ok=True)
        raise NetworkError(f"Download of {url} failed: {exc}") from exc
    except OSError as exc:
        partial.unlink(missing_ok=True)
        raise FilesystemError(f"Cannot write {target}: {exc}") from exc

    logger.debug("Downloaded %s -> %s (%d bytes)", url, target, done)
    return target
