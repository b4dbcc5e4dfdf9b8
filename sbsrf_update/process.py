"""Engine process control for engines that lock their live directory.

Stop and start only *signal* the process; callers poll :meth:`is_running`
until the new state is observed. :func:`quiesced` wraps a block of
filesystem work in stop → wait → work → start → wait.
"""

from __future__ import annotations

import abc
import asyncio
import csv
import io
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from sbsrf_update.errors import ProcessControlError

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.25


class ProcessGuard(abc.ABC):
    """Detect, stop and start one engine server process."""

    @abc.abstractmethod
    async def is_running(self) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def stop(self) -> None:
        """Ask the process to quit gracefully; returns without waiting."""
        raise NotImplementedError

    @abc.abstractmethod
    async def start(self) -> None:
        """Launch the server; returns without waiting for it to come up."""
        raise NotImplementedError


class WindowsProcessGuard(ProcessGuard):
    """``WeaselServer.exe``: found via ``tasklist``, stopped with ``/q``."""

    def __init__(self, executable: Path | None, image_name: str = "WeaselServer.exe") -> None:
        self.executable = executable
        self.image_name = image_name

    async def pid(self) -> int:
        """Return the server PID, or -1 when it is not running."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "tasklist",
                "/FI",
                f"IMAGENAME eq {self.image_name}",
                "/FO",
                "CSV",
                "/NH",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await proc.communicate()
        except OSError as exc:
            raise ProcessControlError(f"Cannot query process table: {exc}") from exc
        return parse_tasklist_pid(stdout.decode("utf-8", errors="replace"), self.image_name)

    async def is_running(self) -> bool:
        return await self.pid() > 0

    async def stop(self) -> None:
        await self._spawn("/q", wait=True)

    async def start(self) -> None:
        # The server keeps running; only the quit request is waited on.
        await self._spawn()

    async def _spawn(self, *args: str, wait: bool = False) -> None:
        if self.executable is None:
            raise ProcessControlError(
                f"No executable configured for {self.image_name}; set executable_path in the device config"
            )
        try:
            proc = await asyncio.create_subprocess_exec(
                str(self.executable),
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise ProcessControlError(f"Cannot run {self.executable}: {exc}") from exc
        if wait:
            returncode = await proc.wait()
            if returncode != 0:
                logger.warning("%s %s exited with %s", self.executable, " ".join(args), returncode)


def parse_tasklist_pid(output: str, image_name: str) -> int:
    """Extract the PID for *image_name* from ``tasklist /FO CSV /NH`` output."""
    for row in csv.reader(io.StringIO(output)):
        if len(row) >= 2 and row[0].strip().lower() == image_name.lower():
            try:
                return int(row[1])
            except ValueError:
                continue
    return -1


async def wait_for_state(
    guard: ProcessGuard,
    running: bool,
    timeout: float,
    interval: float = _POLL_INTERVAL,
) -> None:
    """Poll *guard* until ``is_running() == running`` or raise after *timeout*."""
    deadline = time.monotonic() + timeout
    while True:
        if await guard.is_running() == running:
            return
        if time.monotonic() >= deadline:
            state = "running" if running else "stopped"
            raise ProcessControlError(f"Engine process not {state} after {timeout:.0f}s")
        await asyncio.sleep(interval)


@asynccontextmanager
async def quiesced(
    guard: ProcessGuard | None,
    timeout: float,
    interval: float = _POLL_INTERVAL,
) -> AsyncIterator[bool]:
    """Keep the engine stopped for the duration of the block.

    Yields whether the process had to be stopped. An unconfirmed stop raises
    :class:`ProcessControlError` before the block runs. The process is started
    again even when the block fails.
    """
    if guard is None or not await guard.is_running():
        yield False
        return

    logger.info("Engine is running, stopping it")
    await guard.stop()
    await wait_for_state(guard, False, timeout, interval)
    try:
        yield True
    except BaseException:
        # A restart error is only logged so the block's exception propagates.
        try:
            await _resume(guard, timeout, interval)
        except ProcessControlError as exc:
            logger.error("Engine restart failed: %s", exc)
        raise
    await _resume(guard, timeout, interval)


async def _resume(guard: ProcessGuard, timeout: float, interval: float) -> None:
    logger.info("Restarting engine")
    await guard.start()
    await wait_for_state(guard, True, timeout, interval)
