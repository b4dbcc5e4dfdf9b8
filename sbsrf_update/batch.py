"""Fan-out helper for independent per-asset tasks.

Every job runs to completion (or timeout) on its own; one failure never
cancels its siblings. The caller gets one :class:`TaskOutcome` per job.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class TaskOutcome:
    name: str
    ok: bool
    error: str = ""


@dataclass
class BatchResult:
    outcomes: list[TaskOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return [o.name for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[TaskOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)


async def run_batch(
    jobs: dict[str, Callable[[], Awaitable[object]]],
    limit: int = 4,
    timeout: float | None = None,
) -> BatchResult:
    """Run *jobs* concurrently, at most *limit* at a time.

    Args:
        jobs:    ``{name: zero-arg coroutine factory}``.
        limit:   Concurrency cap.
        timeout: Per-job timeout in seconds (``None`` = unbounded). A timed-out
                 job is cancelled; work it handed to a thread keeps running
                 unless the job reacts to cancellation, as
                 :func:`~sbsrf_update.archive.extract_zip_async` does.

    Returns:
        A :class:`BatchResult` with outcomes in the order of *jobs*.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _run(name: str, factory: Callable[[], Awaitable[object]]) -> TaskOutcome:
        async with semaphore:
            try:
                if timeout is None:
                    await factory()
                else:
                    await asyncio.wait_for(factory(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Task %s timed out after %ss", name, timeout)
                return TaskOutcome(name, False, f"timed out after {timeout}s")
            except Exception as exc:
                logger.warning("Task %s failed: %s", name, exc)
                return TaskOutcome(name, False, str(exc) or type(exc).__name__)
        logger.debug("Task %s done", name)
        return TaskOutcome(name, True)

    outcomes = await asyncio.gather(*(_run(n, f) for n, f in jobs.items()))
    return BatchResult(list(outcomes))
