"""Progress reporting: presentation only, never affects control flow."""

from __future__ import annotations

from typing import Protocol

from tqdm import tqdm


class ProgressBar(Protocol):
    def set_total(self, total: int | None) -> None: ...

    def update(self, n: int = 1, message: str = "") -> None: ...

    def close(self, message: str = "") -> None: ...


class Reporter(Protocol):
    def bar(self, label: str, total: int | None = None, unit: str = "it") -> ProgressBar: ...


class _NullBar:
    def set_total(self, total: int | None) -> None:
        pass

    def update(self, n: int = 1, message: str = "") -> None:
        pass

    def close(self, message: str = "") -> None:
        pass


class NullReporter:
    """Discards all progress."""

    def bar(self, label: str, total: int | None = None, unit: str = "it") -> ProgressBar:
        return _NullBar()


class _TqdmBar:
    def __init__(self, label: str, total: int | None, unit: str) -> None:
        byte_unit = unit == "B"
        self._bar = tqdm(
            total=total,
            desc=label,
            unit=unit,
            unit_scale=byte_unit,
            unit_divisor=1024 if byte_unit else 1000,
            leave=True,
        )

    def set_total(self, total: int | None) -> None:
        if total is not None and total != self._bar.total:
            self._bar.total = total
            self._bar.refresh()

    def update(self, n: int = 1, message: str = "") -> None:
        if message:
            self._bar.set_postfix_str(message, refresh=False)
        self._bar.update(n)

    def close(self, message: str = "") -> None:
        if message:
            self._bar.set_postfix_str(message)
        self._bar.close()


class TqdmReporter:
    """Console progress bars, one per download / extract / upload step."""

    def bar(self, label: str, total: int | None = None, unit: str = "it") -> ProgressBar:
        return _TqdmBar(label, total, unit)


def download_callback(bar: ProgressBar):
    """Adapt a ``(bytes_so_far, total_bytes)`` callback onto *bar*."""
    state = {"done": 0}

    def _on_progress(done: int, total: int | None) -> None:
        bar.set_total(total)
        bar.update(done - state["done"])
        state["done"] = done

    return _on_progress
