"""pytest configuration for sbsrf-update tests."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from sbsrf_update.process import ProcessGuard
from sbsrf_update.settings import Settings


def zip_bytes(files: dict[str, str | bytes]) -> bytes:
    """Build an in-memory zip from ``{entry_name: content}``."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


class ScriptedPrompter:
    """Answers prompts from a script and records every question asked."""

    def __init__(self, confirms=(), selects=None) -> None:
        self.confirms = list(confirms)
        self.selects = selects
        self.asked: list[str] = []

    def confirm(self, message: str, default: bool) -> bool:
        self.asked.append(message)
        if not self.confirms:
            return default
        return self.confirms.pop(0)

    def select(self, message: str, options: list[str], default: int) -> int:
        self.asked.append(message)
        return default if self.selects is None else self.selects


class FakeGuard(ProcessGuard):
    """In-memory engine process; records stop/start calls."""

    def __init__(self, running=True, obeys_stop=True, obeys_start=True):
        self.running = running
        self.obeys_stop = obeys_stop
        self.obeys_start = obeys_start
        self.events: list[str] = []

    async def is_running(self) -> bool:
        return self.running

    async def stop(self) -> None:
        self.events.append("stop")
        if self.obeys_stop:
            self.running = False

    async def start(self) -> None:
        self.events.append("start")
        if self.obeys_start:
            self.running = True


@pytest.fixture
def settings(tmp_path):
    return Settings(
        work_root=tmp_path / "home",
        os_name="linux",
        max_workers=2,
        task_timeout=5.0,
        process_timeout=0.5,
    )


@pytest.fixture
def make_zip(tmp_path):
    def _make(name: str, files: dict[str, str | bytes]) -> Path:
        path = tmp_path / name
        path.write_bytes(zip_bytes(files))
        return path

    return _make


@pytest.fixture
def prompter_factory():
    return ScriptedPrompter
