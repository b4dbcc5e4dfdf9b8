"""Abstract transport: how files reach a device's live configuration."""

from __future__ import annotations

import abc
from pathlib import Path

from sbsrf_update.progress import NullReporter, Reporter
from sbsrf_update.release import Asset


class Transport(abc.ABC):
    """Moves release assets and restored trees into a live configuration location."""

    @abc.abstractmethod
    async def install(self, asset: Asset, reporter: Reporter | None = None) -> None:
        """Download *asset* and unpack it into the live location.

        Raises :class:`~sbsrf_update.errors.NetworkError` or
        :class:`~sbsrf_update.errors.FilesystemError`; the caller isolates
        failures per asset.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def push_tree(self, source_dir: Path, reporter: Reporter | None = None) -> int:
        """Copy every file under *source_dir* into the live location.

        Returns the number of files transferred. Any failed file makes the
        whole call fail. The local variant stops at the first copy failure
        with a :class:`~sbsrf_update.errors.FilesystemError`; the remote
        variant attempts every file, then raises a
        :class:`~sbsrf_update.errors.NetworkError` naming the failures.
        """
        raise NotImplementedError

    @staticmethod
    def _reporter(reporter: Reporter | None) -> Reporter:
        return reporter if reporter is not None else NullReporter()
