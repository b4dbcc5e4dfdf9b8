"""Error taxonomy for sbsrf-update.

Library code raises these; only the CLI catches :class:`UpdateError` and turns
it into a printed message and a non-zero exit status.
"""

from __future__ import annotations


class UpdateError(Exception):
    """Base error for every update/restore failure."""


class ConfigNotFoundError(UpdateError):
    """Raised when no configuration exists for the requested device name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Device not found: {name}")
        self.name = name


class UnsupportedEngineError(UpdateError):
    """Raised when a device config names an engine this tool cannot drive."""


class RemoteHostRequiredError(UpdateError):
    """Raised when a remote device is targeted without a host address."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Device {name} is remote; pass its address with -H/--host, e.g. -H 192.168.1.108"
        )
        self.name = name


class NetworkError(UpdateError):
    """Download, upload or release-fetch failure."""


class FilesystemError(UpdateError):
    """Copy, extract or delete failure."""


class ProcessControlError(UpdateError):
    """Raised when an engine process could not be stopped or restarted."""


class NoBackupsError(UpdateError):
    """Raised when a restore is requested but no backup exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No backups available for device {name}")
        self.name = name
