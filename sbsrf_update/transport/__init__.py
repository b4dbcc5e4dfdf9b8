"""sbsrf_update.transport — how files reach an engine's live configuration.

Exports:
    Transport               — abstract base
    LocalCopyTransport      — shared download cache + direct extraction
    RemoteUploadTransport   — per-file HTTP upload to the phone engine
"""

from __future__ import annotations

from sbsrf_update.transport.base import Transport
from sbsrf_update.transport.local import LocalCopyTransport
from sbsrf_update.transport.remote import RemoteUploadTransport

__all__ = ["Transport", "LocalCopyTransport", "RemoteUploadTransport"]
