"""
Error taxonomy for macbridge.

Transient failures (network, store access) are retried by the component that
owns them; timeouts are never retried; parse and decode failures stay local
to the block or row that produced them and never surface here.
"""

from __future__ import annotations

from typing import Optional


class MacBridgeError(Exception):
    """Base for macbridge errors."""

    pass


class FetchError(MacBridgeError):
    """HTTP request failed: non-2xx status or network error. Retryable."""

    def __init__(self, message: str, *, url: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """Attempt exceeded its timeout or was aborted; never retried."""

    pass


class MessageStoreError(MacBridgeError):
    """Base for local Messages store errors."""

    pass


class MessageStoreAccessError(MessageStoreError):
    """Store cannot be opened or queried (missing file, no Full Disk Access)."""

    pass


class AutomationError(MacBridgeError):
    """osascript exited non-zero or could not be launched."""

    pass


class SchedulingError(MacBridgeError):
    """A deferred action was requested for a time that cannot be honored."""

    pass
