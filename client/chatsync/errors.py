"""Exception hierarchy for the chatsync client.

None of these are fatal to the process: REST failures are surfaced on the
active session and live-event parse failures are dropped at the dispatcher.
"""
from typing import Optional


class ChatSyncError(Exception):
    """Base exception for chatsync errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ChatApiError(ChatSyncError):
    """Raised when a REST call fails (transport error or non-2xx status)."""
    def __init__(self, message: str, path: str, status_code: Optional[int] = None):
        self.path = path
        self.status_code = status_code
        detail = f"{path}: {message}"
        if status_code is not None:
            detail = f"{path} returned {status_code}: {message}"
        super().__init__(detail)


class EventError(ChatSyncError):
    """Base exception for live-event decoding errors."""


class UnknownEventError(EventError):
    """Raised when an inbound frame names an event kind outside the catalogue."""
    def __init__(self, kind: object):
        self.kind = kind
        super().__init__(f"Unknown event kind: {kind!r}")


class MalformedEventError(EventError):
    """Raised when an event payload does not match its declared shape."""
    def __init__(self, kind: str, reason: str):
        self.kind = kind
        super().__init__(f"Malformed {kind} payload: {reason}")
