"""Protocol-level errors raised while handling a single inbound message.

None of these tear down a connection. Validation and decode failures
reject one message with an ``error`` outbound; lookup failures are
logged and the message is dropped.
"""

from __future__ import annotations


class ProtocolError(Exception):
    """Base class for errors resolved locally by the session engine."""

    reason: str = "Failed to process message"

    def __init__(self, detail: str = "", reason: str | None = None) -> None:
        super().__init__(detail or reason or self.reason)
        if reason is not None:
            self.reason = reason
        self.detail = detail


class MessageValidationError(ProtocolError):
    """A required field is missing, empty, or has the wrong shape."""

    reason = "unrecognized or malformed message"


class ImageDecodeError(ProtocolError):
    """Image payload bytes could not be parsed."""

    reason = "Invalid frame data"


class SessionLookupError(ProtocolError):
    """No live session matches the id (message raced a disconnect)."""

    reason = "Session not found"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id
