"""Exception types for relay protocol (codec level) errors.

Every error raised by the codec derives from RelayProtocolError so the session
loop can treat a malformed frame as a skipped iteration, while
ProtocolViolationError marks conditions that end the current session.
"""

from __future__ import annotations

from pinrelay.errors import RelayError


class RelayProtocolError(RelayError):
    """Base exception for all frame encoding/decoding errors.

    Attributes:
        reason: Short machine-friendly failure reason (e.g. "too_short")
        data_preview: First 16 bytes of the offending data

    """

    def __init__(self, reason: str, data: bytes = b"") -> None:
        self.reason: str = reason
        # Only keep a short prefix; login frames carry the auth token
        self.data_preview: bytes = bytes(data[:16]) if data else b""
        super().__init__(f"Frame decode failed: {reason}")


class InvalidHeaderError(RelayProtocolError):
    """Fewer than 5 header bytes available, or header fields out of range."""


class InvalidMessageIdError(RelayProtocolError):
    """Inbound frame carries the reserved message id 0."""

    def __init__(self, data: bytes = b"") -> None:
        super().__init__("invalid_msg_id", data)


class UnknownMessageTypeError(RelayProtocolError):
    """Type code is not one of the enumerated protocol verbs."""

    def __init__(self, type_code: int, data: bytes = b"") -> None:
        self.type_code: int = type_code
        super().__init__(f"unknown_type_{type_code}", data)


class InvalidStatusError(RelayProtocolError):
    """Status-bearing frame carries an unrecognized status code."""

    def __init__(self, status_code: int, data: bytes = b"") -> None:
        self.status_code: int = status_code
        super().__init__(f"invalid_status_{status_code}", data)


class MalformedBodyError(RelayProtocolError):
    """Body is truncated or not valid UTF-8."""


class FrameBufferOverflowError(RelayProtocolError):
    """Too many unread bytes accumulated without forming a frame."""

    def __init__(self, buffer_size: int) -> None:
        self.buffer_size: int = buffer_size
        super().__init__("buffer_overflow")


class InvalidPinError(RelayProtocolError):
    """Virtual pin field is not an unsigned 8-bit integer."""

    def __init__(self, raw_pin: str) -> None:
        self.raw_pin: str = raw_pin
        super().__init__(f"invalid_pin_{raw_pin!r}")


class ProtocolViolationError(RelayProtocolError):
    """Server sent something the client cannot continue the session with."""


class UnsupportedInboundTypeError(ProtocolViolationError):
    """Known message type that a server is never expected to send."""

    def __init__(self, type_code: int, data: bytes = b"") -> None:
        self.type_code: int = type_code
        super().__init__(f"unsupported_inbound_type_{type_code}", data)
