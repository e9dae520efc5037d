"""Custom exception types for transport and session errors.

This module defines the exception hierarchy for connection-related errors,
alongside the codec errors in pinrelay.protocol.exceptions.
"""

from __future__ import annotations

from pinrelay.errors import RelayError
from pinrelay.protocol.message_types import MessageType, ProtocolStatus


class RelayConnectionError(RelayError):
    """Base exception for transport and session failures.

    Note: Named RelayConnectionError to avoid shadowing Python's built-in ConnectionError.

    Attributes:
        reason: Specific failure reason

    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class DnsResolutionFailedError(RelayConnectionError):
    """No address could be resolved for the configured server."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        super().__init__(f"dns_resolution_failed: {host}:{port}")


class TransportError(RelayConnectionError):
    """I/O failure on the underlying stream (peer closed, reset, timeout).

    Raised when:
    - TCP connect fails or times out
    - Connection closed by the server
    - Socket error during read/write/flush
    """


class NotConnectedError(TransportError):
    """Send or read attempted while no stream is open."""

    def __init__(self) -> None:
        super().__init__("not_connected")


class MessageSendFailedError(RelayConnectionError):
    """Every send attempt failed.

    Attributes:
        attempts: Number of attempts made

    """

    def __init__(self, attempts: int, last_error: str = "") -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"send_failed after {attempts} attempts: {last_error}")


class EmptyBufferError(RelayConnectionError):
    """Nothing to read yet; a recoverable poll miss."""

    def __init__(self) -> None:
        super().__init__("empty_buffer")


class ReplyTimeoutError(RelayConnectionError):
    """No reply arrived within the handshake deadline."""

    def __init__(self, waiting_for: str, timeout_seconds: float) -> None:
        self.waiting_for = waiting_for
        self.timeout_seconds = timeout_seconds
        super().__init__(f"no {waiting_for} reply within {timeout_seconds}s")


class HandshakeError(RelayConnectionError):
    """Handshake failed (rejected token, redirect, heartbeat not acknowledged)."""


class InvalidAuthTokenError(HandshakeError):
    """Server rejected the auth token."""

    def __init__(self) -> None:
        super().__init__("invalid_auth_token")


class RedirectionError(HandshakeError):
    """Server asked the client to connect elsewhere.

    Attributes:
        target: Redirect body fields (typically host and port)

    """

    def __init__(self, target: tuple[str, ...] = ()) -> None:
        self.target = target
        super().__init__(f"redirected to {':'.join(target) or 'unknown'}")


class HeartbeatRejectedError(HandshakeError):
    """Heartbeat configuration was not acknowledged with OK."""

    def __init__(self, msg_type: MessageType, status: ProtocolStatus | None) -> None:
        self.msg_type = msg_type
        self.status = status
        status_name = status.name if status is not None else "none"
        super().__init__(f"heartbeat_rejected: {msg_type.name} status={status_name}")
