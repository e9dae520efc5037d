"""Session bookkeeping shared by the blocking and asyncio drivers.

SessionBase holds everything in a session iteration that does not touch the
connection: state transitions, handshake deadlines and metrics, the liveness
verdict, and the mapping from read errors to disconnect reasons. The drivers
only add the (blocking or awaited) I/O between these steps.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from pinrelay.config import RelayConfig
from pinrelay.correlation import generate_correlation_id, set_correlation_id
from pinrelay.errors import RelayError
from pinrelay.logging_abstraction import get_logger
from pinrelay.metrics import registry
from pinrelay.protocol.codec import Message
from pinrelay.protocol.exceptions import ProtocolViolationError, RelayProtocolError
from pinrelay.session.state import (
    LivenessClock,
    LivenessVerdict,
    SessionState,
    check_heartbeat_ack,
    classify_login_reply,
)
from pinrelay.transport.exceptions import RelayConnectionError, ReplyTimeoutError, TransportError

logger = get_logger(__name__)


class SessionBase:
    """State machine bookkeeping common to RelaySession and AsyncRelaySession."""

    def __init__(self, config: RelayConfig, clock: Callable[[], float] = time.monotonic) -> None:
        self.config: RelayConfig = config
        self.liveness: LivenessClock = LivenessClock(config.heartbeat, clock)
        self.state: SessionState = SessionState.DISCONNECTED
        self._clock = clock

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        registry.record_session_state(state.value)

    # Handshake

    def _reply_deadline(self) -> float:
        return self._clock() + self.config.handshake_timeout

    def _remaining(self, deadline: float, waiting_for: str) -> float:
        """Seconds left to wait for a handshake reply.

        Raises:
            ReplyTimeoutError: The deadline has passed

        """
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise ReplyTimeoutError(waiting_for, self.config.handshake_timeout)
        return remaining

    def _connect_started(self) -> float:
        set_correlation_id(generate_correlation_id())
        self._set_state(SessionState.CONNECTING)
        logger.info("→ Connecting to relay", extra={"server": self.config.server, "port": self.config.port})
        return time.perf_counter()

    def _login_reply(self, reply: Message) -> None:
        classify_login_reply(reply)
        self._set_state(SessionState.AUTHENTICATED)

    def _heartbeat_reply(self, reply: Message) -> None:
        check_heartbeat_ack(reply)

    def _connect_failed(self, error: RelayError) -> None:
        registry.record_handshake(type(error).__name__)

    def _connect_succeeded(self, start_time: float) -> None:
        self.liveness.reset()
        elapsed = time.perf_counter() - start_time
        registry.record_handshake("success", elapsed)
        logger.info(
            "✓ Authenticated with %s:%d in %.1fms",
            self.config.server,
            self.config.port,
            elapsed * 1000,
            extra={"heartbeat": self.config.heartbeat},
        )

    # Teardown

    def _disconnect_started(self, reason: str) -> None:
        logger.warning("✗ Disconnected: %s", reason, extra={"state": self.state.value})

    def _disconnect_finished(self, reason: str) -> None:
        self._set_state(SessionState.DISCONNECTED)
        registry.record_disconnect(reason.split(":", 1)[0])
        set_correlation_id(None)

    # Keepalive

    def _liveness_verdict(self) -> LivenessVerdict:
        verdict = self.liveness.verdict()
        if verdict is LivenessVerdict.DEAD:
            registry.record_ping("timeout")
        return verdict

    def _ping_sent(self) -> None:
        self.liveness.mark_ping()
        registry.record_ping("sent")

    def _ping_failed(self, error: RelayConnectionError) -> str:
        """Record a failed keepalive ping; return the disconnect reason."""
        registry.record_ping("failed")
        return f"ping_failed: {error}"

    # Reads and dispatch

    def _read_failed(self, error: RelayProtocolError | TransportError) -> str | None:
        """Return the disconnect reason for a failed read, or None to carry on."""
        if isinstance(error, ProtocolViolationError):
            return f"protocol_violation: {error.reason}"
        if isinstance(error, TransportError):
            return f"transport_error: {error.reason}"
        logger.warning("Dropped undecodable frame: %s", error.reason, extra={"data": error.data_preview.hex()})
        return None

    def _dispatch_failed(self, msg: Message, error: RelayError) -> None:
        logger.warning(
            "Failed to handle %s id=%d: %s",
            msg.msg_type.name,
            msg.id,
            error,
            extra={"error_type": type(error).__name__},
        )

    def _handler_crashed(self, msg: Message) -> None:
        logger.exception("Event handler raised on %s id=%d", msg.msg_type.name, msg.id)
