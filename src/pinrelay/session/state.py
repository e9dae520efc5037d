"""Session decisions shared by the blocking and asyncio drivers.

Nothing in here performs I/O: the drivers feed it messages and timestamps and
act on the verdicts.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from pinrelay.protocol.codec import Message
from pinrelay.protocol.exceptions import ProtocolViolationError
from pinrelay.protocol.message_types import MessageType, ProtocolStatus
from pinrelay.transport.exceptions import (
    HeartbeatRejectedError,
    InvalidAuthTokenError,
    RedirectionError,
)

# Liveness thresholds, as multiples of the heartbeat interval
DEAD_AFTER_FACTOR = 1.5
PING_SPACING_FACTOR = 0.1


class SessionState(Enum):
    """Session state enumeration."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class LivenessVerdict(Enum):
    ALIVE = "alive"
    PING_DUE = "ping_due"
    DEAD = "dead"


@dataclass
class LivenessClock:
    """Timestamps (monotonic seconds) of the last inbound frame, ping and send.

    ``verdict()`` applies the keepalive rules for heartbeat interval H:

    - nothing received for more than 1.5 H: the server is gone
    - otherwise, a ping is due when the last ping is older than H/10 and
      either direction has been idle for more than H
    """

    heartbeat: float
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    last_received: float = 0.0
    last_ping: float = 0.0
    last_send: float = 0.0

    def __post_init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        now = self.clock()
        self.last_received = now
        self.last_ping = now
        self.last_send = now

    def mark_received(self) -> None:
        self.last_received = self.clock()

    def mark_sent(self) -> None:
        self.last_send = self.clock()

    def mark_ping(self) -> None:
        self.last_ping = self.clock()

    def verdict(self) -> LivenessVerdict:
        now = self.clock()
        recv_delta = now - self.last_received
        if recv_delta > self.heartbeat * DEAD_AFTER_FACTOR:
            return LivenessVerdict.DEAD

        ping_delta = now - self.last_ping
        send_delta = now - self.last_send
        idle = send_delta > self.heartbeat or recv_delta > self.heartbeat
        if ping_delta > self.heartbeat * PING_SPACING_FACTOR and idle:
            return LivenessVerdict.PING_DUE
        return LivenessVerdict.ALIVE


def classify_login_reply(reply: Message) -> None:
    """Accept an OK reply to LOGIN, raise for anything else.

    Raises:
        RedirectionError: Server answered with REDIRECT
        InvalidAuthTokenError: Status INVALID_TOKEN
        ProtocolViolationError: Any other reply

    """
    if reply.msg_type is MessageType.REDIRECT:
        raise RedirectionError(reply.body)
    if reply.status is ProtocolStatus.OK:
        return
    if reply.status is ProtocolStatus.INVALID_TOKEN:
        raise InvalidAuthTokenError
    status_name = reply.status.name if reply.status is not None else "none"
    msg = f"unexpected_login_reply: {reply.msg_type.name} status={status_name}"
    raise ProtocolViolationError(msg)


def check_heartbeat_ack(reply: Message) -> None:
    """Require an OK acknowledgment of the heartbeat configuration."""
    if reply.status is not ProtocolStatus.OK:
        raise HeartbeatRejectedError(reply.msg_type, reply.status)
