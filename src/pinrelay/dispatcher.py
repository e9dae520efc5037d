"""Routing of inbound messages to event handler callbacks.

``plan()`` decides what a message means without touching I/O; the two
dispatcher classes carry the plan out against a connection and a handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pinrelay.events import AsyncEventHandler, EventHandler
from pinrelay.logging_abstraction import get_logger
from pinrelay.metrics import registry
from pinrelay.protocol.codec import Message
from pinrelay.protocol.exceptions import InvalidPinError
from pinrelay.protocol.message_types import MessageType, ProtocolStatus
from pinrelay.transport.connection import AsyncConnection, Connection

logger = get_logger(__name__)

MAX_PIN = 0xFF
PIN_COMMANDS = frozenset({MessageType.HARDWARE, MessageType.BRIDGE})


class DispatchKind(Enum):
    PING_REPLY = "ping_reply"
    INTERNAL = "internal"
    VPIN_READ = "vpin_read"
    VPIN_WRITE = "vpin_write"
    IGNORE = "ignore"


@dataclass(frozen=True)
class DispatchPlan:
    """What to do with one inbound message.

    Attributes:
        kind: Action to take
        msg_id: Inbound message id (the id a PING reply must reuse)
        pin: Virtual pin for VPIN_READ/VPIN_WRITE
        data: Value for VPIN_WRITE, fields for INTERNAL

    """

    kind: DispatchKind
    msg_id: int
    pin: int | None = None
    data: tuple[str, ...] = ()


def parse_pin(raw: str) -> int:
    """Parse a virtual pin field as an unsigned 8-bit integer.

    Raises:
        InvalidPinError: Not a plain decimal number in 0..255

    """
    if not (raw.isascii() and raw.isdigit()):
        raise InvalidPinError(raw)
    pin = int(raw)
    if pin > MAX_PIN:
        raise InvalidPinError(raw)
    return pin


def plan(msg: Message) -> DispatchPlan:
    """Classify an inbound message.

    Raises:
        InvalidPinError: vr/vw command with a malformed pin number

    """
    if msg.msg_type is MessageType.PING:
        return DispatchPlan(DispatchKind.PING_REPLY, msg.id)

    if msg.msg_type is MessageType.INTERNAL:
        return DispatchPlan(DispatchKind.INTERNAL, msg.id, data=msg.body[1:])

    if msg.msg_type in PIN_COMMANDS:
        body = msg.body
        if len(body) >= 3 and body[0] == "vw":
            return DispatchPlan(DispatchKind.VPIN_WRITE, msg.id, pin=parse_pin(body[1]), data=(body[2],))
        if len(body) == 2 and body[0] == "vr":
            return DispatchPlan(DispatchKind.VPIN_READ, msg.id, pin=parse_pin(body[1]))

    return DispatchPlan(DispatchKind.IGNORE, msg.id)


def _log_plan(msg: Message, action: DispatchPlan) -> None:
    if action.kind is DispatchKind.IGNORE:
        logger.debug(
            "Ignoring %s message",
            msg.msg_type.name,
            extra={"msg_id": msg.id, "fields": len(msg.body)},
        )
    else:
        logger.debug(
            "Dispatching %s",
            action.kind.value,
            extra={"msg_id": msg.id, "pin": action.pin},
        )
    registry.record_event_dispatched(action.kind.value)


class EventDispatcher:
    """Runs dispatch plans for a blocking session."""

    def __init__(self, handler: EventHandler | None = None) -> None:
        self.handler: EventHandler = handler or EventHandler()

    def dispatch(self, conn: Connection, msg: Message) -> DispatchPlan:
        action = plan(msg)
        _log_plan(msg, action)
        if action.kind is DispatchKind.PING_REPLY:
            conn.response(ProtocolStatus.OK, action.msg_id)
        elif action.kind is DispatchKind.INTERNAL:
            self.handler.handle_internal(conn, action.data)
        elif action.kind is DispatchKind.VPIN_WRITE:
            self.handler.handle_vpin_write(conn, action.pin, action.data[0])
        elif action.kind is DispatchKind.VPIN_READ:
            self.handler.handle_vpin_read(conn, action.pin)
        return action


class AsyncEventDispatcher:
    """Runs dispatch plans for an asyncio session."""

    def __init__(self, handler: AsyncEventHandler | None = None) -> None:
        self.handler: AsyncEventHandler = handler or AsyncEventHandler()

    async def dispatch(self, conn: AsyncConnection, msg: Message) -> DispatchPlan:
        action = plan(msg)
        _log_plan(msg, action)
        if action.kind is DispatchKind.PING_REPLY:
            await conn.response(ProtocolStatus.OK, action.msg_id)
        elif action.kind is DispatchKind.INTERNAL:
            await self.handler.handle_internal(conn, action.data)
        elif action.kind is DispatchKind.VPIN_WRITE:
            await self.handler.handle_vpin_write(conn, action.pin, action.data[0])
        elif action.kind is DispatchKind.VPIN_READ:
            await self.handler.handle_vpin_read(conn, action.pin)
        return action
