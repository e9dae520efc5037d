"""Unit tests for inbound message routing."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pinrelay.dispatcher import (
    AsyncEventDispatcher,
    DispatchKind,
    DispatchPlan,
    EventDispatcher,
    parse_pin,
    plan,
)
from pinrelay.events import AsyncEventHandler, EventHandler
from pinrelay.protocol.codec import Message
from pinrelay.protocol.exceptions import InvalidPinError
from pinrelay.protocol.message_types import MessageType, ProtocolStatus


def hardware(*fields: str, msg_id: int = 7, msg_type: MessageType = MessageType.HARDWARE) -> Message:
    return Message(msg_type, msg_id, body=fields)


class TestParsePin:
    @pytest.mark.parametrize(("raw", "expected"), [("0", 0), ("42", 42), ("255", 255), ("007", 7)])
    def test_valid(self, raw, expected) -> None:
        assert parse_pin(raw) == expected

    @pytest.mark.parametrize("raw", ["", "256", "-1", "4a", " 4", "٣"])
    def test_invalid(self, raw) -> None:
        with pytest.raises(InvalidPinError) as exc_info:
            parse_pin(raw)
        assert exc_info.value.raw_pin == raw


class TestPlan:
    def test_ping_reply_reuses_inbound_id(self) -> None:
        action = plan(Message(MessageType.PING, 77, status=ProtocolStatus.OK))
        assert action == DispatchPlan(DispatchKind.PING_REPLY, 77)

    def test_internal_drops_command_field(self) -> None:
        action = plan(Message(MessageType.INTERNAL, 3, body=("rtc", "1700000000", "x")))
        assert action.kind is DispatchKind.INTERNAL
        assert action.data == ("1700000000", "x")

    def test_virtual_write(self) -> None:
        action = plan(hardware("vw", "42", "hello"))
        assert action == DispatchPlan(DispatchKind.VPIN_WRITE, 7, pin=42, data=("hello",))

    def test_virtual_write_keeps_only_first_value(self) -> None:
        assert plan(hardware("vw", "1", "a", "b")).data == ("a",)

    def test_virtual_read(self) -> None:
        assert plan(hardware("vr", "4")) == DispatchPlan(DispatchKind.VPIN_READ, 7, pin=4)

    def test_bridge_is_routed_like_hardware(self) -> None:
        assert plan(hardware("vr", "9", msg_type=MessageType.BRIDGE)).kind is DispatchKind.VPIN_READ

    @pytest.mark.parametrize(
        "fields",
        [
            ("vw", "1"),
            ("vr",),
            ("vr", "1", "extra"),
            ("dw", "1", "1"),
            ("",),
        ],
    )
    def test_other_shapes_are_ignored(self, fields) -> None:
        assert plan(hardware(*fields)).kind is DispatchKind.IGNORE

    def test_response_is_ignored(self) -> None:
        assert plan(Message(MessageType.RESPONSE, 1, status=ProtocolStatus.OK)).kind is DispatchKind.IGNORE

    def test_bad_pin_raises(self) -> None:
        with pytest.raises(InvalidPinError):
            plan(hardware("vw", "300", "x"))


class TestEventDispatcher:
    @pytest.fixture
    def handler(self):
        return MagicMock(spec=EventHandler)

    @pytest.fixture
    def conn(self):
        return MagicMock()

    def test_ping_answered_on_connection(self, handler, conn) -> None:
        EventDispatcher(handler).dispatch(conn, Message(MessageType.PING, 12, status=ProtocolStatus.OK))
        conn.response.assert_called_once_with(ProtocolStatus.OK, 12)

    def test_vpin_write(self, handler, conn) -> None:
        action = EventDispatcher(handler).dispatch(conn, hardware("vw", "3", "on"))
        handler.handle_vpin_write.assert_called_once_with(conn, 3, "on")
        assert action.kind is DispatchKind.VPIN_WRITE

    def test_vpin_read(self, handler, conn) -> None:
        EventDispatcher(handler).dispatch(conn, hardware("vr", "5"))
        handler.handle_vpin_read.assert_called_once_with(conn, 5)

    def test_internal(self, handler, conn) -> None:
        EventDispatcher(handler).dispatch(conn, Message(MessageType.INTERNAL, 2, body=("ota", "url")))
        handler.handle_internal.assert_called_once_with(conn, ("url",))

    def test_ignored_message_touches_nothing(self, handler, conn) -> None:
        EventDispatcher(handler).dispatch(conn, hardware("dw", "1", "1"))
        assert handler.method_calls == []
        assert conn.method_calls == []

    def test_default_handler(self, conn) -> None:
        dispatcher = EventDispatcher()
        assert type(dispatcher.handler) is EventHandler
        dispatcher.dispatch(conn, hardware("vr", "5"))


class TestAsyncEventDispatcher:
    @pytest.mark.asyncio
    async def test_ping_answered(self) -> None:
        conn = AsyncMock()
        await AsyncEventDispatcher().dispatch(conn, Message(MessageType.PING, 12, status=ProtocolStatus.OK))
        conn.response.assert_awaited_once_with(ProtocolStatus.OK, 12)

    @pytest.mark.asyncio
    async def test_vpin_write(self) -> None:
        handler = AsyncMock(spec=AsyncEventHandler)
        conn = AsyncMock()
        await AsyncEventDispatcher(handler).dispatch(conn, hardware("vw", "8", "21.5"))
        handler.handle_vpin_write.assert_awaited_once_with(conn, 8, "21.5")
