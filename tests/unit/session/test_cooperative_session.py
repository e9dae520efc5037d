"""Unit tests for AsyncRelaySession."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from pinrelay.config import RelayConfig
from pinrelay.events import AsyncEventHandler
from pinrelay.protocol.message_types import MessageType, ProtocolStatus
from pinrelay.session import cooperative
from pinrelay.session.cooperative import AsyncRelaySession
from pinrelay.session.state import SessionState
from pinrelay.transport.connection import AsyncConnection
from pinrelay.transport.exceptions import (
    DnsResolutionFailedError,
    InvalidAuthTokenError,
    ReplyTimeoutError,
    TransportError,
)
from pinrelay.transport.retry_policy import RetryPolicy
from tests.helpers.fakes import AsyncFakeStream, FakeClock, body_frame, status_frame

RESOLVED = ("127.0.0.1", 8080)


@pytest.fixture(autouse=True)
def resolved(monkeypatch):
    resolver = AsyncMock(return_value=RESOLVED)
    monkeypatch.setattr(cooperative, "resolve_address_async", resolver)
    return resolver


@pytest.fixture
def handler():
    return AsyncMock(spec=AsyncEventHandler)


@pytest.fixture
def make_session(handler, async_fake_stream, fake_clock):
    config = RelayConfig(
        token="secret-token",
        server="relay.test",
        port=8080,
        heartbeat=5,
        rcv_buffer=1024,
        reconnect_delay=1.0,
        send_retry_delay=0,
    )

    def _make(stream: AsyncFakeStream | None = None, clock: FakeClock | None = None, **changes):
        stream = stream or async_fake_stream
        conn = AsyncConnection(retry_policy=RetryPolicy(max_attempts=3, delay_seconds=0))
        conn.open = AsyncMock(side_effect=lambda _address, _timeout: setattr(conn, "stream", stream))
        return AsyncRelaySession(
            config.with_changes(**changes),
            handler,
            connection=conn,
            clock=clock or fake_clock,
            sleep=AsyncMock(),
        )

    return _make


@pytest.fixture
def session(make_session, async_fake_stream):
    async_fake_stream.feed(status_frame(1), status_frame(2))
    return make_session()


class TestAsyncConnect:
    @pytest.mark.asyncio
    async def test_handshake_success(self, session, async_fake_stream, handler, resolved) -> None:
        await session.connect()

        assert session.is_authenticated
        resolved.assert_awaited_once_with("relay.test", 8080)
        handler.handle_connect.assert_awaited_once_with(session.connection)
        assert [(f[0], f[1]) for f in async_fake_stream.frames()] == [
            (MessageType.LOGIN, 1),
            (MessageType.INTERNAL, 2),
        ]

    @pytest.mark.asyncio
    async def test_invalid_token(self, make_session, async_fake_stream) -> None:
        async_fake_stream.feed(status_frame(1, ProtocolStatus.INVALID_TOKEN))
        with pytest.raises(InvalidAuthTokenError):
            await make_session().connect()

    @pytest.mark.asyncio
    async def test_reply_timeout(self, make_session) -> None:
        session = make_session(clock=FakeClock(step=1.0), handshake_timeout=3.0)
        with pytest.raises(ReplyTimeoutError):
            await session.connect()

    @pytest.mark.asyncio
    async def test_dns_failure(self, make_session, resolved) -> None:
        resolved.side_effect = DnsResolutionFailedError("relay.test", 8080)
        session = make_session()
        with pytest.raises(DnsResolutionFailedError):
            await session.connect()
        session.connection.open.assert_not_awaited()


class TestAsyncRun:
    @pytest.mark.asyncio
    async def test_failed_connect_disconnects_and_backs_off(self, make_session, async_fake_stream, handler) -> None:
        async_fake_stream.feed(status_frame(1, ProtocolStatus.INVALID_TOKEN))
        session = make_session()

        await session.run()

        assert session.state is SessionState.DISCONNECTED
        handler.handle_disconnect.assert_awaited_once()
        session._sleep.assert_awaited_once_with(1.0)
        assert async_fake_stream.closed is True

    @pytest.mark.asyncio
    async def test_answers_server_ping(self, session, async_fake_stream) -> None:
        await session.run()
        async_fake_stream.feed(status_frame(77, msg_type=MessageType.PING))
        await session.run()
        assert async_fake_stream.written[-1] == bytes([0, 0, 77, 0, 200])

    @pytest.mark.asyncio
    async def test_dispatches_virtual_read(self, session, async_fake_stream, handler) -> None:
        await session.run()
        async_fake_stream.feed(body_frame(MessageType.HARDWARE, 5, "vr", "4"))
        await session.run()
        handler.handle_vpin_read.assert_awaited_once_with(session.connection, 4)

    @pytest.mark.asyncio
    async def test_dispatches_internal(self, session, async_fake_stream, handler) -> None:
        await session.run()
        async_fake_stream.feed(body_frame(MessageType.INTERNAL, 5, "rtc", "1700000000"))
        await session.run()
        handler.handle_internal.assert_awaited_once_with(session.connection, ("1700000000",))

    @pytest.mark.asyncio
    async def test_dead_server_disconnects(self, session, fake_clock) -> None:
        await session.run()
        fake_clock.advance(8)
        await session.run()
        assert session.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_sends_ping_when_idle(self, session, async_fake_stream, fake_clock) -> None:
        await session.run()
        fake_clock.advance(5.5)
        await session.run()
        assert async_fake_stream.frames()[-1][:2] == (MessageType.PING, 3)
        assert session.is_authenticated

    @pytest.mark.asyncio
    async def test_unsupported_inbound_type_disconnects(self, session, async_fake_stream) -> None:
        await session.run()
        async_fake_stream.feed(body_frame(MessageType.LOGIN, 9, "x"))
        await session.run()
        assert session.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_peer_close_disconnects(self, session, async_fake_stream) -> None:
        await session.run()
        async_fake_stream.feed(TransportError("connection_closed_by_peer"))
        await session.run()
        assert session.state is SessionState.DISCONNECTED


class TestAsyncRunForever:
    @pytest.mark.asyncio
    async def test_stop_from_handler(self, session, handler) -> None:
        handler.handle_connect.side_effect = lambda _conn: session.stop()
        await session.run_forever()
        assert session.state is SessionState.DISCONNECTED
        handler.handle_disconnect.assert_awaited_once()
        session._sleep.assert_not_awaited()

    def test_stop_before_start_is_a_no_op(self, session) -> None:
        session.stop()
        assert session.state is SessionState.DISCONNECTED
