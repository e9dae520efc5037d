"""Unit tests for the blocking RelaySession state machine."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pinrelay.config import RelayConfig
from pinrelay.events import EventHandler
from pinrelay.protocol.exceptions import ProtocolViolationError
from pinrelay.protocol.message_types import MessageType, ProtocolStatus
from pinrelay.session import blocking
from pinrelay.session.blocking import RelaySession
from pinrelay.session.state import SessionState
from pinrelay.transport.connection import Connection
from pinrelay.transport.exceptions import (
    DnsResolutionFailedError,
    HeartbeatRejectedError,
    InvalidAuthTokenError,
    RedirectionError,
    ReplyTimeoutError,
    TransportError,
)
from pinrelay.transport.retry_policy import RetryPolicy
from tests.helpers.fakes import FakeClock, FakeStream, body_frame, status_frame

RESOLVED = ("127.0.0.1", 8080)


@pytest.fixture(autouse=True)
def resolved(monkeypatch):
    resolver = MagicMock(return_value=RESOLVED)
    monkeypatch.setattr(blocking, "resolve_address", resolver)
    return resolver


@pytest.fixture
def config():
    return RelayConfig(
        token="secret-token",
        server="relay.test",
        port=8080,
        heartbeat=5,
        rcv_buffer=1024,
        reconnect_delay=1.0,
        send_retry_delay=0,
    )


@pytest.fixture
def handler():
    return MagicMock(spec=EventHandler)


@pytest.fixture
def make_session(config, handler, fake_stream, fake_clock):
    def _make(stream: FakeStream | None = None, clock: FakeClock | None = None, **changes) -> RelaySession:
        stream = stream or fake_stream
        conn = Connection(retry_policy=RetryPolicy(max_attempts=3, delay_seconds=0))
        conn.open = MagicMock(side_effect=lambda _address, _timeout: setattr(conn, "stream", stream))
        return RelaySession(
            config.with_changes(**changes),
            handler,
            connection=conn,
            clock=clock or fake_clock,
            sleep=MagicMock(),
        )

    return _make


@pytest.fixture
def session(make_session, fake_stream):
    """Session whose stream answers the login and heartbeat with OK."""
    fake_stream.feed(status_frame(1), status_frame(2))
    return make_session()


class TestConnect:
    """Handshake flow and failure classification."""

    def test_handshake_success(self, session, fake_stream, handler, resolved) -> None:
        session.connect()

        assert session.state is SessionState.AUTHENTICATED
        resolved.assert_called_once_with("relay.test", 8080)
        session.connection.open.assert_called_once_with(RESOLVED, session.config.connect_timeout)
        handler.handle_connect.assert_called_once_with(session.connection)

        login, heartbeat = fake_stream.frames()
        assert login == (MessageType.LOGIN, 1, 12, b"secret-token")
        assert heartbeat[0] == MessageType.INTERNAL
        assert heartbeat[1] == 2
        fields = heartbeat[3].split(b"\x00")
        assert fields[2:] == [b"buff-in", b"1024", b"h-beat", b"5", b"dev", b"python"]

    def test_liveness_reset_on_connect(self, session, fake_clock) -> None:
        fake_clock.advance(60)
        session.connect()
        assert session.liveness.last_received == fake_clock.now

    def test_invalid_token(self, make_session, fake_stream) -> None:
        fake_stream.feed(status_frame(1, ProtocolStatus.INVALID_TOKEN))
        with pytest.raises(InvalidAuthTokenError):
            make_session().connect()

    def test_redirect(self, make_session, fake_stream) -> None:
        fake_stream.feed(body_frame(MessageType.REDIRECT, 1, "relay2.test", "8442"))
        with pytest.raises(RedirectionError):
            make_session().connect()

    def test_unexpected_status(self, make_session, fake_stream) -> None:
        fake_stream.feed(status_frame(1, ProtocolStatus.NO_DATA))
        with pytest.raises(ProtocolViolationError):
            make_session().connect()

    def test_heartbeat_rejected(self, make_session, fake_stream) -> None:
        fake_stream.feed(status_frame(1), status_frame(2, ProtocolStatus.INVALID_TOKEN))
        session = make_session()
        with pytest.raises(HeartbeatRejectedError):
            session.connect()
        assert session.state is SessionState.AUTHENTICATED

    def test_reply_timeout(self, make_session) -> None:
        session = make_session(clock=FakeClock(step=1.0), handshake_timeout=3.0)
        with pytest.raises(ReplyTimeoutError):
            session.connect()

    def test_dns_failure(self, make_session, resolved) -> None:
        resolved.side_effect = DnsResolutionFailedError("relay.test", 8080)
        session = make_session()
        with pytest.raises(DnsResolutionFailedError):
            session.connect()
        session.connection.open.assert_not_called()


class TestRun:
    """One iteration of the session loop."""

    def test_first_run_connects(self, session) -> None:
        session.run()
        assert session.is_authenticated

    def test_failed_connect_disconnects_and_backs_off(self, make_session, fake_stream, handler) -> None:
        fake_stream.feed(status_frame(1, ProtocolStatus.INVALID_TOKEN))
        session = make_session()

        session.run()

        assert session.state is SessionState.DISCONNECTED
        handler.handle_disconnect.assert_called_once()
        session._sleep.assert_called_once_with(1.0)
        assert fake_stream.closed is True
        assert session.connection.next_id == 0

    def test_answers_server_ping_with_its_id(self, session, fake_stream) -> None:
        session.run()
        fake_stream.feed(status_frame(77, msg_type=MessageType.PING))
        session.run()
        assert fake_stream.written[-1] == bytes([0, 0, 77, 0, 200])

    def test_dispatches_virtual_write(self, session, fake_stream, handler) -> None:
        session.run()
        fake_stream.feed(body_frame(MessageType.HARDWARE, 5, "vw", "42", "hello"))
        session.run()
        handler.handle_vpin_write.assert_called_once_with(session.connection, 42, "hello")

    def test_empty_poll_is_a_no_op(self, session, handler) -> None:
        session.run()
        session.run()
        assert session.is_authenticated
        handler.handle_disconnect.assert_not_called()

    def test_dead_server_disconnects(self, session, fake_clock, handler) -> None:
        session.run()
        fake_clock.advance(7.6)
        session.run()
        assert session.state is SessionState.DISCONNECTED
        handler.handle_disconnect.assert_called_once()

    def test_sends_ping_when_idle(self, session, fake_stream, fake_clock) -> None:
        session.run()
        fake_clock.advance(5.5)
        session.run()
        msg_type, msg_id, value, _ = fake_stream.frames()[-1]
        assert (msg_type, msg_id, value) == (MessageType.PING, 3, 0)
        assert session.liveness.last_ping == fake_clock.now
        assert session.is_authenticated

    def test_ping_failure_disconnects(self, session, fake_stream, fake_clock) -> None:
        session.run()
        fake_stream.fail_writes = 3
        fake_clock.advance(5.5)
        session.run()
        assert session.state is SessionState.DISCONNECTED

    def test_ping_after_bad_frame_is_still_answered(self, session, fake_stream) -> None:
        session.run()
        fake_stream.feed(bytes([20, 0, 0, 0, 1]) + b"x" + status_frame(9, msg_type=MessageType.PING))
        session.run()
        session.run()
        assert session.is_authenticated
        assert fake_stream.written[-1] == bytes([0, 0, 9, 0, 200])

    def test_undecodable_frame_is_skipped(self, session, fake_stream) -> None:
        session.run()
        fake_stream.feed(bytes([99, 0, 9, 0, 0]))
        session.run()
        assert session.is_authenticated

    def test_unsupported_inbound_type_disconnects(self, session, fake_stream) -> None:
        session.run()
        fake_stream.feed(body_frame(MessageType.LOGIN, 9, "x"))
        session.run()
        assert session.state is SessionState.DISCONNECTED

    def test_peer_close_disconnects(self, session, fake_stream) -> None:
        session.run()
        fake_stream.feed(TransportError("connection_closed_by_peer"))
        session.run()
        assert session.state is SessionState.DISCONNECTED

    def test_handler_exception_does_not_end_session(self, session, fake_stream, handler) -> None:
        handler.handle_vpin_write.side_effect = RuntimeError("handler bug")
        session.run()
        fake_stream.feed(body_frame(MessageType.HARDWARE, 5, "vw", "1", "on"))
        session.run()
        assert session.is_authenticated

    def test_invalid_pin_is_logged_not_raised(self, session, fake_stream, handler) -> None:
        session.run()
        fake_stream.feed(body_frame(MessageType.HARDWARE, 6, "vr", "300"))
        session.run()
        handler.handle_vpin_read.assert_not_called()
        assert session.is_authenticated

    def test_reconnects_after_disconnect(self, session, fake_stream) -> None:
        session.run()
        session.disconnect("test")
        fake_stream.feed(status_frame(1), status_frame(2))
        session.run()
        assert session.is_authenticated
        assert [f[1] for f in fake_stream.frames()][-2:] == [1, 2]


class TestHandlers:
    def test_default_handler_is_no_op(self, config) -> None:
        session = RelaySession(config)
        assert type(session.handler) is EventHandler

    def test_set_handler(self, session, handler) -> None:
        replacement = MagicMock(spec=EventHandler)
        session.set_handler(replacement)
        assert session.handler is replacement
        session.set_handler(None)
        assert type(session.handler) is EventHandler


class TestRunForever:
    def test_stop_from_handler(self, session, handler) -> None:
        handler.handle_connect.side_effect = lambda _conn: session.stop()
        session.run_forever()
        assert session.state is SessionState.DISCONNECTED
        session._sleep.assert_not_called()
