"""Blocking relay session driver.

Drives one Connection through handshake, keepalive and reconnection. Call
``run()`` repeatedly (or ``run_forever()``); each iteration blocks for at most
the read timeout unless it is (re)connecting or backing off.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from pinrelay.config import RelayConfig
from pinrelay.dispatcher import EventDispatcher
from pinrelay.errors import RelayError
from pinrelay.events import EventHandler
from pinrelay.protocol.codec import Message
from pinrelay.protocol.exceptions import RelayProtocolError
from pinrelay.session.base import SessionBase
from pinrelay.session.state import LivenessVerdict, SessionState
from pinrelay.transport.connection import Connection
from pinrelay.transport.exceptions import EmptyBufferError, RelayConnectionError, TransportError
from pinrelay.transport.retry_policy import RetryPolicy
from pinrelay.transport.socket_abstraction import resolve_address


class RelaySession(SessionBase):
    """Session state machine over a blocking Connection.

    The session owns its connection; application code may use
    ``session.connection`` to send between iterations, never concurrently
    with ``run()``.
    """

    def __init__(
        self,
        config: RelayConfig,
        handler: EventHandler | None = None,
        connection: Connection | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(config, clock)
        self.connection: Connection = connection or Connection(
            retry_policy=RetryPolicy(config.send_retries, config.send_retry_delay),
            read_timeout=config.read_timeout,
            platform=config.platform,
        )
        self.connection.liveness = self.liveness
        self.dispatcher: EventDispatcher = EventDispatcher(handler)
        self._sleep = sleep
        self._running = False

    @property
    def handler(self) -> EventHandler:
        return self.dispatcher.handler

    def set_handler(self, handler: EventHandler | None) -> None:
        self.dispatcher.handler = handler or EventHandler()

    def _await_reply(self, waiting_for: str) -> Message:
        deadline = self._reply_deadline()
        while True:
            remaining = self._remaining(deadline, waiting_for)
            try:
                return self.connection.read(timeout=remaining)
            except EmptyBufferError:
                continue

    def connect(self) -> None:
        """Resolve, open, log in and negotiate the heartbeat.

        Raises:
            RelayError: Any step failed; the session is left half open and
                the caller is expected to disconnect()

        """
        start_time = self._connect_started()
        try:
            address = resolve_address(self.config.server, self.config.port)
            self.connection.open(address, self.config.connect_timeout)

            self._set_state(SessionState.AUTHENTICATING)
            self.connection.login(self.config.token)
            self._login_reply(self._await_reply("login"))

            self.connection.heartbeat(self.config.heartbeat, self.config.rcv_buffer)
            self._heartbeat_reply(self._await_reply("heartbeat"))
        except RelayError as e:
            self._connect_failed(e)
            raise
        self._connect_succeeded(start_time)
        self.handler.handle_connect(self.connection)

    def disconnect(self, reason: str = "requested", backoff: bool = True) -> None:
        """Notify the handler, close the connection, then back off."""
        self._disconnect_started(reason)
        self.handler.handle_disconnect()
        self.connection.close()
        self._disconnect_finished(reason)
        if backoff:
            self._sleep(self.config.reconnect_delay)

    def _keep_alive(self) -> bool:
        """Apply the liveness verdict; False if the session was torn down."""
        verdict = self._liveness_verdict()
        if verdict is LivenessVerdict.DEAD:
            self.disconnect("heartbeat_timeout")
            return False
        if verdict is LivenessVerdict.PING_DUE:
            try:
                self.connection.ping()
            except RelayConnectionError as e:
                self.disconnect(self._ping_failed(e))
                return False
            self._ping_sent()
        return True

    def run(self) -> None:
        """One iteration of the session loop."""
        if not self.is_authenticated:
            try:
                self.connect()
            except RelayError as e:
                self.disconnect(f"{type(e).__name__}: {e}")
                return

        if not self._keep_alive():
            return

        try:
            msg = self.connection.read()
        except EmptyBufferError:
            return
        except (RelayProtocolError, TransportError) as e:
            reason = self._read_failed(e)
            if reason is not None:
                self.disconnect(reason)
            return

        try:
            self.dispatcher.dispatch(self.connection, msg)
        except RelayError as e:
            self._dispatch_failed(msg, e)
        except Exception:
            self._handler_crashed(msg)

    def run_forever(self) -> None:
        """Loop ``run()`` until ``stop()`` is called, then close the session."""
        self._running = True
        try:
            while self._running:
                self.run()
        finally:
            if self.state is not SessionState.DISCONNECTED:
                self.disconnect("shutdown", backoff=False)

    def stop(self) -> None:
        self._running = False
