"""Asyncio relay session driver.

Same state machine as RelaySession; every I/O step is awaited, so the task
only suspends at connect, read, write and back-off sleeps. Reads are bounded
by the configured read timeout, so ``run()`` yields regularly even when the
server is silent.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from pinrelay.config import RelayConfig
from pinrelay.dispatcher import AsyncEventDispatcher
from pinrelay.errors import RelayError
from pinrelay.events import AsyncEventHandler
from pinrelay.protocol.codec import Message
from pinrelay.protocol.exceptions import RelayProtocolError
from pinrelay.session.base import SessionBase
from pinrelay.session.state import LivenessVerdict, SessionState
from pinrelay.transport.connection import AsyncConnection
from pinrelay.transport.exceptions import EmptyBufferError, RelayConnectionError, TransportError
from pinrelay.transport.retry_policy import RetryPolicy
from pinrelay.transport.socket_abstraction import resolve_address_async


class AsyncRelaySession(SessionBase):
    """Session state machine over an AsyncConnection."""

    def __init__(
        self,
        config: RelayConfig,
        handler: AsyncEventHandler | None = None,
        connection: AsyncConnection | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(config, clock)
        self.connection: AsyncConnection = connection or AsyncConnection(
            retry_policy=RetryPolicy(config.send_retries, config.send_retry_delay),
            read_timeout=config.read_timeout,
            platform=config.platform,
        )
        self.connection.liveness = self.liveness
        self.dispatcher: AsyncEventDispatcher = AsyncEventDispatcher(handler)
        self._sleep = sleep
        self._stop_event: asyncio.Event | None = None

    @property
    def handler(self) -> AsyncEventHandler:
        return self.dispatcher.handler

    def set_handler(self, handler: AsyncEventHandler | None) -> None:
        self.dispatcher.handler = handler or AsyncEventHandler()

    async def _await_reply(self, waiting_for: str) -> Message:
        deadline = self._reply_deadline()
        while True:
            remaining = self._remaining(deadline, waiting_for)
            try:
                return await self.connection.read(timeout=remaining)
            except EmptyBufferError:
                continue

    async def connect(self) -> None:
        """Resolve, open, log in and negotiate the heartbeat."""
        start_time = self._connect_started()
        try:
            address = await resolve_address_async(self.config.server, self.config.port)
            await self.connection.open(address, self.config.connect_timeout)

            self._set_state(SessionState.AUTHENTICATING)
            await self.connection.login(self.config.token)
            self._login_reply(await self._await_reply("login"))

            await self.connection.heartbeat(self.config.heartbeat, self.config.rcv_buffer)
            self._heartbeat_reply(await self._await_reply("heartbeat"))
        except RelayError as e:
            self._connect_failed(e)
            raise
        self._connect_succeeded(start_time)
        await self.handler.handle_connect(self.connection)

    async def disconnect(self, reason: str = "requested", backoff: bool = True) -> None:
        self._disconnect_started(reason)
        await self.handler.handle_disconnect()
        await self.connection.close()
        self._disconnect_finished(reason)
        if backoff:
            await self._sleep(self.config.reconnect_delay)

    async def _keep_alive(self) -> bool:
        verdict = self._liveness_verdict()
        if verdict is LivenessVerdict.DEAD:
            await self.disconnect("heartbeat_timeout")
            return False
        if verdict is LivenessVerdict.PING_DUE:
            try:
                await self.connection.ping()
            except RelayConnectionError as e:
                await self.disconnect(self._ping_failed(e))
                return False
            self._ping_sent()
        return True

    async def run(self) -> None:
        """One iteration of the session loop."""
        if not self.is_authenticated:
            try:
                await self.connect()
            except RelayError as e:
                await self.disconnect(f"{type(e).__name__}: {e}")
                return

        if not await self._keep_alive():
            return

        try:
            msg = await self.connection.read()
        except EmptyBufferError:
            return
        except (RelayProtocolError, TransportError) as e:
            reason = self._read_failed(e)
            if reason is not None:
                await self.disconnect(reason)
            return

        try:
            await self.dispatcher.dispatch(self.connection, msg)
        except RelayError as e:
            self._dispatch_failed(msg, e)
        except Exception:
            self._handler_crashed(msg)

    async def run_forever(self) -> None:
        """Loop ``run()`` until ``stop()`` is called, then close the session."""
        self._stop_event = asyncio.Event()
        try:
            while not self._stop_event.is_set():
                await self.run()
                # Buffered frames are read without suspending; yield between iterations
                await asyncio.sleep(0)
        finally:
            if self.state is not SessionState.DISCONNECTED:
                await self.disconnect("shutdown", backoff=False)

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
