"""Relay connection: one send primitive per protocol verb plus framed reads.

ConnectionBase owns everything that does not touch the stream (id
allocation, message construction, frame buffering, metrics); Connection and
AsyncConnection add the blocking and asyncio I/O around it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable

from pinrelay import const
from pinrelay.logging_abstraction import get_logger
from pinrelay.metrics import registry
from pinrelay.protocol.codec import Message
from pinrelay.protocol.exceptions import RelayProtocolError
from pinrelay.protocol.frame_buffer import FrameBuffer
from pinrelay.protocol.message_types import MAX_MESSAGE_ID, ProtocolStatus
from pinrelay.session.state import LivenessClock
from pinrelay.transport.exceptions import (
    EmptyBufferError,
    MessageSendFailedError,
    NotConnectedError,
    TransportError,
)
from pinrelay.transport.retry_policy import RetryPolicy
from pinrelay.transport.socket_abstraction import Address, AsyncStream, AsyncTCPStream, Stream, TCPStream

logger = get_logger(__name__)


class ConnectionBase:
    """Shared state and message construction for both connection flavours."""

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        read_timeout: float = const.READ_TIMEOUT,
        platform: str = const.PLATFORM_TAG,
        version: str = const.PINRELAY_VERSION,
    ) -> None:
        self.retry_policy: RetryPolicy = retry_policy or RetryPolicy()
        self.read_timeout: float = read_timeout
        self.platform: str = platform
        self.version: str = version
        self.next_id: int = 0
        self.frame_buffer: FrameBuffer = FrameBuffer()
        self.liveness: LivenessClock | None = None

    def allocate_id(self) -> int:
        """Return the next message id; wraps from 65535 to 1, never 0."""
        self.next_id = self.next_id + 1 if self.next_id < MAX_MESSAGE_ID else 1
        return self.next_id

    def _reset(self) -> None:
        self.next_id = 0
        self.frame_buffer.clear()

    def _mark_sent(self) -> None:
        if self.liveness is not None:
            self.liveness.mark_sent()

    def _buffered_message(self) -> Message | None:
        try:
            msg = self.frame_buffer.next_message()
        except RelayProtocolError as e:
            registry.record_decode_error(e.reason)
            raise
        if msg is not None:
            registry.record_frame_received(msg.msg_type.name)
            if self.liveness is not None:
                self.liveness.mark_received()
        return msg

    # Message construction, one builder per verb

    def _login(self, token: str) -> Message:
        return Message.login(self.allocate_id(), token)

    def _ping(self) -> Message:
        return Message.ping(self.allocate_id())

    def _response(self, status: ProtocolStatus, msg_id: int) -> Message:
        return Message.response(msg_id, status)

    def _virtual_write(self, pin: int, value: object) -> Message:
        return Message.virtual_write(self.allocate_id(), pin, value)

    def _virtual_sync(self, pins: Iterable[int]) -> Message:
        return Message.virtual_sync(self.allocate_id(), pins)

    def _email(self, to: str, subject: str, body: str) -> Message:
        return Message.email(self.allocate_id(), to, subject, body)

    def _tweet(self, text: str) -> Message:
        return Message.tweet(self.allocate_id(), text)

    def _notify(self, text: str) -> Message:
        return Message.notify(self.allocate_id(), text)

    def _set_property(self, pin: int, prop: str, value: object) -> Message:
        return Message.set_property(self.allocate_id(), pin, prop, value)

    def _internal(self, fields: Iterable[object]) -> Message:
        return Message.internal(self.allocate_id(), fields)

    def _heartbeat(self, heartbeat_seconds: float, rcv_buffer: int) -> Message:
        return Message.heartbeat_config(
            self.allocate_id(),
            int(heartbeat_seconds),
            rcv_buffer,
            self.version,
            self.platform,
        )

    def _send_failed(self, attempt: int, error: TransportError) -> bool:
        """Log a failed write; return True if another attempt follows."""
        retry = self.retry_policy.should_retry(attempt)
        logger.warning(
            "Send attempt %d/%d failed: %s",
            attempt + 1,
            self.retry_policy.max_attempts,
            error.reason,
            extra={"attempt": attempt + 1, "will_retry": retry},
        )
        if retry:
            registry.record_send_retry(attempt + 1)
        return retry


class Connection(ConnectionBase):
    """Blocking relay connection."""

    def __init__(
        self,
        stream: Stream | None = None,
        retry_policy: RetryPolicy | None = None,
        read_timeout: float = const.READ_TIMEOUT,
        platform: str = const.PLATFORM_TAG,
        version: str = const.PINRELAY_VERSION,
    ) -> None:
        super().__init__(retry_policy, read_timeout, platform, version)
        self.stream: Stream | None = stream

    @property
    def is_connected(self) -> bool:
        return self.stream is not None

    def open(self, address: Address, timeout: float) -> None:
        """Open a TCP stream to an already resolved address."""
        self.stream = TCPStream.open(address, timeout)

    def send(self, data: bytes) -> None:
        """Write and flush ``data``, retrying per the retry policy.

        Raises:
            NotConnectedError: No stream is open
            MessageSendFailedError: Every attempt failed

        """
        if self.stream is None:
            raise NotConnectedError
        last_error: TransportError | None = None
        for attempt in range(self.retry_policy.max_attempts):
            try:
                self.stream.write(data)
                self.stream.flush()
            except TransportError as e:
                last_error = e
                if self._send_failed(attempt, e):
                    time.sleep(self.retry_policy.get_delay(attempt))
                continue
            self._mark_sent()
            return
        raise MessageSendFailedError(self.retry_policy.max_attempts, last_error.reason if last_error else "")

    def send_message(self, msg: Message) -> Message:
        try:
            self.send(msg.serialize())
        except (NotConnectedError, MessageSendFailedError):
            registry.record_frame_sent(msg.msg_type.name, "failed")
            raise
        registry.record_frame_sent(msg.msg_type.name, "success")
        logger.debug("Sent %s id=%d", msg.msg_type.name, msg.id)
        return msg

    def read(self, timeout: float | None = None) -> Message:
        """Return the next inbound message.

        Raises:
            EmptyBufferError: No complete frame available yet
            RelayProtocolError: Frame could not be decoded
            TransportError: Stream closed by the peer or failed

        """
        msg = self._buffered_message()
        if msg is not None:
            return msg
        if self.stream is None:
            raise NotConnectedError
        chunk = self.stream.read_chunk(self.read_timeout if timeout is None else timeout)
        if not chunk:
            raise EmptyBufferError
        self.frame_buffer.feed(chunk)
        msg = self._buffered_message()
        if msg is None:
            raise EmptyBufferError
        return msg

    def close(self) -> None:
        """Shut the stream down and reset the id counter and frame buffer."""
        if self.stream is not None:
            logger.info("Closing connection (%r)", self.stream)
            try:
                self.stream.shutdown()
            except OSError as e:
                logger.warning("Error closing connection: %s", e)
            self.stream = None
        self._reset()

    # Send verbs

    def login(self, token: str) -> Message:
        return self.send_message(self._login(token))

    def ping(self) -> Message:
        return self.send_message(self._ping())

    def response(self, status: ProtocolStatus, msg_id: int) -> Message:
        return self.send_message(self._response(status, msg_id))

    def virtual_write(self, pin: int, value: object) -> Message:
        return self.send_message(self._virtual_write(pin, value))

    def virtual_sync(self, *pins: int) -> Message:
        return self.send_message(self._virtual_sync(pins))

    def email(self, to: str, subject: str, body: str) -> Message:
        return self.send_message(self._email(to, subject, body))

    def tweet(self, text: str) -> Message:
        return self.send_message(self._tweet(text))

    def notify(self, text: str) -> Message:
        return self.send_message(self._notify(text))

    def set_property(self, pin: int, prop: str, value: object) -> Message:
        return self.send_message(self._set_property(pin, prop, value))

    def internal(self, *fields: object) -> Message:
        return self.send_message(self._internal(fields))

    def heartbeat(self, heartbeat_seconds: float, rcv_buffer: int) -> Message:
        return self.send_message(self._heartbeat(heartbeat_seconds, rcv_buffer))

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"Connection({status}, next_id={self.next_id})"


class AsyncConnection(ConnectionBase):
    """Asyncio relay connection; same behaviour as Connection, as coroutines."""

    def __init__(
        self,
        stream: AsyncStream | None = None,
        retry_policy: RetryPolicy | None = None,
        read_timeout: float = const.READ_TIMEOUT,
        platform: str = const.PLATFORM_TAG,
        version: str = const.PINRELAY_VERSION,
    ) -> None:
        super().__init__(retry_policy, read_timeout, platform, version)
        self.stream: AsyncStream | None = stream

    @property
    def is_connected(self) -> bool:
        return self.stream is not None

    async def open(self, address: Address, timeout: float) -> None:
        self.stream = await AsyncTCPStream.open(address, timeout)

    async def send(self, data: bytes) -> None:
        if self.stream is None:
            raise NotConnectedError
        last_error: TransportError | None = None
        for attempt in range(self.retry_policy.max_attempts):
            try:
                await self.stream.write(data)
                await self.stream.flush()
            except TransportError as e:
                last_error = e
                if self._send_failed(attempt, e):
                    await asyncio.sleep(self.retry_policy.get_delay(attempt))
                continue
            self._mark_sent()
            return
        raise MessageSendFailedError(self.retry_policy.max_attempts, last_error.reason if last_error else "")

    async def send_message(self, msg: Message) -> Message:
        try:
            await self.send(msg.serialize())
        except (NotConnectedError, MessageSendFailedError):
            registry.record_frame_sent(msg.msg_type.name, "failed")
            raise
        registry.record_frame_sent(msg.msg_type.name, "success")
        logger.debug("Sent %s id=%d", msg.msg_type.name, msg.id)
        return msg

    async def read(self, timeout: float | None = None) -> Message:
        msg = self._buffered_message()
        if msg is not None:
            return msg
        if self.stream is None:
            raise NotConnectedError
        chunk = await self.stream.read_chunk(self.read_timeout if timeout is None else timeout)
        if not chunk:
            raise EmptyBufferError
        self.frame_buffer.feed(chunk)
        msg = self._buffered_message()
        if msg is None:
            raise EmptyBufferError
        return msg

    async def close(self) -> None:
        if self.stream is not None:
            logger.info("Closing connection (%r)", self.stream)
            try:
                await self.stream.shutdown()
            except OSError as e:
                logger.warning("Error closing connection: %s", e)
            self.stream = None
        self._reset()

    # Send verbs

    async def login(self, token: str) -> Message:
        return await self.send_message(self._login(token))

    async def ping(self) -> Message:
        return await self.send_message(self._ping())

    async def response(self, status: ProtocolStatus, msg_id: int) -> Message:
        return await self.send_message(self._response(status, msg_id))

    async def virtual_write(self, pin: int, value: object) -> Message:
        return await self.send_message(self._virtual_write(pin, value))

    async def virtual_sync(self, *pins: int) -> Message:
        return await self.send_message(self._virtual_sync(pins))

    async def email(self, to: str, subject: str, body: str) -> Message:
        return await self.send_message(self._email(to, subject, body))

    async def tweet(self, text: str) -> Message:
        return await self.send_message(self._tweet(text))

    async def notify(self, text: str) -> Message:
        return await self.send_message(self._notify(text))

    async def set_property(self, pin: int, prop: str, value: object) -> Message:
        return await self.send_message(self._set_property(pin, prop, value))

    async def internal(self, *fields: object) -> Message:
        return await self.send_message(self._internal(fields))

    async def heartbeat(self, heartbeat_seconds: float, rcv_buffer: int) -> Message:
        return await self.send_message(self._heartbeat(heartbeat_seconds, rcv_buffer))

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"AsyncConnection({status}, next_id={self.next_id})"
