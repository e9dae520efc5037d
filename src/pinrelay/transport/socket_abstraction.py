"""TCP stream abstractions (blocking and asyncio) with deadlines and instrumentation.

Both flavours offer the same capability set used by the connection layer:
``read_chunk(timeout)`` returns available bytes (empty when nothing arrived in
time), ``write``/``flush`` deliver a whole frame, ``shutdown`` closes both
directions. Any I/O failure surfaces as TransportError.
"""

from __future__ import annotations

import asyncio
import socket
import time
from typing import Protocol

from pinrelay.logging_abstraction import get_logger
from pinrelay.transport.exceptions import DnsResolutionFailedError, TransportError

logger = get_logger(__name__)

Address = tuple[str, int]

DEFAULT_MAX_READ_SIZE = 4096
DEFAULT_IO_TIMEOUT = 5.0


class Stream(Protocol):
    """Blocking byte stream used by Connection."""

    def read_chunk(self, timeout: float) -> bytes: ...

    def write(self, data: bytes) -> None: ...

    def flush(self) -> None: ...

    def shutdown(self) -> None: ...


class AsyncStream(Protocol):
    """Asyncio byte stream used by AsyncConnection."""

    async def read_chunk(self, timeout: float) -> bytes: ...

    async def write(self, data: bytes) -> None: ...

    async def flush(self) -> None: ...

    async def shutdown(self) -> None: ...


def _first_address(infos: list[tuple], host: str, port: int) -> Address:
    for _family, _type, _proto, _canonname, sockaddr in infos:
        return str(sockaddr[0]), int(sockaddr[1])
    raise DnsResolutionFailedError(host, port)


def resolve_address(host: str, port: int) -> Address:
    """Resolve ``host:port`` to the first TCP address.

    Raises:
        DnsResolutionFailedError: No address resolves

    """
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        logger.warning("DNS lookup for %s:%d failed: %s", host, port, e)
        raise DnsResolutionFailedError(host, port) from e
    return _first_address(infos, host, port)


async def resolve_address_async(host: str, port: int) -> Address:
    """Asyncio flavour of resolve_address (uses the loop's resolver)."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        logger.warning("DNS lookup for %s:%d failed: %s", host, port, e)
        raise DnsResolutionFailedError(host, port) from e
    return _first_address(infos, host, port)


class TCPStream:
    """Blocking TCP stream over a plain socket."""

    def __init__(
        self,
        sock: socket.socket,
        address: Address,
        io_timeout: float = DEFAULT_IO_TIMEOUT,
        max_read_size: int = DEFAULT_MAX_READ_SIZE,
    ):
        self.sock = sock
        self.address = address
        self.io_timeout = io_timeout
        self.max_read_size = max_read_size

    @classmethod
    def open(
        cls,
        address: Address,
        timeout: float,
        max_read_size: int = DEFAULT_MAX_READ_SIZE,
    ) -> TCPStream:
        """Connect to ``address`` within ``timeout`` seconds.

        Raises:
            TransportError: Connect failed or timed out

        """
        host, port = address
        start_time = time.perf_counter()
        logger.info(
            "Connecting to %s:%d (timeout: %.1fs)",
            host,
            port,
            timeout,
            extra={"host": host, "port": port, "timeout": timeout},
        )
        try:
            sock = socket.create_connection(address, timeout=timeout)
        except OSError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(
                "Connection to %s:%d failed after %.1fms: %s",
                host,
                port,
                elapsed_ms,
                e,
                extra={"host": host, "port": port, "elapsed_ms": elapsed_ms, "error": str(e)},
            )
            msg = f"connect to {host}:{port} failed: {e}"
            raise TransportError(msg) from e
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Connected to %s:%d in %.1fms",
            host,
            port,
            elapsed_ms,
            extra={"host": host, "port": port, "elapsed_ms": elapsed_ms},
        )
        return cls(sock, address, max_read_size=max_read_size)

    def read_chunk(self, timeout: float) -> bytes:
        """Read whatever arrives within ``timeout`` (empty bytes if nothing)."""
        try:
            self.sock.settimeout(timeout)
            data = self.sock.recv(self.max_read_size)
        except TimeoutError:
            return b""
        except OSError as e:
            msg = f"read failed: {e}"
            raise TransportError(msg) from e
        if not data:
            logger.warning("Connection closed by %s:%d", *self.address)
            raise TransportError("connection_closed_by_peer")
        logger.debug("Received %d bytes from %s:%d", len(data), *self.address)
        return data

    def write(self, data: bytes) -> None:
        """Deliver the whole frame or fail."""
        try:
            self.sock.settimeout(self.io_timeout)
            self.sock.sendall(data)
        except OSError as e:
            msg = f"write failed: {e}"
            raise TransportError(msg) from e

    def flush(self) -> None:
        """No-op: sendall already handed every byte to the kernel."""

    def shutdown(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Socket shutdown error (ignored): %s", e)
        finally:
            self.sock.close()

    def __repr__(self) -> str:
        return f"TCPStream({self.address[0]}:{self.address[1]})"


class AsyncTCPStream:
    """Async TCP stream over asyncio StreamReader/StreamWriter."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        address: Address,
        io_timeout: float = DEFAULT_IO_TIMEOUT,
        max_read_size: int = DEFAULT_MAX_READ_SIZE,
    ):
        self.reader = reader
        self.writer = writer
        self.address = address
        self.io_timeout = io_timeout
        self.max_read_size = max_read_size

    @classmethod
    async def open(
        cls,
        address: Address,
        timeout: float,
        max_read_size: int = DEFAULT_MAX_READ_SIZE,
    ) -> AsyncTCPStream:
        """Connect to ``address`` within ``timeout`` seconds.

        Raises:
            TransportError: Connect failed or timed out

        """
        host, port = address
        start_time = time.perf_counter()
        logger.info(
            "Connecting to %s:%d (timeout: %.1fs)",
            host,
            port,
            timeout,
            extra={"host": host, "port": port, "timeout": timeout},
        )
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=timeout,
            )
        except TimeoutError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(
                "Connection to %s:%d timed out after %.1fms",
                host,
                port,
                elapsed_ms,
                extra={"host": host, "port": port, "elapsed_ms": elapsed_ms, "error": "timeout"},
            )
            msg = f"connect to {host}:{port} timed out"
            raise TransportError(msg) from e
        except OSError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(
                "Connection to %s:%d failed after %.1fms: %s",
                host,
                port,
                elapsed_ms,
                e,
                extra={"host": host, "port": port, "elapsed_ms": elapsed_ms, "error": str(e)},
            )
            msg = f"connect to {host}:{port} failed: {e}"
            raise TransportError(msg) from e
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Connected to %s:%d in %.1fms",
            host,
            port,
            elapsed_ms,
            extra={"host": host, "port": port, "elapsed_ms": elapsed_ms},
        )
        return cls(reader, writer, address, max_read_size=max_read_size)

    async def read_chunk(self, timeout: float) -> bytes:
        """Read whatever arrives within ``timeout`` (empty bytes if nothing)."""
        try:
            data = await asyncio.wait_for(self.reader.read(self.max_read_size), timeout=timeout)
        except TimeoutError:
            return b""
        except OSError as e:
            msg = f"read failed: {e}"
            raise TransportError(msg) from e
        if not data:
            logger.warning("Connection closed by %s:%d", *self.address)
            raise TransportError("connection_closed_by_peer")
        logger.debug("Received %d bytes from %s:%d", len(data), *self.address)
        return data

    async def write(self, data: bytes) -> None:
        try:
            self.writer.write(data)
        except OSError as e:
            msg = f"write failed: {e}"
            raise TransportError(msg) from e

    async def flush(self) -> None:
        try:
            await asyncio.wait_for(self.writer.drain(), timeout=self.io_timeout)
        except TimeoutError as e:
            raise TransportError("flush timed out") from e
        except OSError as e:
            msg = f"flush failed: {e}"
            raise TransportError(msg) from e

    async def shutdown(self) -> None:
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug("Stream close error (ignored): %s", e)

    def __repr__(self) -> str:
        return f"AsyncTCPStream({self.address[0]}:{self.address[1]})"
