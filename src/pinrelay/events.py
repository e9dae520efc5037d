"""Event handler contracts.

Subclass EventHandler (blocking sessions) or AsyncEventHandler (asyncio
sessions) and override only the events you care about; every method defaults
to doing nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pinrelay.transport.connection import AsyncConnection, Connection


class EventHandler:
    """Callbacks invoked by RelaySession."""

    def handle_connect(self, conn: Connection) -> None:
        """Called once the handshake completed."""

    def handle_disconnect(self) -> None:
        """Called before the connection is closed."""

    def handle_internal(self, conn: Connection, data: tuple[str, ...]) -> None:
        """INTERNAL message; ``data`` excludes the leading command field."""

    def handle_vpin_read(self, conn: Connection, pin: int) -> None:
        """Server asks for the value of virtual pin ``pin``."""

    def handle_vpin_write(self, conn: Connection, pin: int, data: str) -> None:
        """Server wrote ``data`` to virtual pin ``pin``."""


class AsyncEventHandler:
    """Coroutine callbacks invoked by AsyncRelaySession."""

    async def handle_connect(self, conn: AsyncConnection) -> None:
        pass

    async def handle_disconnect(self) -> None:
        pass

    async def handle_internal(self, conn: AsyncConnection, data: tuple[str, ...]) -> None:
        pass

    async def handle_vpin_read(self, conn: AsyncConnection, pin: int) -> None:
        pass

    async def handle_vpin_write(self, conn: AsyncConnection, pin: int, data: str) -> None:
        pass
