"""
Correlation ID tracking for session epochs.

Every connect attempt runs inside its own correlation scope, so all log lines
from one TCP session (handshake, pings, dispatched events, disconnect) share
an id. Backed by contextvars, so asyncio tasks inherit the id of their parent.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pinrelay_correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new 12-character hex id (short enough to scan in logs)."""
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation id; restores the previous one on exit.

    Example:
        with correlation_context() as session_id:
            logger.info("Connecting")  # carries session_id

    """
    token = _correlation_id.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id.get() or ""
    finally:
        _correlation_id.reset(token)

