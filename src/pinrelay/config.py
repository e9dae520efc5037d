"""Typed client configuration."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

from pinrelay import const
from pinrelay.errors import ConfigError


@dataclass(frozen=True)
class RelayConfig:
    """Settings for one relay session.

    Times are in seconds. ``heartbeat`` is advertised to the server and drives
    the liveness rules; ``read_timeout`` bounds one poll of the socket.
    """

    token: str
    server: str = const.DEFAULT_SERVER
    port: int = const.DEFAULT_PORT
    heartbeat: float = const.DEFAULT_HEARTBEAT
    connect_timeout: float = const.CONNECT_TIMEOUT
    handshake_timeout: float = const.HANDSHAKE_TIMEOUT
    read_timeout: float = const.READ_TIMEOUT
    rcv_buffer: int = const.RCV_BUFFER
    send_retries: int = const.SEND_RETRIES
    send_retry_delay: float = const.SEND_RETRY_DELAY
    reconnect_delay: float = const.RECONNECT_DELAY
    platform: str = const.PLATFORM_TAG

    def __post_init__(self) -> None:
        if not self.token:
            raise ConfigError("token must not be empty")
        if not self.server:
            raise ConfigError("server must not be empty")
        if not 0 < self.port <= 0xFFFF:
            msg = f"port out of range: {self.port}"
            raise ConfigError(msg)
        if self.heartbeat <= 0:
            msg = f"heartbeat must be positive, got {self.heartbeat}"
            raise ConfigError(msg)
        if self.send_retries < 1:
            msg = f"send_retries must be >= 1, got {self.send_retries}"
            raise ConfigError(msg)
        if self.rcv_buffer <= 0:
            msg = f"rcv_buffer must be positive, got {self.rcv_buffer}"
            raise ConfigError(msg)
        for name in ("connect_timeout", "handshake_timeout", "read_timeout"):
            if getattr(self, name) <= 0:
                msg = f"{name} must be positive"
                raise ConfigError(msg)
        for name in ("send_retry_delay", "reconnect_delay"):
            if getattr(self, name) < 0:
                msg = f"{name} must not be negative"
                raise ConfigError(msg)

    @classmethod
    def from_env(cls, token: str, **overrides: Any) -> RelayConfig:
        """Build a config from the PINRELAY_* environment, with keyword overrides.

        The environment is read at call time. ``None`` overrides are ignored
        so optional CLI arguments can be passed straight through.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            msg = f"unknown config fields: {', '.join(sorted(unknown))}"
            raise ConfigError(msg)
        settings = const.env_defaults()
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls(token=token, **settings)

    def with_changes(self, **changes: Any) -> RelayConfig:
        return replace(self, **changes)

    def __repr__(self) -> str:
        # Keep the auth token out of logs
        masked = f"{self.token[:4]}..." if len(self.token) > 4 else "***"
        return f"RelayConfig(server={self.server}:{self.port}, token={masked}, heartbeat={self.heartbeat}s)"
