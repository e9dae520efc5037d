import os

from pinrelay import __version__

__all__ = [
    "CONNECT_TIMEOUT",
    "DEFAULT_HEARTBEAT",
    "DEFAULT_PORT",
    "DEFAULT_SERVER",
    "HANDSHAKE_TIMEOUT",
    "PINRELAY_LOG_FORMAT",
    "PINRELAY_LOG_HUMAN_OUTPUT",
    "PINRELAY_LOG_JSON_FILE",
    "PINRELAY_LOG_NAME",
    "PINRELAY_VERSION",
    "PLATFORM_TAG",
    "RCV_BUFFER",
    "READ_TIMEOUT",
    "RECONNECT_DELAY",
    "SEND_RETRIES",
    "SEND_RETRY_DELAY",
    "YES_ANSWER",
    "env_defaults",
    "env_flag",
    "env_float",
    "env_int",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
PINRELAY_LOG_NAME: str = "pinrelay"
PINRELAY_VERSION: str = __version__
PLATFORM_TAG: str = "python"
FALLBACK_SERVER: str = "blynk-cloud.com"


def env_int(name: str, default: int) -> int:
    """Read an integer env var; unset, empty or invalid values give ``default``."""
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_flag(name: str) -> bool:
    return os.environ.get(name, "0").casefold() in YES_ANSWER


def env_server() -> str:
    server = os.environ.get("PINRELAY_SERVER", FALLBACK_SERVER)
    return server if server and server.lower() != "null" else FALLBACK_SERVER


DEFAULT_SERVER: str = env_server()
DEFAULT_PORT: int = env_int("PINRELAY_PORT", 80)

# Session timing (seconds)
DEFAULT_HEARTBEAT: int = env_int("PINRELAY_HEARTBEAT", 5)
CONNECT_TIMEOUT: float = env_float("PINRELAY_CONNECT_TIMEOUT", 3.0)
HANDSHAKE_TIMEOUT: float = 5.0
READ_TIMEOUT: float = 0.005
RECONNECT_DELAY: float = env_float("PINRELAY_RECONNECT_DELAY", 1.0)

RCV_BUFFER: int = env_int("PINRELAY_RCV_BUFFER", 1024)
SEND_RETRIES: int = env_int("PINRELAY_SEND_RETRIES", 3)
SEND_RETRY_DELAY: float = env_float("PINRELAY_SEND_RETRY_DELAY", 0.002)

# Logging Configuration
PINRELAY_LOG_FORMAT: str = os.environ.get("PINRELAY_LOG_FORMAT", "human")  # "json", "human", or "both"
PINRELAY_LOG_JSON_FILE: str | None = os.environ.get("PINRELAY_LOG_JSON_FILE") or None
PINRELAY_LOG_HUMAN_OUTPUT: str = os.environ.get("PINRELAY_LOG_HUMAN_OUTPUT", "stdout")  # stdout, stderr or a path


def env_defaults() -> dict[str, object]:
    """Re-read the session settings from the current environment.

    The module constants are fixed at import; this picks up variables loaded
    later (e.g. from a ``.env`` file).
    """
    return {
        "server": env_server(),
        "port": env_int("PINRELAY_PORT", 80),
        "heartbeat": env_int("PINRELAY_HEARTBEAT", 5),
        "connect_timeout": env_float("PINRELAY_CONNECT_TIMEOUT", 3.0),
        "rcv_buffer": env_int("PINRELAY_RCV_BUFFER", 1024),
        "send_retries": env_int("PINRELAY_SEND_RETRIES", 3),
        "send_retry_delay": env_float("PINRELAY_SEND_RETRY_DELAY", 0.002),
        "reconnect_delay": env_float("PINRELAY_RECONNECT_DELAY", 1.0),
    }
