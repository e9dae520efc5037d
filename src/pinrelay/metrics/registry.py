"""Prometheus metrics registry for the relay client."""

import threading
from typing import Final

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

SESSION_STATES: Final = ("disconnected", "connecting", "authenticating", "authenticated")

# Metric definitions
pinrelay_frames_sent_total: Final = Counter(
    "pinrelay_frames_sent_total",
    "Total frames sent",
    ["msg_type", "outcome"],
)

pinrelay_frames_received_total: Final = Counter(
    "pinrelay_frames_received_total",
    "Total frames received and decoded",
    ["msg_type"],
)

pinrelay_send_retries_total: Final = Counter(
    "pinrelay_send_retries_total",
    "Total frame write retries",
    ["attempt_number"],
)

pinrelay_decode_errors_total: Final = Counter(
    "pinrelay_decode_errors_total",
    "Total inbound frame decode errors",
    ["reason"],
)

pinrelay_session_state: Final = Gauge(
    "pinrelay_session_state",
    "Current session state (1 for the active state)",
    ["state"],
)

pinrelay_handshake_total: Final = Counter(
    "pinrelay_handshake_total",
    "Total handshake attempts",
    ["outcome"],
)

pinrelay_handshake_seconds: Final = Histogram(
    "pinrelay_handshake_seconds",
    "Connect + login + heartbeat negotiation duration in seconds",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

pinrelay_disconnects_total: Final = Counter(
    "pinrelay_disconnects_total",
    "Total session disconnects",
    ["reason"],
)

pinrelay_pings_total: Final = Counter(
    "pinrelay_pings_total",
    "Total keepalive pings sent",
    ["outcome"],
)

pinrelay_events_dispatched_total: Final = Counter(
    "pinrelay_events_dispatched_total",
    "Total events handed to the event handler",
    ["kind"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> bool:
    """Start Prometheus HTTP metrics server (idempotent).

    Returns:
        True if this call started the server

    """
    with _server_lock:
        if _server_state["started"]:
            return False
        start_http_server(port)
        _server_state["started"] = True
        return True


def record_frame_sent(msg_type: str, outcome: str) -> None:
    pinrelay_frames_sent_total.labels(msg_type=msg_type, outcome=outcome).inc()


def record_frame_received(msg_type: str) -> None:
    pinrelay_frames_received_total.labels(msg_type=msg_type).inc()


def record_send_retry(attempt_number: int) -> None:
    pinrelay_send_retries_total.labels(attempt_number=str(attempt_number)).inc()


def record_decode_error(reason: str) -> None:
    """Record a decode error; reasons carrying values are grouped by prefix."""
    pinrelay_decode_errors_total.labels(reason=reason.split(":", 1)[0]).inc()


def record_session_state(state: str) -> None:
    """Record session state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in SESSION_STATES:
        pinrelay_session_state.labels(state=s).set(1 if s == state else 0)


def record_handshake(outcome: str, duration_seconds: float | None = None) -> None:
    pinrelay_handshake_total.labels(outcome=outcome).inc()
    if duration_seconds is not None:
        pinrelay_handshake_seconds.observe(duration_seconds)


def record_disconnect(reason: str) -> None:
    pinrelay_disconnects_total.labels(reason=reason).inc()


def record_ping(outcome: str) -> None:
    pinrelay_pings_total.labels(outcome=outcome).inc()


def record_event_dispatched(kind: str) -> None:
    pinrelay_events_dispatched_total.labels(kind=kind).inc()
