"""Metrics module."""

from .registry import (
    record_decode_error,
    record_disconnect,
    record_event_dispatched,
    record_frame_received,
    record_frame_sent,
    record_handshake,
    record_ping,
    record_send_retry,
    record_session_state,
    start_metrics_server,
)

__all__ = [
    "record_decode_error",
    "record_disconnect",
    "record_event_dispatched",
    "record_frame_received",
    "record_frame_sent",
    "record_handshake",
    "record_ping",
    "record_send_retry",
    "record_session_state",
    "start_metrics_server",
]
