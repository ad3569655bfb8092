"""Event logging utilities for SignalGate."""

from .event_log import (
    append_event,
    build_decision_event,
    build_gate_event,
    config_hash_from,
    log_event,
    sanitize_event,
)

__all__ = [
    "append_event",
    "build_decision_event",
    "build_gate_event",
    "config_hash_from",
    "log_event",
    "sanitize_event",
]
