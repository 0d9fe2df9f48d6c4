"""Structured event logging for amountpad.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from amountpad.logging.events import (
    EventLevel,
    EventType,
    PadEvent,
    emit,
    emit_info,
    emit_warning,
    get_sink,
    set_log_dir,
)
from amountpad.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "PadEvent",
    "emit",
    "emit_info",
    "emit_warning",
    "get_sink",
    "set_log_dir",
]
