"""Tests for the amountpad structured event logging system."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def sink(log_dir: Path):
    from amountpad.logging.sink import EventSink

    return EventSink(log_dir)


@pytest.fixture
def active_sink(log_dir: Path):
    """Route module-level emits to *log_dir* for the duration of a test."""
    from amountpad.logging.events import get_sink, set_log_dir

    set_log_dir(log_dir)
    yield get_sink()
    set_log_dir(None)


def _event(message: str = "m", **kwargs):
    from amountpad.logging.events import EventLevel, EventType, PadEvent

    kwargs.setdefault("level", EventLevel.info)
    kwargs.setdefault("event_type", EventType.engine_started)
    return PadEvent(message=message, **kwargs)


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestPadEvent:
    def test_event_defaults(self):
        evt = _event("hello")
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "engine_started"
        assert evt.context == {}
        assert evt.error_code is None

    def test_event_with_error_code(self):
        from amountpad.logging.events import EXPRESSION_PARSE_ERROR, EventLevel, EventType

        evt = _event(
            "bad input",
            level=EventLevel.warning,
            event_type=EventType.expression_error,
            error_code=EXPRESSION_PARSE_ERROR,
            context={"expression": "12+"},
        )
        assert evt.error_code == "expression_parse_error"
        assert evt.context["expression"] == "12+"

    def test_all_event_types_exist(self):
        from amountpad.logging.events import EventType

        expected = {
            "engine_started", "engine_disposed",
            "expression_error",
            "currency_converted", "conversion_unavailable",
            "rates_received", "base_currency_received",
        }
        assert {e.value for e in EventType} == expected


# ---------------------------------------------------------------------------
# B) Filesystem NDJSON sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_write_creates_global_log(self, sink, log_dir):
        sink.write(_event("started"))

        lines = (log_dir / "events.ndjson").read_text().strip().splitlines()
        assert len(lines) == 1
        parsed = json.loads(lines[0])
        assert parsed["message"] == "started"
        assert parsed["level"] == "info"

    def test_write_creates_session_log(self, sink, log_dir):
        sink.write(_event(), session_id="abc123")

        session_log = log_dir / "sessions" / "abc123.ndjson"
        assert session_log.exists()
        assert len(sink.read_session_log("abc123")) == 1

    def test_unsafe_session_id_skipped(self, sink, log_dir):
        sink.write(_event(), session_id="../escape")

        assert not (log_dir / "escape.ndjson").exists()
        assert sink.read_session_log("../escape") == []
        assert len(sink.read_events()) == 1

    def test_json_sort_keys(self, sink, log_dir):
        sink.write(_event())

        parsed = json.loads((log_dir / "events.ndjson").read_text().strip())
        keys = list(parsed.keys())
        assert keys == sorted(keys)

    def test_read_events_most_recent_first(self, sink):
        for i in range(3):
            sink.write(_event(f"event {i}"))

        events = sink.read_events()
        assert [e["message"] for e in events] == ["event 2", "event 1", "event 0"]
        assert len(sink.read_events(limit=2)) == 2

    def test_read_events_filters(self, sink):
        from amountpad.logging.events import EventLevel, EventType

        sink.write(_event("a"))
        sink.write(_event("b", level=EventLevel.warning, event_type=EventType.conversion_unavailable))

        assert [e["message"] for e in sink.read_events(level="warning")] == ["b"]
        assert [e["message"] for e in sink.read_events(event_type="engine_started")] == ["a"]

    def test_skips_corrupt_lines(self, sink, log_dir):
        sink.write(_event("ok"))
        with open(log_dir / "events.ndjson", "a", encoding="utf-8") as f:
            f.write("{not json\n")

        assert [e["message"] for e in sink.read_events()] == ["ok"]

    def test_tail_read_drops_partial_line(self, log_dir):
        from amountpad.logging.sink import EventSink

        small = EventSink(log_dir, tail_bytes=400)
        for i in range(20):
            small.write(_event(f"event {i}"))

        events = small.read_events()
        assert events
        assert events[0]["message"] == "event 19"
        assert len(events) < 20


# ---------------------------------------------------------------------------
# C) Emit helpers
# ---------------------------------------------------------------------------


class TestEmit:
    def test_emit_without_sink_is_noop(self, log_dir):
        from amountpad.logging.events import EventType, emit_info, get_sink, set_log_dir

        set_log_dir(None)
        assert get_sink() is None
        emit_info(EventType.engine_started, "nobody listening")
        assert not log_dir.exists()

    def test_emit_adds_session_id(self, active_sink):
        from amountpad.logging.events import EventType, emit_warning

        emit_warning(
            EventType.conversion_unavailable,
            "no rate",
            {"from": "USD", "to": "CHF"},
            error_code="no_rate_path",
            session_id="s1",
        )

        events = active_sink.read_events(session_id="s1")
        assert len(events) == 1
        assert events[0]["error_code"] == "no_rate_path"
        assert events[0]["context"] == {"from": "USD", "to": "CHF", "session_id": "s1"}

    def test_emit_never_raises(self, active_sink, monkeypatch):
        from amountpad.logging import events as events_mod

        def broken_write(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(active_sink, "write", broken_write)
        monkeypatch.setattr(events_mod, "_last_stderr_ts", 0.0)
        events_mod.emit_warning(events_mod.EventType.engine_disposed, "boom")


# ---------------------------------------------------------------------------
# D) Engine integration
# ---------------------------------------------------------------------------


class TestEngineEvents:
    def _run(self, *events):
        from amountpad.engine import AmountPadEngine
        from amountpad.exchange import ExchangeRateSnapshot
        from amountpad.signals import StateSignal

        async def main():
            rates = StateSignal(ExchangeRateSnapshot.from_base_rates("USD", {"EUR": 0.5}))
            engine = AmountPadEngine(rates, StateSignal("USD"), session_id="sess1")
            async with engine:
                for event in events:
                    await engine.handle(event)

        asyncio.run(main())

    def test_lifecycle_events(self, active_sink):
        self._run()

        types = [e["event_type"] for e in active_sink.read_session_log("sess1")]
        assert types[0] == "engine_started"
        assert types[-1] == "engine_disposed"

    def test_expression_error_event(self, active_sink):
        from amountpad.engine import CalculatorEquals, CalculatorOperator, Number

        self._run(Number(digit="5"), CalculatorOperator(operator="÷"), Number(digit="0"), CalculatorEquals())

        events = active_sink.read_events(event_type="expression_error")
        assert len(events) == 1
        assert events[0]["level"] == "warning"
        assert events[0]["error_code"] == "expression_arithmetic_error"
        assert events[0]["context"]["expression"] == "5÷0"
        assert events[0]["context"]["session_id"] == "sess1"

    def test_currency_events(self, active_sink):
        from amountpad.engine import CurrencyChange, Initial, Number
        from amountpad.money import MonetaryValue

        usd = Initial(value=MonetaryValue(amount=0, currency="USD"))
        self._run(usd, Number(digit="8"), CurrencyChange(currency="EUR"), CurrencyChange(currency="CHF"))

        assert len(active_sink.read_events(event_type="currency_converted")) == 1
        unavailable = active_sink.read_events(event_type="conversion_unavailable")
        assert len(unavailable) == 1
        assert unavailable[0]["error_code"] == "no_rate_path"
