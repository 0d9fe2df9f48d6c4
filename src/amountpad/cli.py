"""Command-line interface for amountpad."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import click

from amountpad import __version__
from amountpad.config import PadConfig, load_config


@click.group()
@click.version_option(version=__version__, prog_name="amountpad")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="amountpad.yaml, or a directory containing it.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None) -> None:
    """amountpad -- amount-entry calculator with live currency conversion."""
    try:
        config = load_config(Path(config_path) if config_path else Path.cwd())
    except ValueError as e:
        raise click.ClickException(str(e))
    if config.log_dir:
        from amountpad.logging.events import set_log_dir

        set_log_dir(config.log_dir, fsync=config.logging_fsync)
    ctx.obj = config


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _load_snapshot(rates_path: str):
    from amountpad.config import load_rates_file
    from amountpad.exchange import ExchangeRateSnapshot

    try:
        return ExchangeRateSnapshot.from_mapping(load_rates_file(Path(rates_path)))
    except ValueError as e:
        raise click.ClickException(str(e))


def _print_event_lines(events: list[dict[str, Any]]) -> None:
    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


# ---------------------------------------------------------------------------
# Eval / format / convert
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("expression")
@click.pass_obj
def eval_cmd(config: PadConfig, expression: str) -> None:
    """Evaluate a calculator EXPRESSION (e.g. "12+8×2")."""
    from amountpad.calculator import CalculatorError, evaluate_or_raise, format_number

    try:
        result = evaluate_or_raise(expression, config.locale)
    except CalculatorError as e:
        raise click.ClickException(str(e))
    click.echo(format_number(result, config.locale, config.number_max_fraction_digits))


@main.command("format")
@click.argument("amount", type=float)
@click.argument("currency")
@click.option("--short", "shorten", is_flag=True, help="Abbreviate large fiat amounts.")
@click.pass_obj
def format_cmd(config: PadConfig, amount: float, currency: str, shorten: bool) -> None:
    """Format AMOUNT in CURRENCY for display."""
    from amountpad.formatting import format_value
    from amountpad.money import MonetaryValue

    try:
        value = MonetaryValue(amount=amount, currency=currency)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(format_value(value, shorten, config=config).display_string)


@main.command("convert")
@click.argument("amount", type=float)
@click.argument("from_currency")
@click.argument("to_currency")
@click.option("--rates", "rates_path", required=True, type=click.Path(exists=True), help="YAML rate table.")
@click.option("--short", "shorten", is_flag=True, help="Abbreviate large fiat amounts.")
@click.pass_obj
def convert_cmd(
    config: PadConfig,
    amount: float,
    from_currency: str,
    to_currency: str,
    rates_path: str,
    shorten: bool,
) -> None:
    """Convert AMOUNT from FROM_CURRENCY to TO_CURRENCY."""
    from amountpad.exchange import ConversionUnavailable, exchange_or_raise
    from amountpad.formatting import format_value
    from amountpad.money import MonetaryValue

    snapshot = _load_snapshot(rates_path)
    try:
        converted = exchange_or_raise(snapshot, from_currency, to_currency, amount)
    except ConversionUnavailable as e:
        raise click.ClickException(str(e))
    value = MonetaryValue(amount=converted, currency=to_currency)
    click.echo(format_value(value, shorten, config=config).display_string)


# ---------------------------------------------------------------------------
# Session replay
# ---------------------------------------------------------------------------


def parse_keys(keys: tuple[str, ...]) -> list[Any]:
    """Turn key arguments into engine events.

    ``0-9`` digits, ``.``/``,`` decimal separator, ``+ - * / × ÷``
    operators, ``=`` equals, ``C`` clear, ``<`` backspace and ``@CCY``
    currency change (a whole argument).
    """
    from amountpad.engine import (
        Backspace,
        CalculatorClear,
        CalculatorEquals,
        CalculatorOperator,
        CurrencyChange,
        DecimalSeparator,
        Number,
    )
    from amountpad.numbers import is_operator

    events: list[Any] = []
    for key in keys:
        if key.startswith("@"):
            events.append(CurrencyChange(currency=key[1:]))
            continue
        for ch in key:
            if ch.isdigit():
                events.append(Number(digit=ch))
            elif ch in ".,":
                events.append(DecimalSeparator())
            elif is_operator(ch):
                events.append(CalculatorOperator(operator=ch))
            elif ch == "=":
                events.append(CalculatorEquals())
            elif ch in "Cc":
                events.append(CalculatorClear())
            elif ch == "<":
                events.append(Backspace())
            elif ch.isspace():
                continue
            else:
                raise click.BadParameter(f"Unknown key {ch!r}", param_hint="KEYS")
    return events


async def _replay(
    config: PadConfig,
    snapshot: Any,
    base_currency: str,
    initial: Any,
    events: list[Any],
    session_id: str | None = None,
) -> Any:
    from amountpad.engine import AmountPadEngine, Initial
    from amountpad.signals import StateSignal

    rates_signal = StateSignal(snapshot, name="rates")
    base_signal = StateSignal(base_currency.upper(), name="base_currency")
    async with AmountPadEngine(rates_signal, base_signal, config=config, session_id=session_id) as engine:
        await engine.handle(Initial(value=initial))
        for event in events:
            await engine.handle(event)
        return engine.state.value


@main.command("session")
@click.argument("keys", nargs=-1)
@click.option("--rates", "rates_path", required=True, type=click.Path(exists=True), help="YAML rate table.")
@click.option("--base", "base_currency", required=True, help="Base currency code.")
@click.option("--currency", default=None, help="Currency of the amount (defaults to --base).")
@click.option("--initial", "initial_amount", default=0.0, type=float, help="Pre-filled amount.")
@click.option("--session-id", default=None, help="Engine session ID used in the event log.")
@click.pass_obj
def session_cmd(
    config: PadConfig,
    keys: tuple[str, ...],
    rates_path: str,
    base_currency: str,
    currency: str | None,
    initial_amount: float,
    session_id: str | None,
) -> None:
    """Replay KEYS through the amount pad and print the final display state.

    Keys that start with a minus sign must follow a ``--`` separator so
    they are not read as options: ``amountpad session --base USD --rates
    rates.yaml -- -5+3``.
    """
    from amountpad.money import MonetaryValue

    snapshot = _load_snapshot(rates_path)
    events = parse_keys(keys)
    initial = MonetaryValue(amount=initial_amount, currency=currency or base_currency)
    state = asyncio.run(_replay(config, snapshot, base_currency, initial, events, session_id))
    click.echo(json.dumps(state.model_dump(mode="json"), indent=2, sort_keys=True))


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("log_dir", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--session", "session_id", default=None, help="Show one engine session's log.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    log_dir: str,
    level: str | None,
    event_type: str | None,
    session_id: str | None,
    limit: int,
) -> None:
    """Show the structured event log in LOG_DIR.

    With --session, events are read from that session's own log
    (``sessions/<id>.ndjson``) instead of the global one.
    """
    from amountpad.logging.sink import EventSink

    sink = EventSink(Path(log_dir))
    if session_id:
        events = sink.read_session_log(session_id)
        if level:
            events = [e for e in events if e.get("level") == level]
        if event_type:
            events = [e for e in events if e.get("event_type") == event_type]
        events = list(reversed(events))[:limit]
    else:
        events = sink.read_events(level=level, event_type=event_type, limit=limit)

    if not events:
        click.echo("No events found.")
        return
    _print_event_lines(events)
