"""Reactive amount-entry engine.

``AmountPadEngine`` owns the editable calculator state (expression,
selected currency, error flag, override-initial flag) and joins it with
two external signals -- exchange-rate snapshots and the base currency --
into a single ``DerivedDisplayState`` published on ``engine.state``.

Usage::

    rates = StateSignal(ExchangeRateSnapshot.from_base_rates("USD", {"EUR": 0.9}))
    base = StateSignal("USD")

    async with AmountPadEngine(rates, base) as engine:
        await engine.handle(Initial(value=MonetaryValue(amount=0, currency="EUR")))
        await engine.handle(Number(digit="7"))
        engine.state.value.amount_base_currency  # amount='7.78' currency='USD'

Events are handled one at a time in arrival order.  The derived state is
recomputed from scratch whenever any input changes; writes made by a
single event are batched so only the final state of that event is
published.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from amountpad.calculator import editor
from amountpad.calculator.errors import CalculatorError, ExpressionArithmeticError
from amountpad.calculator.evaluator import (
    evaluate,
    evaluate_or_raise,
    format_number,
    has_obvious_result,
)
from amountpad.config import DEFAULT_PAD_CONFIG, PadConfig
from amountpad.exchange import ExchangeRateSnapshot, exchange
from amountpad.formatting import format_value
from amountpad.logging.events import (
    EXPRESSION_ARITHMETIC_ERROR,
    EXPRESSION_PARSE_ERROR,
    NO_RATE_PATH,
    EventType,
    emit_info,
    emit_warning,
)
from amountpad.money import FormattedValue, MonetaryValue, normalize_currency
from amountpad.numbers import canonical_operator
from amountpad.signals import CombinedSignal, Signal, StateSignal, Subscription

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# Events
# ────────────────────────────────────────────────────────────────


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class Backspace(_Event):
    kind: Literal["backspace"] = "backspace"


class DecimalSeparator(_Event):
    kind: Literal["decimal_separator"] = "decimal_separator"


class CalculatorOperator(_Event):
    kind: Literal["operator"] = "operator"
    operator: str

    @field_validator("operator")
    @classmethod
    def _known(cls, v: str) -> str:
        return canonical_operator(v)


class Number(_Event):
    kind: Literal["number"] = "number"
    digit: str

    @field_validator("digit")
    @classmethod
    def _digit(cls, v: str) -> str:
        if len(v) != 1 or not v.isdigit():
            raise ValueError(f"Not a digit: {v!r}")
        return v


class CalculatorClear(_Event):
    kind: Literal["clear"] = "clear"


class CalculatorEquals(_Event):
    kind: Literal["equals"] = "equals"


class CurrencyChange(_Event):
    kind: Literal["currency_change"] = "currency_change"
    currency: str

    @field_validator("currency")
    @classmethod
    def _code(cls, v: str) -> str:
        return normalize_currency(v)


class Initial(_Event):
    kind: Literal["initial"] = "initial"
    value: MonetaryValue | None = None


PadInputEvent = Annotated[
    Union[
        Backspace,
        DecimalSeparator,
        CalculatorOperator,
        Number,
        CalculatorClear,
        CalculatorEquals,
        CurrencyChange,
        Initial,
    ],
    Field(discriminator="kind"),
]


# ────────────────────────────────────────────────────────────────
# Derived state
# ────────────────────────────────────────────────────────────────


class CalculatorResult(BaseModel):
    """The small ``= result`` line under the expression."""

    model_config = ConfigDict(frozen=True)

    result: str
    is_error: bool


class DerivedDisplayState(BaseModel):
    """Everything the amount pad shows, recomputed on every change."""

    model_config = ConfigDict(frozen=True)

    expression: str | None
    currency: str
    amount: MonetaryValue | None
    amount_base_currency: FormattedValue | None
    calculator_result: CalculatorResult | None


def derive_state(
    expression: str,
    currency: str,
    show_expression_error: bool,
    rates: ExchangeRateSnapshot | None,
    base_currency: str | None,
    *,
    config: PadConfig | None = None,
) -> DerivedDisplayState:
    """Compute the display state from the current inputs.

    Pure function: the same inputs always give the same state.
    """
    cfg = config or DEFAULT_PAD_CONFIG
    loc = cfg.locale

    value = evaluate(expression, loc)
    calc = CalculatorResult(
        result=format_number(value, loc, cfg.number_max_fraction_digits) if value is not None else "Error",
        is_error=value is None and show_expression_error,
    )
    # Hidden when it adds nothing: the text is already the bare result, or the
    # pad is empty.  The empty-pad case is an extra rule on top of
    # has_obvious_result.
    if not calc.is_error and (not expression.strip() or has_obvious_result(expression, value, loc)):
        calc = None

    amount = MonetaryValue(amount=value, currency=currency) if value is not None else None

    base_equivalent: FormattedValue | None = None
    if amount is not None and base_currency and rates is not None:
        base = normalize_currency(base_currency)
        if amount.currency != base:
            converted = exchange(rates, amount.currency, base, amount.amount)
            if converted is not None:
                base_equivalent = format_value(
                    MonetaryValue(amount=converted, currency=base),
                    shorten_fiat=True,
                    config=cfg,
                )

    return DerivedDisplayState(
        expression=expression or None,
        currency=currency,
        amount=amount,
        amount_base_currency=base_equivalent,
        calculator_result=calc,
    )


# ────────────────────────────────────────────────────────────────
# Engine
# ────────────────────────────────────────────────────────────────


class EngineDisposedError(RuntimeError):
    """Raised when an event is sent to a disposed engine."""


class AmountPadEngine:
    """State machine for the amount pad.

    Parameters
    ----------
    rates_signal : Signal[ExchangeRateSnapshot]
        Latest exchange-rate snapshots.  Read-only.
    base_currency_signal : Signal[str]
        The user's base currency.  Read-only.
    config : PadConfig | None
        Separators and formatting precision.
    """

    def __init__(
        self,
        rates_signal: Signal[ExchangeRateSnapshot],
        base_currency_signal: Signal[str],
        *,
        config: PadConfig | None = None,
        session_id: str | None = None,
    ) -> None:
        self.config = config or DEFAULT_PAD_CONFIG
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._rates_signal = rates_signal
        self._base_currency_signal = base_currency_signal

        self._expression: StateSignal[str] = StateSignal("", name="expression")
        self._currency: StateSignal[str] = StateSignal("", name="currency")
        self._show_error: StateSignal[bool] = StateSignal(False, name="show_expression_error")
        self._override_initial = False

        self.state: CombinedSignal[DerivedDisplayState] = CombinedSignal(
            [self._expression, self._currency, self._show_error, rates_signal, base_currency_signal],
            self._derive,
            optional=(3, 4),
            name="display_state",
        )

        self._lock = asyncio.Lock()
        self._inflight: set[asyncio.Future] = set()
        self._tasks: set[asyncio.Task] = set()
        self._subscriptions: list[Subscription] = []
        self._started = False
        self._disposed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to the upstream signals and publish the first state."""
        if self._disposed:
            raise EngineDisposedError("engine has been disposed")
        if self._started:
            return
        self._started = True
        self._subscriptions.append(self._rates_signal.subscribe(self._on_rates, replay=False))
        self._subscriptions.append(self._base_currency_signal.subscribe(self._on_base_currency, replay=False))
        self.state.start()
        emit_info(EventType.engine_started, "amount pad started", session_id=self.session_id)

    def dispose(self) -> None:
        """Release all subscriptions and abandon in-flight rate reads."""
        if self._disposed:
            return
        self._disposed = True
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()
        self.state.close()
        for fut in list(self._inflight):
            fut.cancel()
        for task in list(self._tasks):
            task.cancel()
        emit_info(EventType.engine_disposed, "amount pad disposed", session_id=self.session_id)

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def __aenter__(self) -> "AmountPadEngine":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Read-only views of the owned state
    # ------------------------------------------------------------------

    @property
    def expression(self) -> str:
        return self._expression.value

    @property
    def currency(self) -> str:
        return self._currency.value

    @property
    def show_expression_error(self) -> bool:
        return self._show_error.value

    @property
    def override_initial(self) -> bool:
        return self._override_initial

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    async def handle(self, event: PadInputEvent) -> None:
        """Apply one event.

        Events are applied one at a time in arrival order.  A
        ``CurrencyChange`` releases the lock while it waits for the rate
        snapshot, so a slow rate source delays only that conversion.
        """
        if self._disposed:
            raise EngineDisposedError("engine has been disposed")
        if not self._started:
            self.start()
        if isinstance(event, CurrencyChange):
            await self._on_currency_change(event)
            return
        async with self._lock:
            if self._disposed:
                return
            self._dispatch(event)

    def submit(self, event: PadInputEvent) -> asyncio.Task:
        """Schedule ``handle(event)`` from synchronous code."""
        task = asyncio.get_running_loop().create_task(self.handle(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _dispatch(self, event: PadInputEvent) -> None:
        with self.state.hold():
            if isinstance(event, Backspace):
                self._on_backspace()
            elif isinstance(event, DecimalSeparator):
                self._set_expression(
                    editor.append_decimal_separator(self._expression.value, self.config.decimal_separator)
                )
            elif isinstance(event, CalculatorOperator):
                self._set_expression(editor.append_operator(self._expression.value, event.operator))
            elif isinstance(event, Number):
                self._on_number(event)
            elif isinstance(event, CalculatorClear):
                self._set_expression(editor.clear())
            elif isinstance(event, CalculatorEquals):
                self._on_equals()
            elif isinstance(event, Initial):
                self._on_initial(event)
            else:
                raise TypeError(f"Unknown amount pad event: {event!r}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _set_expression(self, expression: str) -> None:
        self._expression.set(expression)
        self._override_initial = False  # text is user-authored now

    def _on_backspace(self) -> None:
        if self._expression.value:
            self._set_expression(editor.backspace(self._expression.value))

    def _on_number(self, event: Number) -> None:
        self._set_expression(
            editor.append_digit(self._expression.value, event.digit, override=self._override_initial)
        )
        self._show_error.set(False)

    def _on_equals(self) -> None:
        expression = self._expression.value
        try:
            result = evaluate_or_raise(expression, self.config.locale)
        except CalculatorError as exc:
            if expression.strip():
                self._show_error.set(True)
                code = (
                    EXPRESSION_ARITHMETIC_ERROR
                    if isinstance(exc, ExpressionArithmeticError)
                    else EXPRESSION_PARSE_ERROR
                )
                emit_warning(
                    EventType.expression_error,
                    str(exc),
                    {"expression": expression},
                    error_code=code,
                    session_id=self.session_id,
                )
            self._override_initial = False
            return
        self._set_expression(self._format_amount(result, self._currency.value))

    def _on_initial(self, event: Initial) -> None:
        value = event.value
        if value is None:
            return
        self._currency.set(value.currency)
        if value.amount != 0:
            self._expression.set(self._format_amount(value.amount, value.currency))
            self._override_initial = True
        else:
            self._override_initial = False

    async def _on_currency_change(self, event: CurrencyChange) -> None:
        new = event.currency
        async with self._lock:
            if self._disposed:
                return
            current = self._currency.value
            amount = evaluate(self._expression.value, self.config.locale)
            logger.debug("currency change %s -> %s, entered amount %s", current, new, amount)
            if new == current or amount is None:
                self._apply_currency(new, None)
                return

        # The lock is released here; other events keep flowing while the
        # rate read is pending.  The amount converted is the one entered
        # before the read started.
        rates = await self._take_rates()
        if rates is None:
            return  # disposed while waiting; result discarded

        converted_expression: str | None = None
        converted = exchange(rates, current, new, amount)
        if converted is not None:
            converted_expression = self._format_amount(converted, new)
            emit_info(
                EventType.currency_converted,
                f"converted {current} -> {new}",
                {"from": current, "to": new, "amount": amount, "converted": converted},
                session_id=self.session_id,
            )
        else:
            emit_warning(
                EventType.conversion_unavailable,
                f"no rate from {current or '?'} to {new}",
                {"from": current, "to": new},
                error_code=NO_RATE_PATH,
                session_id=self.session_id,
            )

        async with self._lock:
            if self._disposed:
                return
            self._apply_currency(new, converted_expression)

    def _apply_currency(self, currency: str, expression: str | None) -> None:
        with self.state.hold():
            if expression is not None:
                self._expression.set(expression)
            self._currency.set(currency)
            self._override_initial = False

    async def _take_rates(self) -> ExchangeRateSnapshot | None:
        """One-shot read of the current rate snapshot.

        Returns ``None`` if the engine was disposed while waiting.
        """
        read = asyncio.ensure_future(self._rates_signal.current())
        self._inflight.add(read)
        try:
            rates = await read
        except asyncio.CancelledError:
            if self._disposed and read.cancelled():
                return None
            raise
        finally:
            self._inflight.discard(read)
        if self._disposed:
            return None
        return rates

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _format_amount(self, amount: float, currency: str) -> str:
        return format_value(
            MonetaryValue(amount=amount, currency=currency),
            shorten_fiat=False,
            config=self.config,
        ).amount

    def _derive(
        self,
        expression: str,
        currency: str,
        show_error: bool,
        rates: ExchangeRateSnapshot | None,
        base_currency: str | None,
    ) -> DerivedDisplayState:
        return derive_state(expression, currency, show_error, rates, base_currency, config=self.config)

    def _on_rates(self, rates: ExchangeRateSnapshot) -> None:
        emit_info(
            EventType.rates_received,
            "exchange rates updated",
            {"base_currency": rates.base_currency, "currencies": sorted(rates.rates)},
            session_id=self.session_id,
        )

    def _on_base_currency(self, base_currency: str) -> None:
        emit_info(
            EventType.base_currency_received,
            f"base currency is {base_currency}",
            {"base_currency": base_currency},
            session_id=self.session_id,
        )
