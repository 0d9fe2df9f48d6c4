"""Currency conversion against a point-in-time rate snapshot.

Lookup strategy for ``exchange(rates, A, B, x)``:

1. direct rate ``A -> B``;
2. inverse of ``B -> A``;
3. cross rate through the snapshot's ``base_currency`` (the pivot), each
   leg resolved by 1. or 2.

Missing, zero, negative and non-finite rates are treated as absent.  No
path yields ``None``; a rate is never invented.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from amountpad.money import normalize_currency

logger = logging.getLogger(__name__)


class ConversionUnavailable(Exception):
    """No usable rate path between two currencies.

    Attributes:
        from_currency: Source currency code.
        to_currency: Target currency code.
    """

    def __init__(self, from_currency: str, to_currency: str) -> None:
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(f"No exchange rate from {from_currency} to {to_currency}")


class ExchangeRateSnapshot(BaseModel):
    """Point-in-time rates.  ``rates[A][B]`` is the number of B per 1 A."""

    model_config = ConfigDict(frozen=True)

    base_currency: str | None = None
    rates: dict[str, dict[str, float]] = {}

    @field_validator("base_currency")
    @classmethod
    def _base_code(cls, v: str | None) -> str | None:
        return normalize_currency(v) if v else None

    @field_validator("rates")
    @classmethod
    def _codes(cls, v: dict[str, dict[str, float]]) -> dict[str, dict[str, float]]:
        return {
            normalize_currency(src): {normalize_currency(dst): rate for dst, rate in row.items()}
            for src, row in v.items()
        }

    @classmethod
    def from_base_rates(cls, base_currency: str, rates: dict[str, float]) -> "ExchangeRateSnapshot":
        """Build a snapshot from a base-quoted table (``{EUR: 0.92}`` per 1 base)."""
        base = normalize_currency(base_currency)
        return cls(base_currency=base, rates={base: dict(rates)})

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ExchangeRateSnapshot":
        """Build a snapshot from a loaded rates file (see ``load_rates_file``)."""
        base = data.get("base_currency")
        if "rates" in data:
            if not base:
                raise ValueError("'rates' tables need a base_currency")
            return cls.from_base_rates(base, data["rates"])
        return cls(base_currency=base, rates=data.get("pairs", {}))

    def rate(self, from_currency: str, to_currency: str) -> float | None:
        """Direct rate, or ``None`` if absent or unusable."""
        row = self.rates.get(normalize_currency(from_currency))
        if row is None:
            return None
        return _usable(row.get(normalize_currency(to_currency)))


def _usable(rate: float | None) -> float | None:
    if rate is None or not math.isfinite(rate) or rate <= 0:
        return None
    return rate


def _leg(rates: ExchangeRateSnapshot, src: str, dst: str) -> float | None:
    if src == dst:
        return 1.0
    direct = rates.rate(src, dst)
    if direct is not None:
        return direct
    inverse = rates.rate(dst, src)
    if inverse is not None:
        return 1.0 / inverse
    return None


def find_rate(rates: ExchangeRateSnapshot, from_currency: str, to_currency: str) -> float | None:
    """Effective multiplier from one currency to another, or ``None``."""
    src = normalize_currency(from_currency)
    dst = normalize_currency(to_currency)
    rate = _leg(rates, src, dst)
    if rate is not None:
        return rate
    pivot = rates.base_currency
    if pivot is None or pivot in (src, dst):
        return None
    first = _leg(rates, src, pivot)
    second = _leg(rates, pivot, dst)
    if first is None or second is None:
        return None
    return first * second


def exchange(
    rates: ExchangeRateSnapshot,
    from_currency: str,
    to_currency: str,
    amount: float,
) -> float | None:
    """Convert *amount*; ``None`` when no rate path exists."""
    rate = find_rate(rates, from_currency, to_currency)
    if rate is None:
        logger.debug("no rate %s -> %s", from_currency, to_currency)
        return None
    result = amount * rate
    if not math.isfinite(result):
        return None
    return result


def exchange_or_raise(
    rates: ExchangeRateSnapshot,
    from_currency: str,
    to_currency: str,
    amount: float,
) -> float:
    """Like ``exchange`` but raises ``ConversionUnavailable``."""
    result = exchange(rates, from_currency, to_currency, amount)
    if result is None:
        raise ConversionUnavailable(normalize_currency(from_currency), normalize_currency(to_currency))
    return result
