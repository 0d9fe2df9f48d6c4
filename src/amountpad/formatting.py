"""Amount formatting for display and for writing back into the calculator.

Two modes:

- ``shorten_fiat=True`` -- compact display (``12.35k USD``), used for the
  base-currency equivalent line.
- ``shorten_fiat=False`` -- plain, ungrouped decimal in the user's locale,
  used whenever an amount is written back into the editable expression.
  ``evaluate(format_value(v, False).amount)`` gives back ``v.amount``
  rounded to the currency's display precision.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from amountpad.calculator.evaluator import group_decimal, plain_decimal, round_decimal
from amountpad.config import DEFAULT_PAD_CONFIG, PadConfig
from amountpad.money import FormattedValue, MonetaryValue, is_fiat
from amountpad.numbers import NumberLocale, normalize_expression

# Largest suffix first.
_SHORTEN_SUFFIXES: tuple[tuple[int, str], ...] = (
    (1_000_000_000_000, "t"),
    (1_000_000_000, "b"),
    (1_000_000, "m"),
    (1_000, "k"),
)

_SUFFIX_MULTIPLIERS = {suffix: Decimal(scale) for scale, suffix in _SHORTEN_SUFFIXES}


def format_value(
    value: MonetaryValue,
    shorten_fiat: bool,
    *,
    config: PadConfig | None = None,
) -> FormattedValue:
    """Format *value* for display.

    Args:
        value: Amount and currency.
        shorten_fiat: Abbreviate large fiat amounts with ``k``/``m``/``b``/``t``
            and group digits.  When false the amount is a plain decimal
            suitable for re-editing.
        config: Precision, threshold and separators; defaults apply when
            omitted.
    """
    cfg = config or DEFAULT_PAD_CONFIG
    loc = cfg.locale
    fiat = is_fiat(value.currency)
    decimals = cfg.fiat_decimals if fiat else cfg.crypto_decimals

    if not shorten_fiat:
        amount = plain_decimal(round_decimal(value.amount, decimals), loc)
    elif fiat and abs(value.amount) >= cfg.shorten_threshold:
        amount = _shorten(value.amount, loc)
    else:
        amount = group_decimal(round_decimal(value.amount, decimals), loc)

    return FormattedValue(amount=amount, currency=value.currency)


def _shorten(amount: float, locale: NumberLocale) -> str:
    magnitude = abs(amount)
    for i, (scale, suffix) in enumerate(_SHORTEN_SUFFIXES):
        if magnitude >= scale:
            scaled = round_decimal(amount / scale, 2)
            # 999.996k rounds to 1000k; use the next suffix up instead.
            if abs(scaled) >= 1000 and i > 0:
                scale, suffix = _SHORTEN_SUFFIXES[i - 1]
                scaled = round_decimal(amount / scale, 2)
            return plain_decimal(scaled, locale) + suffix
    return plain_decimal(round_decimal(amount, 2), locale)


def parse_amount(text: str, locale: NumberLocale | None = None) -> str:
    """Convert formatted amount text back into a plain decimal string.

    Accepts grouping separators, the locale decimal separator and a
    shortening suffix: ``"1,234.5"`` -> ``"1234.5"``, ``"12.35k"`` ->
    ``"12350"``.  The result uses the locale decimal separator so it can
    be placed directly into a calculator expression.

    Raises:
        ValueError: If *text* is not a formatted number.
    """
    loc = locale or DEFAULT_PAD_CONFIG.locale
    raw = text.strip()
    multiplier = Decimal(1)
    if raw and raw[-1].lower() in _SUFFIX_MULTIPLIERS:
        multiplier = _SUFFIX_MULTIPLIERS[raw[-1].lower()]
        raw = raw[:-1]
    normalized = normalize_expression(raw, loc)
    body = normalized[1:] if normalized.startswith("-") else normalized
    if not body or not all(ch.isdigit() or ch == "." for ch in body) or body.count(".") > 1:
        raise ValueError(f"Not a formatted amount: {text!r}")
    try:
        d = Decimal(normalized) * multiplier
    except InvalidOperation as exc:
        raise ValueError(f"Not a formatted amount: {text!r}") from exc
    if d == 0:
        d = Decimal(0)
    return plain_decimal(d, loc)
