"""Locale-aware number separators and text normalization.

The calculator keeps expressions in the user's locale (e.g. ``12,5+3`` in a
comma-decimal locale).  Everything that parses numbers goes through
``normalize_expression`` first, which maps the text to the canonical ASCII
form understood by the grammar.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

# Display glyphs for the four calculator operators.
PLUS = "+"
MINUS = "-"
TIMES = "×"
DIVIDE = "÷"

OPERATORS = (PLUS, MINUS, TIMES, DIVIDE)

# Alternative spellings accepted on input, mapped to display glyphs.
_OPERATOR_ALIASES = {
    "*": TIMES,
    "/": DIVIDE,
    "−": MINUS,  # U+2212 minus sign
}

# Canonical ASCII spelling used by the grammar.
_CANONICAL = {
    PLUS: "+",
    MINUS: "-",
    TIMES: "*",
    DIVIDE: "/",
}


class NumberLocale(BaseModel):
    """Decimal and grouping separators used to read and render numbers."""

    model_config = ConfigDict(frozen=True)

    decimal_separator: str = "."
    grouping_separator: str = ","

    @model_validator(mode="after")
    def _check_separators(self) -> "NumberLocale":
        if len(self.decimal_separator) != 1:
            raise ValueError("decimal_separator must be a single character")
        if len(self.grouping_separator) > 1:
            raise ValueError("grouping_separator must be at most one character")
        if self.decimal_separator == self.grouping_separator:
            raise ValueError("decimal and grouping separators must differ")
        if self.decimal_separator.isdigit() or self.decimal_separator in _CANONICAL.values():
            raise ValueError(f"Invalid decimal separator: {self.decimal_separator!r}")
        return self


DEFAULT_LOCALE = NumberLocale()


def canonical_operator(operator: str) -> str:
    """Map an operator spelling to its display glyph.

    Raises:
        ValueError: If *operator* is not one of the calculator operators.
    """
    op = _OPERATOR_ALIASES.get(operator, operator)
    if op not in OPERATORS:
        raise ValueError(f"Unknown calculator operator: {operator!r}")
    return op


def is_operator(char: str) -> bool:
    return char in OPERATORS or char in _OPERATOR_ALIASES


def normalize_expression(text: str, locale: NumberLocale | None = None) -> str:
    """Return *text* in canonical ASCII form (``.`` decimal, ``+-*/`` operators).

    Whitespace and grouping separators are dropped.
    """
    loc = locale or DEFAULT_LOCALE
    out: list[str] = []
    for ch in text:
        if ch.isspace():
            continue
        if loc.grouping_separator and ch == loc.grouping_separator:
            continue
        if ch == loc.decimal_separator:
            out.append(".")
            continue
        glyph = _OPERATOR_ALIASES.get(ch, ch)
        out.append(_CANONICAL.get(glyph, glyph))
    return "".join(out)
