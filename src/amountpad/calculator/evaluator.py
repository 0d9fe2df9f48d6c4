"""Tree-walking evaluator for calculator expressions.

``evaluate()`` is the forgiving entry point used on every keystroke: it
returns ``None`` for anything that does not produce a finite number.
``evaluate_or_raise()`` keeps the failure reason for callers that need it.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

from lark import Token, Tree

from amountpad.calculator.errors import (
    CalculatorError,
    ExpressionArithmeticError,
    ExpressionParseError,
)
from amountpad.calculator.parser import parse_expression
from amountpad.numbers import DEFAULT_LOCALE, NumberLocale

# Fraction digits shown on the calculator's intermediate result line.
MAX_FRACTION_DIGITS = 12


def evaluate_or_raise(expression: str, locale: NumberLocale | None = None) -> float:
    """Evaluate *expression* to a finite float.

    Raises:
        ExpressionParseError: Blank, incomplete or malformed text.
        ExpressionArithmeticError: Division by zero or a non-finite result.
    """
    tree = parse_expression(expression, locale)
    result = _eval(tree)
    if not math.isfinite(result):
        raise ExpressionArithmeticError("result is not a finite number")
    # Normalize negative zero ("-0", "0×-1" style inputs).
    return result + 0.0


def evaluate(expression: str, locale: NumberLocale | None = None) -> float | None:
    """Evaluate *expression*, returning ``None`` on any calculator error."""
    try:
        return evaluate_or_raise(expression, locale)
    except CalculatorError:
        return None


def _eval(node: Tree | Token) -> float:
    if isinstance(node, Token):
        return _parse_number(node)

    rule = node.data

    if rule == "start":
        return _eval(node.children[0])
    if rule == "operand":
        return _parse_number(node.children[0])

    if rule == "neg":
        return -_eval(node.children[0])
    if rule == "add":
        return _eval(node.children[0]) + _eval(node.children[1])
    if rule == "sub":
        return _eval(node.children[0]) - _eval(node.children[1])
    if rule == "mul":
        return _eval(node.children[0]) * _eval(node.children[1])
    if rule == "div":
        left = _eval(node.children[0])
        right = _eval(node.children[1])
        if right == 0:
            raise ExpressionArithmeticError("division by zero")
        return left / right

    raise ExpressionParseError(f"Unknown node type: {rule}")


def _parse_number(token: Token) -> float:
    s = str(token)
    if s.endswith("."):
        s += "0"
    if s.startswith("."):
        s = "0" + s
    return float(s)


# ---------------------------------------------------------------------------
# Result inspection
# ---------------------------------------------------------------------------


def _is_bare_number(tree: Tree) -> bool:
    node = tree.children[0]
    if isinstance(node, Tree) and node.data == "neg":
        node = node.children[0]
    return isinstance(node, Tree) and node.data == "operand"


def has_obvious_result(
    expression: str,
    value: float | None,
    locale: NumberLocale | None = None,
) -> bool:
    """True when *expression* is just a number equal to *value*.

    Used to hide the ``= result`` line when no calculation has been typed:
    ``has_obvious_result("5", 5.0)`` is true, ``("2+3", 5.0)`` is not.
    """
    if value is None:
        return False
    try:
        tree = parse_expression(expression, locale)
    except ExpressionParseError:
        return False
    if not _is_bare_number(tree):
        return False
    return _eval(tree) == value


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_number(
    value: float,
    locale: NumberLocale | None = None,
    max_fraction_digits: int = MAX_FRACTION_DIGITS,
) -> str:
    """Render *value* for the calculator result line.

    Grouped integer part, locale decimal separator, at most
    *max_fraction_digits* digits after it, trailing zeros trimmed.
    """
    loc = locale or DEFAULT_LOCALE
    return group_decimal(round_decimal(value, max_fraction_digits), loc)


def round_decimal(value: float, fraction_digits: int) -> Decimal:
    """Round a float half-up to *fraction_digits* via its shortest repr."""
    try:
        d = Decimal(repr(float(value)))
        quantum = Decimal(1).scaleb(-fraction_digits)
        with localcontext() as ctx:
            # Enough digits for the integer part plus the requested fraction.
            ctx.prec = max(28, d.adjusted() + fraction_digits + 2)
            d = d.quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Cannot format non-finite number: {value!r}") from exc
    if d == 0:
        return Decimal(0)
    return d


def plain_decimal(d: Decimal, locale: NumberLocale, grouped: bool = False) -> str:
    """Fixed-point text for *d*, trailing zeros trimmed."""
    text = format(d, "f")
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]
    int_part, _, frac_part = text.partition(".")
    frac_part = frac_part.rstrip("0")
    if grouped and locale.grouping_separator:
        int_part = _group_thousands(int_part, locale.grouping_separator)
    if frac_part:
        return f"{sign}{int_part}{locale.decimal_separator}{frac_part}"
    return f"{sign}{int_part}"


def group_decimal(d: Decimal, locale: NumberLocale) -> str:
    return plain_decimal(d, locale, grouped=True)


def _group_thousands(digits: str, separator: str) -> str:
    groups: list[str] = []
    while len(digits) > 3:
        groups.insert(0, digits[-3:])
        digits = digits[:-3]
    groups.insert(0, digits)
    return separator.join(groups)
