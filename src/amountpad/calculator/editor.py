"""Pure text edits on a calculator expression.

None of these functions evaluate anything; they only keep the text inside
the calculator grammar while the user types:

- at most one decimal separator per operand,
- no two operators in a row (a new operator replaces the trailing one),
- the only operator allowed at the start is a minus sign.
"""

from __future__ import annotations

from amountpad.numbers import MINUS, canonical_operator, is_operator


def append_digit(expression: str, digit: str, *, override: bool = False) -> str:
    """Append a single digit.

    Args:
        expression: Current text.
        digit: One of ``0``-``9``.
        override: Discard *expression* first (the text was pre-filled and
            the first keystroke replaces it).
    """
    if len(digit) != 1 or not digit.isdigit():
        raise ValueError(f"Not a digit: {digit!r}")
    base = "" if override else expression
    return base + digit


def append_operator(expression: str, operator: str) -> str:
    """Append *operator*, replacing a trailing operator instead of stacking."""
    op = canonical_operator(operator)
    if not expression:
        return MINUS if op == MINUS else expression
    if is_operator(expression[-1]):
        if len(expression) == 1:
            # A lone leading sign may only be replaced by another sign.
            return expression
        return expression[:-1] + op
    return expression + op


def append_decimal_separator(expression: str, separator: str) -> str:
    """Append *separator* unless the current operand already has one.

    An empty operand gets a leading zero: ``"5+"`` -> ``"5+0."``.
    """
    operand = current_operand(expression)
    if separator in operand:
        return expression
    if not operand:
        return expression + "0" + separator
    return expression + separator


def backspace(expression: str) -> str:
    """Remove the last character; no-op on empty text."""
    return expression[:-1]


def clear() -> str:
    return ""


def current_operand(expression: str) -> str:
    """The text after the last operator (the number being typed)."""
    for i in range(len(expression) - 1, -1, -1):
        if is_operator(expression[i]):
            return expression[i + 1:]
    return expression
