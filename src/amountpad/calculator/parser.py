"""Lark-based parser for calculator expressions.

Supports:
- Decimal operands: ``12``, ``12.5``, ``12.``, ``.5``
- Binary operators ``+ - * /`` (after normalization of ``× ÷ −``)
- A single leading minus sign on the whole expression
"""

from __future__ import annotations

from lark import Lark, Tree
from lark.exceptions import LarkError, UnexpectedCharacters, UnexpectedEOF, UnexpectedToken

from amountpad.calculator.errors import ExpressionParseError
from amountpad.numbers import NumberLocale, normalize_expression

# LALR(1) grammar for the calculator.
# Operator precedence (lowest to highest):
#   1. Addition/subtraction: + -
#   2. Multiplication/division: * /
#   3. Leading sign: - (only before the first operand)
# Both binary levels are left-associative: 8/4/2 = 1.
GRAMMAR = r"""
start: sum

?sum: signed
    | sum "+" product  -> add
    | sum "-" product  -> sub

?signed: product
    | "-" product  -> neg

?product: operand
    | product "*" operand  -> mul
    | product "/" operand  -> div

operand: NUMBER

NUMBER: /[0-9]+(\.[0-9]*)?|\.[0-9]+/
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")


def parse_expression(text: str, locale: NumberLocale | None = None) -> Tree:
    """Parse calculator text into a Lark tree.

    Args:
        text: Expression in the user's locale, e.g. ``"12,5×2"``.
        locale: Separators used by *text*; defaults to ``.`` / ``,``.

    Returns:
        A Lark parse tree.

    Raises:
        ExpressionParseError: If the text is blank, incomplete or malformed.
    """
    normalized = normalize_expression(text, locale)
    if not normalized:
        raise ExpressionParseError("empty expression", position=0)
    try:
        return _parser.parse(normalized)
    except UnexpectedEOF as exc:
        raise ExpressionParseError("incomplete expression", position=len(normalized)) from exc
    except (UnexpectedCharacters, UnexpectedToken) as exc:
        pos = getattr(exc, "column", None)
        if isinstance(exc, UnexpectedToken) and exc.token.type == "$END":
            raise ExpressionParseError("incomplete expression", position=len(normalized)) from exc
        raise ExpressionParseError(str(exc).splitlines()[0], position=pos) from exc
    except LarkError as exc:
        raise ExpressionParseError(str(exc)) from exc
