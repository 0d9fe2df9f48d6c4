"""Incremental calculator: text editing, parsing and evaluation.

Public API::

    from amountpad.calculator import evaluate, has_obvious_result, format_number
"""

from amountpad.calculator.editor import (
    append_decimal_separator,
    append_digit,
    append_operator,
    backspace,
    clear,
    current_operand,
)
from amountpad.calculator.errors import (
    CalculatorError,
    ExpressionArithmeticError,
    ExpressionParseError,
)
from amountpad.calculator.evaluator import (
    evaluate,
    evaluate_or_raise,
    format_number,
    has_obvious_result,
)
from amountpad.calculator.parser import parse_expression

__all__ = [
    "CalculatorError",
    "ExpressionArithmeticError",
    "ExpressionParseError",
    "append_decimal_separator",
    "append_digit",
    "append_operator",
    "backspace",
    "clear",
    "current_operand",
    "evaluate",
    "evaluate_or_raise",
    "format_number",
    "has_obvious_result",
    "parse_expression",
]
