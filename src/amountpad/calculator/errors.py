"""Error types for calculator expression parsing and evaluation."""

from __future__ import annotations


class CalculatorError(Exception):
    """Base class for all calculator expression errors."""


class ExpressionParseError(CalculatorError):
    """Malformed or incomplete expression text.

    Attributes:
        position: Character position where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Expression parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class ExpressionArithmeticError(CalculatorError):
    """Arithmetic failure while evaluating a well-formed expression."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Arithmetic error: {message}")
