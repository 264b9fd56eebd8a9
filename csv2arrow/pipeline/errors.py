# ========================
# csv2arrow/pipeline/errors.py
# ========================

"""
Pipeline Errors

Exception types raised by the ingestion pipeline. Every error carries enough
context (row, column, literal value) for an operator to fix the input or the
configuration and rerun.
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for all errors raised by the csv2arrow pipeline."""


class ConfigurationError(PipelineError, ValueError):
    """Raised when a configuration value is invalid or names an unknown column."""


class MalformedRowError(PipelineError):
    """
    Raised when a data row has a different number of fields than the header.

    Attributes:
        row_number (int): 1-based index of the data row (header not counted)
        expected (int): Number of fields in the header
        actual (int): Number of fields found in the row
        line_number (int): Physical line in the input where the row ended
    """

    def __init__(self, row_number: int, expected: int, actual: int,
                 line_number: Optional[int] = None):
        self.row_number = row_number
        self.expected = expected
        self.actual = actual
        self.line_number = line_number
        message = (
            f"Row {row_number} has {actual} fields, expected {expected}"
        )
        if line_number is not None:
            message += f" (input line {line_number})"
        super().__init__(message)


class TypeCoercionError(PipelineError, ValueError):
    """
    Raised when a non-missing value cannot be parsed under a user-forced type.

    Attributes:
        column (str): Column name
        row_number (int): 1-based index of the data row
        value (str): The literal that failed to parse
        target_type: The type the value was being coerced to
    """

    def __init__(self, column: str, row_number: int, value: str, target_type: Any = None):
        self.column = column
        self.row_number = row_number
        self.value = value
        self.target_type = target_type
        message = f"Column '{column}', row {row_number}: cannot parse {value!r}"
        if target_type is not None:
            message += f" as {target_type}"
        super().__init__(message)
