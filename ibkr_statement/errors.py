"""
Exceptions raised while reading an activity statement.

Every failure aborts the whole parse; callers never receive a partial Statement.
I/O problems are left to the built-in OSError family raised by the read itself.
"""
from typing import Any, Mapping, Optional


class StatementError(Exception):
    """
    Base class for all statement parsing failures.

    Args:
        message (str): What went wrong.
        row (Optional[Mapping[str, Any]]): The offending CSV row, if the failure concerns one.
    """
    def __init__(self, message: str, row: Optional[Mapping[str, Any]] = None) -> None:
        self.row = dict(row) if row is not None else None
        if self.row is not None:
            message = f"{message}. Row: {self.row}"
        super().__init__(message)


class StatementFormatError(StatementError, ValueError):
    """The file content does not match the expected statement structure."""


class PositionError(StatementError):
    """The trades cannot be reconciled into consistent positions."""
