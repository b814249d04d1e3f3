"""Exceptions raised by the data-access layer."""

from typing import Any, List, Optional


class DbCrudError(Exception):
    """Base class for recoverable data-access failures."""


class TableNotFoundError(DbCrudError):
    """Raised when a table is not present in the schema catalog."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"table '{table}' not found")


class CrudExecutionError(DbCrudError):
    """Wraps a driver error raised while executing a statement."""

    def __init__(self, message: str, sql: Optional[str] = None):
        self.sql = sql
        super().__init__(message)


class CoercionError(DbCrudError, ValueError):
    """Raised when a string cannot be parsed into a column's SQL type."""

    def __init__(self, text: Any, sql_type: Any, column: Optional[str] = None):
        self.text = text
        self.sql_type = sql_type
        self.column = column
        target = getattr(sql_type, "name", sql_type)
        if column:
            message = f"cannot coerce '{text}' to {target} for column '{column}'"
        else:
            message = f"cannot coerce '{text}' to {target}"
        super().__init__(message)


class CoercionErrors(DbCrudError):
    """Aggregate of every coercion failure found while parsing a filter."""

    def __init__(self, errors: List[CoercionError]):
        self.errors = list(errors)
        super().__init__(", ".join(str(e) for e in self.errors))

    @property
    def columns(self) -> List[str]:
        return [e.column for e in self.errors if e.column]
