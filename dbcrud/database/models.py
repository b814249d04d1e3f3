"""Database models and data structures."""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .sql_types import SqlType


@dataclass(frozen=True)
class DbColumn:
    """A column as declared in, or introspected from, the database."""

    name: str
    sql_type: SqlType
    size: int = 0
    decimal_digits: int = 0
    nullable: bool = True
    auto_increment: bool = False
    auto_generated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert the column to a dictionary."""
        return {
            "name": self.name,
            "type": self.sql_type.name,
            "size": self.size,
            "decimal_digits": self.decimal_digits,
            "nullable": self.nullable,
            "auto_increment": self.auto_increment,
            "auto_generated": self.auto_generated,
        }


@dataclass(frozen=True)
class DbTable:
    """Represents a database table definition."""

    name: str
    columns: Tuple[DbColumn, ...]
    primary_key: Tuple[str, ...] = ()
    _by_name: Dict[str, DbColumn] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "primary_key", tuple(self.primary_key))
        object.__setattr__(self, "_by_name", {c.name: c for c in self.columns})
        missing = [k for k in self.primary_key if k not in self._by_name]
        if missing:
            raise ValueError(f"primary key columns {missing} not found in table '{self.name}'")

    @property
    def column_names(self) -> List[str]:
        """Column names in declaration order."""
        return [c.name for c in self.columns]

    def has_column(self, name: str) -> bool:
        """Check whether the table declares column ``name``."""
        return name in self._by_name

    def column(self, name: str) -> DbColumn:
        """Get a column by name, raising KeyError when it does not exist."""
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"column '{name}' not found in table '{self.name}'") from None

    def coerce(self, name: str, value: str) -> Any:
        """Convert a string into the typed value of the named column."""
        return self.column(name).sql_type.from_string(value, column=name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the table definition to a dictionary."""
        return {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "primary_key": list(self.primary_key),
        }


@dataclass(frozen=True)
class ColumnOrder:
    """An ORDER BY term."""

    column: str
    ascending: bool = True

    def __str__(self) -> str:
        return f"{self.column} {'ASC' if self.ascending else 'DESC'}"

    @classmethod
    def parse(cls, text: str) -> "ColumnOrder":
        """Parse ``name``, ``name:asc`` or ``name:desc``."""
        name, _, direction = text.partition(":")
        direction = direction.strip().lower()
        if direction not in ("", "asc", "desc"):
            raise ValueError(f"invalid sort direction: {direction!r}")
        return cls(name.strip(), direction != "desc")


def asc(column: str) -> ColumnOrder:
    """Ascending order on ``column``."""
    return ColumnOrder(column, True)


def desc(column: str) -> ColumnOrder:
    """Descending order on ``column``."""
    return ColumnOrder(column, False)


class ValueKind(Enum):
    """Kinds of cell values handed back by the driver."""

    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    TEXT = "text"
    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    BINARY = "binary"

    @classmethod
    def of(cls, value: Any) -> "ValueKind":
        """Classify a driver value, raising TypeError for unsupported types."""
        # bool before int and datetime before date: both are subclasses
        if value is None:
            return cls.NULL
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, float):
            return cls.FLOAT
        if isinstance(value, Decimal):
            return cls.DECIMAL
        if isinstance(value, str):
            return cls.TEXT
        if isinstance(value, datetime):
            return cls.TIMESTAMP
        if isinstance(value, date):
            return cls.DATE
        if isinstance(value, time):
            return cls.TIME
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls.BINARY
        raise TypeError(f"unsupported cell value type: {type(value).__name__}")


class Row:
    """A single record of a QueryData, addressable by column name."""

    __slots__ = ("_columns", "_index", "_values")

    def __init__(self, columns: Sequence[str], index: Dict[str, int], values: Sequence[Any]):
        self._columns = columns
        self._index = index
        self._values = values

    def _position(self, column: str) -> int:
        try:
            return self._index[column.upper()]
        except KeyError:
            raise KeyError(f"column '{column}' not in row") from None

    def __getitem__(self, column: str) -> Any:
        return self._values[self._position(column)]

    def __contains__(self, column: object) -> bool:
        return isinstance(column, str) and column.upper() in self._index

    def __iter__(self) -> Iterator[Tuple[str, Any]]:
        return iter(zip(self._columns, self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"Row({self.as_dict()!r})"

    def get(self, column: str, expected_type: Optional[type] = None, default: Any = None) -> Any:
        """Get a value, optionally checked against the caller's expected type.

        Integers are widened to float and Decimal when those are expected;
        any other mismatch raises TypeError.
        """
        if column not in self:
            return default
        value = self[column]
        if value is None or expected_type is None:
            return value
        if isinstance(value, expected_type) and not (
                isinstance(value, bool) and expected_type is int):
            return value
        if expected_type in (float, Decimal) and isinstance(value, int) and not isinstance(value, bool):
            return expected_type(value)
        raise TypeError(
            f"column '{column}' holds {type(value).__name__}, not {expected_type.__name__}"
        )

    def kind(self, column: str) -> ValueKind:
        """Kind of the value held in ``column``."""
        return ValueKind.of(self[column])

    def as_dict(self) -> Dict[str, Any]:
        """Convert the row to a column -> value dictionary."""
        return dict(zip(self._columns, self._values))


class QueryData:
    """Materialized result of a select: column names plus row values."""

    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Any]],
                 query: str = "", execution_time: float = 0.0,
                 timestamp: Optional[datetime] = None):
        self.columns: Tuple[str, ...] = tuple(columns)
        self.rows: Tuple[Tuple[Any, ...], ...] = tuple(tuple(r) for r in rows)
        self.query = query
        self.execution_time = execution_time
        self.timestamp = timestamp or datetime.now()
        self._index = {c.upper(): i for i, c in enumerate(self.columns)}

    def __iter__(self) -> Iterator[Row]:
        return (Row(self.columns, self._index, values) for values in self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, position: int) -> Row:
        return Row(self.columns, self._index, self.rows[position])

    def __repr__(self) -> str:
        return f"QueryData(columns={list(self.columns)!r}, row_count={self.row_count})"

    @property
    def row_count(self) -> int:
        """Number of rows in the result."""
        return len(self.rows)

    def as_maps(self) -> List[Dict[str, Any]]:
        """Convert every row to a column -> value dictionary."""
        return [dict(zip(self.columns, values)) for values in self.rows]

    def to_dict(self) -> Dict[str, Any]:
        """Convert the result to a dictionary."""
        return {
            "columns": list(self.columns),
            "rows": [list(r) for r in self.rows],
            "row_count": self.row_count,
            "execution_time": self.execution_time,
            "query": self.query,
            "timestamp": self.timestamp.isoformat(),
        }
