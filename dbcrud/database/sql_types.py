"""Generic SQL type vocabulary shared by every dialect."""

import logging
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .exceptions import CoercionError

logger = logging.getLogger(__name__)

_TRUE_WORDS = {"true", "t", "yes", "y", "1"}
_FALSE_WORDS = {"false", "f", "no", "n", "0"}


def _parse_bool(text: str) -> bool:
    word = text.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean literal: {text!r}")


def _parse_int(text: str) -> int:
    return int(text.strip())


def _parse_float(text: str) -> float:
    return float(text.strip())


def _parse_decimal(text: str) -> Decimal:
    try:
        return Decimal(text.strip())
    except InvalidOperation as e:
        raise ValueError(f"not a decimal literal: {text!r}") from e


def _parse_date(text: str) -> date:
    return date.fromisoformat(text.strip())


def _parse_time(text: str) -> time:
    return time.fromisoformat(text.strip())


def _parse_timestamp(text: str) -> datetime:
    return datetime.fromisoformat(text.strip())


def _parse_binary(text: str) -> bytes:
    return bytes.fromhex(text.strip())


def _parse_text(text: str) -> str:
    return text


class SqlType(Enum):
    """Generic SQL data types, keyed by their ``java.sql.Types`` code."""

    BIT = -7
    TINYINT = -6
    SMALLINT = 5
    INTEGER = 4
    BIGINT = -5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    NUMERIC = 2
    DECIMAL = 3
    CHAR = 1
    VARCHAR = 12
    LONGVARCHAR = -1
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    BINARY = -2
    VARBINARY = -3
    LONGVARBINARY = -4
    BLOB = 2004
    CLOB = 2005
    BOOLEAN = 16

    @property
    def code(self) -> int:
        """The ``java.sql.Types`` code."""
        return self.value

    @property
    def python_type(self) -> type:
        """Python type that values of this SQL type materialize as."""
        return _PYTHON_TYPES[self]

    @property
    def is_sized(self) -> bool:
        """Whether DDL for this type takes a size suffix."""
        return self in _SIZED_TYPES

    @classmethod
    def get(cls, code: int) -> Optional["SqlType"]:
        """Look up a type by its native integer code.

        Unknown codes return None; callers skip the column instead of failing.
        """
        try:
            return cls(code)
        except ValueError:
            return None

    @classmethod
    def from_native_name(cls, name: Optional[str]) -> Optional["SqlType"]:
        """Resolve a database-native type name such as ``varchar(255)``."""
        if not name:
            return None
        normalized = re.sub(r"\(.*?\)", " ", name.upper())
        normalized = re.sub(r"\b(UNSIGNED|SIGNED|ZEROFILL)\b", " ", normalized)
        normalized = " ".join(normalized.split())
        return _NATIVE_NAMES.get(normalized)

    def ddl(self, native_name: str, size: int = 0, nullable: bool = True,
            decimal_digits: int = 0) -> str:
        """Render a column type fragment: ``<native>[(size)][ NOT NULL]``."""
        fragment = native_name
        if size > 0 and self.is_sized:
            if self in (SqlType.NUMERIC, SqlType.DECIMAL) and decimal_digits > 0:
                fragment += f"({size},{decimal_digits})"
            else:
                fragment += f"({size})"
        if not nullable:
            fragment += " NOT NULL"
        return fragment

    def from_string(self, text: str, column: Optional[str] = None) -> Any:
        """Parse a string literal into this type's Python value."""
        parser: Callable[[str], Any] = _PARSERS[self]
        try:
            return parser(text)
        except (ValueError, TypeError) as e:
            logger.debug(f"Failed coercing {text!r} to {self.name}: {e}")
            raise CoercionError(text, self, column) from e


_SIZED_TYPES = frozenset({
    SqlType.CHAR, SqlType.VARCHAR, SqlType.BINARY, SqlType.VARBINARY,
    SqlType.NUMERIC, SqlType.DECIMAL,
})

_PARSERS: Dict[SqlType, Callable[[str], Any]] = {
    SqlType.BIT: _parse_bool,
    SqlType.BOOLEAN: _parse_bool,
    SqlType.TINYINT: _parse_int,
    SqlType.SMALLINT: _parse_int,
    SqlType.INTEGER: _parse_int,
    SqlType.BIGINT: _parse_int,
    SqlType.FLOAT: _parse_float,
    SqlType.REAL: _parse_float,
    SqlType.DOUBLE: _parse_float,
    SqlType.NUMERIC: _parse_decimal,
    SqlType.DECIMAL: _parse_decimal,
    SqlType.CHAR: _parse_text,
    SqlType.VARCHAR: _parse_text,
    SqlType.LONGVARCHAR: _parse_text,
    SqlType.CLOB: _parse_text,
    SqlType.DATE: _parse_date,
    SqlType.TIME: _parse_time,
    SqlType.TIMESTAMP: _parse_timestamp,
    SqlType.BINARY: _parse_binary,
    SqlType.VARBINARY: _parse_binary,
    SqlType.LONGVARBINARY: _parse_binary,
    SqlType.BLOB: _parse_binary,
}

_PYTHON_TYPES: Dict[SqlType, type] = {
    SqlType.BIT: bool,
    SqlType.BOOLEAN: bool,
    SqlType.TINYINT: int,
    SqlType.SMALLINT: int,
    SqlType.INTEGER: int,
    SqlType.BIGINT: int,
    SqlType.FLOAT: float,
    SqlType.REAL: float,
    SqlType.DOUBLE: float,
    SqlType.NUMERIC: Decimal,
    SqlType.DECIMAL: Decimal,
    SqlType.CHAR: str,
    SqlType.VARCHAR: str,
    SqlType.LONGVARCHAR: str,
    SqlType.CLOB: str,
    SqlType.DATE: date,
    SqlType.TIME: time,
    SqlType.TIMESTAMP: datetime,
    SqlType.BINARY: bytes,
    SqlType.VARBINARY: bytes,
    SqlType.LONGVARBINARY: bytes,
    SqlType.BLOB: bytes,
}

# Native type names reported by drivers, normalized to upper case without size.
_NATIVE_NAMES: Dict[str, SqlType] = {member.name: member for member in SqlType}
_NATIVE_NAMES.update({
    "INT": SqlType.INTEGER,
    "INT4": SqlType.INTEGER,
    "MEDIUMINT": SqlType.INTEGER,
    "INT2": SqlType.SMALLINT,
    "INT8": SqlType.BIGINT,
    "FLOAT8": SqlType.DOUBLE,
    "DOUBLE PRECISION": SqlType.DOUBLE,
    "FLOAT4": SqlType.REAL,
    "DEC": SqlType.DECIMAL,
    "NUMBER": SqlType.NUMERIC,
    "CHARACTER": SqlType.CHAR,
    "NCHAR": SqlType.CHAR,
    "CHARACTER VARYING": SqlType.VARCHAR,
    "NVARCHAR": SqlType.VARCHAR,
    "VARCHAR2": SqlType.VARCHAR,
    "TEXT": SqlType.LONGVARCHAR,
    "TINYTEXT": SqlType.LONGVARCHAR,
    "MEDIUMTEXT": SqlType.LONGVARCHAR,
    "LONGTEXT": SqlType.LONGVARCHAR,
    "DATETIME": SqlType.TIMESTAMP,
    "TIMESTAMP WITHOUT TIME ZONE": SqlType.TIMESTAMP,
    "TINYBLOB": SqlType.BLOB,
    "MEDIUMBLOB": SqlType.BLOB,
    "LONGBLOB": SqlType.BLOB,
    "BYTEA": SqlType.LONGVARBINARY,
    "BOOL": SqlType.BOOLEAN,
})
