"""Database dialects: native type names, pagination and metadata queries."""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .models import ColumnOrder, DbColumn
from .predicates import Predicate, column_list
from .sql_types import SqlType

logger = logging.getLogger(__name__)

_SIZE_PATTERN = re.compile(r"\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)")


@dataclass(frozen=True)
class ColumnInfo:
    """Raw column metadata as reported by the database."""

    name: str
    type_name: str
    size: int = 0
    decimal_digits: int = 0
    nullable: bool = True
    auto_increment: bool = False
    auto_generated: bool = False


def order_by_sql(order_by: Sequence[ColumnOrder]) -> str:
    """Render an ORDER BY clause, or an empty string for no ordering."""
    if not order_by:
        return ""
    return "ORDER BY " + ", ".join(str(o) for o in order_by)


def parse_type_size(type_name: str) -> Tuple[int, int]:
    """Extract ``(size, digits)`` from a declared type like ``DECIMAL(10,2)``."""
    match = _SIZE_PATTERN.search(type_name or "")
    if not match:
        return 0, 0
    return int(match.group(1)), int(match.group(2) or 0)


class Dialect:
    """Generic ANSI dialect.

    Used when no product-specific dialect is registered. It has no native
    pagination, so callers fall back to skipping rows on the cursor.
    """

    name = "ANSI"
    paramstyle = "qmark"
    supports_pagination = False

    _type_names: Dict[SqlType, str] = {t: t.name for t in SqlType}
    _type_names[SqlType.DOUBLE] = "DOUBLE PRECISION"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def type_mapping(self) -> Dict[SqlType, str]:
        """Map each generic type to this database's DDL type name."""
        return dict(self._type_names)

    def resolve_type(self, info: ColumnInfo) -> Optional[SqlType]:
        """Generic type of an introspected column, or None when unsupported."""
        return SqlType.from_native_name(info.type_name)

    def _column_ddl(self, column: DbColumn) -> str:
        try:
            native = self.type_mapping()[column.sql_type]
        except KeyError:
            raise ValueError(f"{self.name} has no native type for {column.sql_type.name}") from None
        ddl = column.sql_type.ddl(native, column.size, column.nullable, column.decimal_digits)
        return f"{column.name} {ddl}"

    def column_definition(self, column: DbColumn) -> str:
        """Render one column of a CREATE TABLE statement."""
        if column.auto_increment:
            raise ValueError(f"{self.name} dialect cannot declare auto-increment column '{column.name}'")
        return self._column_ddl(column)

    def create_table_statement(self, name: str, columns: Sequence[DbColumn],
                               primary_key: Sequence[str] = ()) -> str:
        """Render CREATE TABLE with an optional table-level primary key."""
        lines = [self.column_definition(c) for c in columns]
        if primary_key:
            lines.append(f"PRIMARY KEY ({column_list(primary_key)})")
        return f"CREATE TABLE {name} ({', '.join(lines)})"

    def bind(self, sql: str) -> str:
        """Rewrite ``?`` placeholders into the driver's paramstyle."""
        if self.paramstyle in ("format", "pyformat"):
            return sql.replace("?", "%s")
        return sql

    def to_db(self, value: Any) -> Any:
        """Convert a Python value into one the driver can bind."""
        return value

    def from_db(self, sql_type: Optional[SqlType], value: Any) -> Any:
        """Convert a driver value back into the Python type of ``sql_type``."""
        return value

    def select_statement(self, table: str, predicate: Predicate, offset: int, count: int,
                         order_by: Sequence[ColumnOrder]) -> Tuple[str, Tuple[Any, ...]]:
        """Build a natively paginated SELECT, returning SQL and parameters."""
        raise NotImplementedError(f"{self.name} dialect has no native pagination")

    def execute(self, cursor, sql: str, params: Sequence[Any] = ()) -> None:
        """Execute ``?``-style SQL with marshaled parameters."""
        cursor.execute(self.bind(sql), tuple(self.to_db(p) for p in params))

    def list_tables(self, cursor, schema: Optional[str] = None) -> List[str]:
        """Names of the base tables in ``schema``."""
        sql = ("SELECT table_name FROM information_schema.tables "
               "WHERE table_type = 'BASE TABLE'")
        params: Tuple[Any, ...] = ()
        if schema:
            sql += " AND table_schema = ?"
            params = (schema,)
        self.execute(cursor, sql + " ORDER BY table_name", params)
        return [row[0] for row in cursor.fetchall()]

    def list_columns(self, cursor, table: str, schema: Optional[str] = None) -> List[ColumnInfo]:
        """Column metadata of ``table`` in declaration order."""
        sql = ("SELECT column_name, data_type, character_maximum_length, numeric_precision, "
               "numeric_scale, is_nullable FROM information_schema.columns WHERE table_name = ?")
        params: Tuple[Any, ...] = (table,)
        if schema:
            sql += " AND table_schema = ?"
            params += (schema,)
        self.execute(cursor, sql + " ORDER BY ordinal_position", params)
        columns = []
        for name, type_name, char_length, precision, scale, is_nullable in cursor.fetchall():
            columns.append(ColumnInfo(
                name=name,
                type_name=type_name,
                size=int(char_length or precision or 0),
                decimal_digits=int(scale or 0),
                nullable=str(is_nullable).upper() == "YES",
            ))
        return columns

    def list_primary_keys(self, cursor, table: str, schema: Optional[str] = None) -> List[str]:
        """Primary-key column names of ``table`` in key sequence."""
        sql = ("SELECT k.column_name FROM information_schema.table_constraints t "
               "JOIN information_schema.key_column_usage k "
               "ON t.constraint_name = k.constraint_name "
               "AND t.table_schema = k.table_schema AND t.table_name = k.table_name "
               "WHERE t.constraint_type = 'PRIMARY KEY' AND t.table_name = ?")
        params: Tuple[Any, ...] = (table,)
        if schema:
            sql += " AND t.table_schema = ?"
            params += (schema,)
        self.execute(cursor, sql + " ORDER BY k.ordinal_position", params)
        return [row[0] for row in cursor.fetchall()]


class MySQLSqlDialect(Dialect):
    """MySQL and MariaDB through mysql-connector."""

    name = "MySQL"
    paramstyle = "format"
    supports_pagination = True

    # MySQL's documented way of saying "no upper bound" in LIMIT
    _NO_LIMIT = 18446744073709551615
    _DEFAULT_VARCHAR_SIZE = 255

    _type_names = dict(Dialect._type_names)
    _type_names.update({
        SqlType.DOUBLE: "DOUBLE",
        SqlType.LONGVARCHAR: "TEXT",
        SqlType.CLOB: "LONGTEXT",
        SqlType.LONGVARBINARY: "LONGBLOB",
        SqlType.TIMESTAMP: "DATETIME",
    })

    def column_definition(self, column: DbColumn) -> str:
        if column.sql_type in (SqlType.VARCHAR, SqlType.VARBINARY) and column.size <= 0:
            column = DbColumn(column.name, column.sql_type, self._DEFAULT_VARCHAR_SIZE,
                              column.decimal_digits, column.nullable,
                              column.auto_increment, column.auto_generated)
        definition = self._column_ddl(column)
        if column.auto_increment:
            definition += " AUTO_INCREMENT"
        return definition

    def select_statement(self, table, predicate, offset, count, order_by):
        sql = " ".join(part for part in (
            f"SELECT * FROM {table}", predicate.where_sql, order_by_sql(order_by),
            "LIMIT ? OFFSET ?") if part)
        limit = count if count > 0 else self._NO_LIMIT
        return sql, predicate.constants + (limit, offset)

    def from_db(self, sql_type, value):
        if value is None:
            return None
        if sql_type in (SqlType.BOOLEAN, SqlType.BIT) and isinstance(value, int):
            return bool(value)
        if isinstance(value, bytearray):
            return bytes(value)
        return value

    def list_tables(self, cursor, schema=None):
        self.execute(cursor,
                     "SELECT table_name FROM information_schema.tables "
                     "WHERE table_type = 'BASE TABLE' AND table_schema = COALESCE(?, DATABASE()) "
                     "ORDER BY table_name", (schema,))
        return [row[0] for row in cursor.fetchall()]

    def list_columns(self, cursor, table, schema=None):
        self.execute(cursor,
                     "SELECT column_name, column_type, character_maximum_length, "
                     "numeric_precision, numeric_scale, is_nullable, "
                     "LOCATE('auto_increment', extra) > 0, LOCATE('GENERATED', UPPER(extra)) > 0 "
                     "FROM information_schema.columns "
                     "WHERE table_schema = COALESCE(?, DATABASE()) AND table_name = ? "
                     "ORDER BY ordinal_position", (schema, table))
        columns = []
        for (name, type_name, char_length, precision, scale, is_nullable,
             auto_increment, generated) in cursor.fetchall():
            columns.append(ColumnInfo(
                name=name,
                type_name=type_name,
                size=int(char_length or precision or 0),
                decimal_digits=int(scale or 0),
                nullable=str(is_nullable).upper() == "YES",
                auto_increment=bool(auto_increment),
                auto_generated=bool(generated),
            ))
        return columns

    def list_primary_keys(self, cursor, table, schema=None):
        self.execute(cursor,
                     "SELECT column_name FROM information_schema.key_column_usage "
                     "WHERE constraint_name = 'PRIMARY' "
                     "AND table_schema = COALESCE(?, DATABASE()) AND table_name = ? "
                     "ORDER BY ordinal_position", (schema, table))
        return [row[0] for row in cursor.fetchall()]


class SQLiteSqlDialect(Dialect):
    """SQLite through the standard library driver."""

    name = "SQLite"
    paramstyle = "qmark"
    supports_pagination = True

    _type_names = dict(Dialect._type_names)
    _type_names[SqlType.DOUBLE] = "DOUBLE"

    _INTEGER_TYPES = (SqlType.TINYINT, SqlType.SMALLINT, SqlType.INTEGER, SqlType.BIGINT)

    def resolve_type(self, info):
        """Known type names first, then SQLite's column affinity rules."""
        sql_type = SqlType.from_native_name(info.type_name)
        if sql_type is not None:
            return sql_type
        declared = (info.type_name or "").upper()
        if "INT" in declared:
            return SqlType.INTEGER
        if any(word in declared for word in ("CHAR", "CLOB", "TEXT")):
            return SqlType.VARCHAR
        if not declared or "BLOB" in declared:
            return SqlType.BLOB
        if any(word in declared for word in ("REAL", "FLOA", "DOUB")):
            return SqlType.DOUBLE
        return SqlType.NUMERIC

    def column_definition(self, column):
        if column.auto_increment:
            raise ValueError(
                f"SQLite auto-increment column '{column.name}' must be the single integer primary key"
            )
        return self._column_ddl(column)

    def create_table_statement(self, name, columns, primary_key=()):
        """Render CREATE TABLE, declaring an auto-increment key inline."""
        by_name = {c.name: c for c in columns}
        key = by_name.get(primary_key[0]) if len(primary_key) == 1 else None
        if key is None or not key.auto_increment:
            return super().create_table_statement(name, columns, primary_key)
        if key.sql_type not in self._INTEGER_TYPES:
            raise ValueError(f"SQLite auto-increment column '{key.name}' must be an integer type")

        lines = []
        for column in columns:
            if column is key:
                not_null = "" if column.nullable else " NOT NULL"
                lines.append(f"{column.name} INTEGER{not_null} PRIMARY KEY AUTOINCREMENT")
            else:
                lines.append(self.column_definition(column))
        return f"CREATE TABLE {name} ({', '.join(lines)})"

    def select_statement(self, table, predicate, offset, count, order_by):
        sql = " ".join(part for part in (
            f"SELECT * FROM {table}", predicate.where_sql, order_by_sql(order_by),
            "LIMIT ? OFFSET ?") if part)
        limit = count if count > 0 else -1
        return sql, predicate.constants + (limit, offset)

    def to_db(self, value):
        # sqlite3's implicit date adapters are deprecated; store ISO text
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, (date, time)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        return value

    def from_db(self, sql_type, value):
        if value is None or sql_type is None:
            return value
        try:
            if sql_type in (SqlType.BOOLEAN, SqlType.BIT) and isinstance(value, int):
                return bool(value)
            if sql_type in (SqlType.NUMERIC, SqlType.DECIMAL) and not isinstance(value, Decimal):
                return Decimal(str(value))
            if sql_type in (SqlType.DOUBLE, SqlType.FLOAT, SqlType.REAL) and isinstance(value, int):
                return float(value)
            if isinstance(value, str):
                if sql_type is SqlType.DATE:
                    return date.fromisoformat(value[:10])
                if sql_type is SqlType.TIMESTAMP:
                    return datetime.fromisoformat(value)
                if sql_type is SqlType.TIME:
                    return time.fromisoformat(value)
        except (ValueError, InvalidOperation) as e:
            logger.debug(f"Returning raw value {value!r} for {sql_type.name}: {e}")
        return value

    def list_tables(self, cursor, schema=None):
        master = f"{schema}.sqlite_master" if schema else "sqlite_master"
        self.execute(cursor,
                     f"SELECT name FROM {master} WHERE type = 'table' "
                     "AND name NOT LIKE 'sqlite_%' ORDER BY name")
        return [row[0] for row in cursor.fetchall()]

    def list_columns(self, cursor, table, schema=None):
        master = f"{schema}.sqlite_master" if schema else "sqlite_master"
        self.execute(cursor, f"SELECT sql FROM {master} WHERE type = 'table' AND name = ?",
                     (table,))
        found = cursor.fetchone()
        create_sql = (found[0] or "").upper() if found else ""

        self.execute(cursor,
                     "SELECT name, type, \"notnull\", pk, hidden FROM pragma_table_xinfo(?, ?) "
                     "ORDER BY cid", (table, schema or "main"))
        rows = cursor.fetchall()
        single_key = sum(1 for row in rows if row[3]) == 1
        columns = []
        for name, type_name, not_null, pk, hidden in rows:
            size, digits = parse_type_size(type_name)
            columns.append(ColumnInfo(
                name=name,
                type_name=type_name,
                size=size,
                decimal_digits=digits,
                nullable=not not_null,
                auto_increment=bool(pk) and single_key and "AUTOINCREMENT" in create_sql,
                auto_generated=hidden in (2, 3),
            ))
        return columns

    def list_primary_keys(self, cursor, table, schema=None):
        self.execute(cursor,
                     "SELECT name FROM pragma_table_info(?, ?) WHERE pk > 0 ORDER BY pk",
                     (table, schema or "main"))
        return [row[0] for row in cursor.fetchall()]


DialectFactory = Callable[[], Dialect]


class DialectRegistry:
    """Maps database product names to dialect factories."""

    def __init__(self):
        self._factories: Dict[str, DialectFactory] = {}

    def register(self, product_name: str, factory: DialectFactory) -> None:
        """Register a dialect factory under a product name, ignoring case."""
        self._factories[product_name.lower()] = factory

    def names(self) -> List[str]:
        """Registered product names, lower-cased and sorted."""
        return sorted(self._factories)

    def resolve(self, product_name: Optional[str]) -> Dialect:
        """Instantiate the dialect for a product, degrading to the generic one."""
        factory = self._factories.get((product_name or "").lower())
        if factory is None:
            logger.warning(f"No dialect registered for '{product_name}', using generic ANSI dialect")
            return Dialect()
        try:
            dialect = factory()
        except Exception as e:
            logger.error(f"Failed instantiating dialect for '{product_name}': {e}")
            return Dialect()
        logger.info(f"Using {dialect.name} dialect for '{product_name}'")
        return dialect


def default_registry() -> DialectRegistry:
    """Registry with the built-in MySQL, MariaDB and SQLite dialects."""
    registry = DialectRegistry()
    registry.register("MySQL", MySQLSqlDialect)
    registry.register("MariaDB", MySQLSqlDialect)
    registry.register("SQLite", SQLiteSqlDialect)
    return registry
