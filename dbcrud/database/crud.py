"""Metadata-driven CRUD engine."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .catalog import SchemaCatalog
from .connection import DRIVER_ERRORS
from .dialects import Dialect, DialectRegistry, default_registry, order_by_sql
from .exceptions import CrudExecutionError, TableNotFoundError
from .models import ColumnOrder, DbColumn, DbTable, QueryData, Row
from .predicates import EMPTY, Pairs, Predicate, SimpleConditions, as_pairs, column_list, placeholders
from .sql_types import SqlType

logger = logging.getLogger(__name__)


def _is_composite_id(id: Any) -> bool:
    # an empty list or tuple is an empty composite id, never a scalar
    if isinstance(id, Mapping):
        return True
    return (isinstance(id, (list, tuple))
            and all(isinstance(p, tuple) and len(p) == 2 for p in id))


class DataCrud(ABC):
    """Uniform create/read/update/delete contract over arbitrary tables."""

    @abstractmethod
    def create_table(self, name: str, *columns: DbColumn, primary_key: Sequence[str] = ()) -> None:
        ...

    @abstractmethod
    def table_names(self) -> List[str]:
        ...

    @abstractmethod
    def table_def(self, table: str) -> Optional[DbTable]:
        ...

    @abstractmethod
    def insert(self, table: str, values: Pairs) -> int:
        ...

    @abstractmethod
    def update(self, table: str, id: Any, values: Pairs) -> int:
        ...

    @abstractmethod
    def update_all(self, table: str, values: Pairs) -> int:
        ...

    @abstractmethod
    def update_where(self, table: str, where: Predicate, values: Pairs) -> int:
        ...

    @abstractmethod
    def delete(self, table: str, id: Any) -> int:
        ...

    @abstractmethod
    def select(self, table: str, where: Predicate = EMPTY, offset: int = 0, count: int = 0,
               order_by: Sequence[ColumnOrder] = ()) -> QueryData:
        ...

    @abstractmethod
    def select_by_id(self, table: str, id: Any) -> Optional[Dict[str, Any]]:
        ...


class DbCrud(DataCrud):
    """CRUD engine over a DB-API connection provider.

    The dialect and the schema catalog are resolved lazily, once per
    instance, and shared read-only between threads afterwards. Every public
    operation acquires its own connection and releases it before returning.
    Driver errors are re-raised as CrudExecutionError.
    """

    def __init__(self, db, schema: Optional[str] = None, dialect: Optional[Dialect] = None,
                 registry: Optional[DialectRegistry] = None):
        self.db = db
        self.schema = schema
        self._registry = registry or default_registry()
        self._dialect = dialect
        self._catalog: Optional[SchemaCatalog] = None
        self._init_lock = threading.Lock()

    @property
    def dialect(self) -> Dialect:
        if self._dialect is None:
            with self._init_lock:
                if self._dialect is None:
                    self._dialect = self._registry.resolve(self._product_name())
        return self._dialect

    def _product_name(self) -> Optional[str]:
        try:
            return self.db.database_product_name()
        except DRIVER_ERRORS as e:
            logger.warning(f"Could not read database product name: {e}")
            return None

    @property
    def catalog(self) -> SchemaCatalog:
        if self._catalog is None:
            dialect = self.dialect
            with self._init_lock:
                if self._catalog is None:
                    self._catalog = SchemaCatalog(self.db, dialect, self.schema)
        return self._catalog

    @contextmanager
    def _translate_errors(self, sql: str):
        try:
            yield
        except DRIVER_ERRORS as e:
            logger.error(f"Statement failed: {sql}: {e}")
            raise CrudExecutionError(str(e), sql) from e

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        logger.debug(f"executing: {sql} {list(params)}")
        with self._translate_errors(sql):
            with self.db.get_connection() as connection:
                with self.db.cursor(connection) as cursor:
                    self.dialect.execute(cursor, sql, params)
                    return cursor.rowcount

    def _require_table(self, table: str) -> DbTable:
        table_def = self.table_def(table)
        if table_def is None:
            raise TableNotFoundError(table)
        return table_def

    def _id_predicate(self, table: str, id: Any) -> Predicate:
        if _is_composite_id(id):
            pairs = as_pairs(id)
            if not pairs:
                raise ValueError("composite id must name at least one column")
            return SimpleConditions(pairs)
        primary_key = self._require_table(table).primary_key
        if len(primary_key) != 1:
            raise ValueError(
                f"scalar id needs exactly one primary key column, "
                f"table '{table}' has {len(primary_key)}"
            )
        return SimpleConditions([(primary_key[0], id)])

    def exec_sql(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute raw SQL and return the driver's row count."""
        return self._execute(sql, params)

    def create_table(self, name: str, *columns: DbColumn, primary_key: Sequence[str] = ()) -> None:
        """Create a table and refresh the catalog so it becomes visible."""
        if not columns:
            raise ValueError(f"table '{name}' needs at least one column")
        declared = {c.name for c in columns}
        missing = [k for k in primary_key if k not in declared]
        if missing:
            raise ValueError(f"primary key columns {missing} are not declared")

        sql = self.dialect.create_table_statement(name, columns, primary_key)
        logger.info(f"executing: {sql}")
        self._execute(sql)
        self.catalog.invalidate()
        logger.info(f"table created: {name}")

    def table_names(self) -> List[str]:
        """Names of every table in the catalog."""
        return self.catalog.table_names()

    def table_def(self, table: str) -> Optional[DbTable]:
        """Definition of ``table``, or None when it is not in the catalog."""
        return self.catalog.table_def(table)

    def insert(self, table: str, values: Pairs) -> int:
        """Insert one row, returning the affected row count."""
        pairs = as_pairs(values)
        if not pairs:
            raise ValueError("insert needs at least one column value")
        columns = [c for c, _ in pairs]
        sql = (f"INSERT INTO {table} ({column_list(columns)}) "
               f"VALUES ({placeholders(len(columns))})")
        return self._execute(sql, [v for _, v in pairs])

    def update(self, table: str, id: Any, values: Pairs) -> int:
        """Update the row identified by a scalar or composite id."""
        return self.update_where(table, self._id_predicate(table, id), values)

    def update_all(self, table: str, values: Pairs) -> int:
        """Update every row of ``table``."""
        return self.update_where(table, EMPTY, values)

    def update_where(self, table: str, where: Predicate, values: Pairs) -> int:
        """Update the rows matching ``where``, returning the affected count."""
        pairs = as_pairs(values)
        if not pairs:
            raise ValueError("update needs at least one column value")
        assignments = ", ".join(f"{c} = ?" for c, _ in pairs)
        sql = " ".join(part for part in (f"UPDATE {table} SET {assignments}", where.where_sql) if part)
        return self._execute(sql, [v for _, v in pairs] + list(where.constants))

    def delete(self, table: str, id: Any) -> int:
        """Delete the row identified by a scalar or composite id."""
        where = self._id_predicate(table, id)
        sql = " ".join(part for part in (f"DELETE FROM {table}", where.where_sql) if part)
        return self._execute(sql, where.constants)

    def _column_types(self, table: str) -> Dict[str, SqlType]:
        table_def = self.table_def(table)
        if table_def is None:
            return {}
        return {c.name.upper(): c.sql_type for c in table_def.columns}

    def _convert(self, columns: Sequence[str], types: Dict[str, SqlType],
                 values: Sequence[Any]) -> Tuple[Any, ...]:
        return tuple(
            self.dialect.from_db(types.get(column.upper()), value)
            for column, value in zip(columns, values)
        )

    @staticmethod
    def _skip(cursor, count: int) -> None:
        for _ in range(count):
            if cursor.fetchone() is None:
                break

    def select(self, table: str, where: Predicate = EMPTY, offset: int = 0, count: int = 0,
               order_by: Sequence[ColumnOrder] = ()) -> QueryData:
        """Select rows, skipping ``offset`` and returning at most ``count`` (0 = all).

        When a dialect paginates natively and an offset or count is given, the
        dialect builds a LIMIT/OFFSET statement. Otherwise rows are skipped on
        the cursor, so offset + count rows are still read from the server.
        """
        if offset < 0 or count < 0:
            raise ValueError("offset and count must not be negative")
        dialect = self.dialect
        types = self._column_types(table)

        if (offset > 0 or count > 0) and dialect.supports_pagination:
            sql, params = dialect.select_statement(table, where, offset, count, order_by)
            skip, limit = 0, 0
        else:
            sql = " ".join(part for part in (
                f"SELECT * FROM {table}", where.where_sql, order_by_sql(order_by)) if part)
            params = where.constants
            skip, limit = offset, count

        logger.debug(f"executing: {sql} {list(params)}")
        start_time = time.time()
        with self._translate_errors(sql):
            with self.db.get_connection() as connection:
                with self.db.cursor(connection) as cursor:
                    dialect.execute(cursor, sql, params)
                    columns = [desc[0] for desc in cursor.description]
                    self._skip(cursor, skip)
                    rows = cursor.fetchmany(limit) if limit > 0 else cursor.fetchall()

        execution_time = time.time() - start_time
        logger.info(f"Query executed successfully in {execution_time:.3f}s")
        return QueryData(
            columns=columns,
            rows=[self._convert(columns, types, r) for r in rows],
            query=sql,
            execution_time=execution_time,
            timestamp=datetime.now(),
        )

    def select_by_id(self, table: str, id: Any) -> Optional[Dict[str, Any]]:
        """Fetch one row by primary key.

        A scalar id needs a single-column primary key. A composite id (mapping
        or pairs) must name exactly the primary-key columns. Tables without a
        primary key are rejected with ValueError. Returns None when no row
        matches.
        """
        primary_key = self._require_table(table).primary_key
        if not primary_key:
            raise ValueError(f"table '{table}' has no primary key")
        if _is_composite_id(id):
            pairs = as_pairs(id)
            if sorted(c for c, _ in pairs) != sorted(primary_key):
                raise ValueError(
                    f"id columns {[c for c, _ in pairs]} do not match primary key {list(primary_key)}"
                )
        elif len(primary_key) != 1:
            raise ValueError(f"table '{table}' has a composite primary key {list(primary_key)}")
        else:
            pairs = [(primary_key[0], id)]

        data = self.select(table, SimpleConditions(pairs), count=1)
        return data[0].as_dict() if len(data) else None

    def stream(self, table: str, where: Predicate = EMPTY, order_by: Sequence[ColumnOrder] = (),
               batch_size: int = 500) -> Iterator[Row]:
        """Lazily yield rows, holding one connection until the generator ends.

        The connection is released when the generator is exhausted, closed
        or garbage collected; rows must not be pulled after that.
        """
        types = self._column_types(table)
        sql = " ".join(part for part in (
            f"SELECT * FROM {table}", where.where_sql, order_by_sql(order_by)) if part)
        with self._translate_errors(sql):
            with self.db.get_connection() as connection:
                with self.db.cursor(connection, stream=True) as cursor:
                    self.dialect.execute(cursor, sql, where.constants)
                    columns = [desc[0] for desc in cursor.description]
                    index = {c.upper(): i for i, c in enumerate(columns)}
                    while True:
                        batch = cursor.fetchmany(batch_size)
                        if not batch:
                            break
                        for values in batch:
                            yield Row(columns, index, self._convert(columns, types, values))
