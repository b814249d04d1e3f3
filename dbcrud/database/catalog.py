"""Schema catalog built from live database metadata."""

import logging
import threading
from types import MappingProxyType
from typing import List, Mapping, Optional

from .dialects import ColumnInfo, Dialect
from .models import DbColumn, DbTable
from .sql_types import SqlType

logger = logging.getLogger(__name__)


class SchemaCatalog:
    """Snapshot of table, column and primary-key metadata.

    The snapshot is loaded on first use, exactly once even under concurrent
    access, and is read-only afterwards. It does not follow schema changes
    made outside this process; build a new catalog for fresh metadata.
    """

    def __init__(self, db, dialect: Dialect, schema: Optional[str] = None):
        self.db = db
        self.dialect = dialect
        self.schema = schema
        self._tables: Optional[Mapping[str, DbTable]] = None
        self._lock = threading.Lock()

    def _column(self, info: ColumnInfo, sql_type: SqlType) -> DbColumn:
        return DbColumn(
            name=info.name,
            sql_type=sql_type,
            size=info.size,
            decimal_digits=info.decimal_digits,
            nullable=info.nullable,
            auto_increment=info.auto_increment,
            auto_generated=info.auto_generated,
        )

    def _load_table(self, cursor, name: str) -> DbTable:
        primary_key = self.dialect.list_primary_keys(cursor, name, self.schema)
        columns = []
        for info in self.dialect.list_columns(cursor, name, self.schema):
            sql_type = self.dialect.resolve_type(info)
            if sql_type is None and info.name in primary_key:
                # a table keeps every primary-key column
                logger.warning(f"Key column {name}.{info.name} has unsupported type "
                               f"{info.type_name!r}, treating it as VARCHAR")
                sql_type = SqlType.VARCHAR
            if sql_type is None:
                logger.debug(f"Skipping column {name}.{info.name} of unsupported type {info.type_name}")
                continue
            columns.append(self._column(info, sql_type))
        return DbTable(name, tuple(columns), tuple(primary_key))

    def load(self) -> Mapping[str, DbTable]:
        """Query the database for every table and its definition."""
        tables = {}
        with self.db.get_connection() as connection:
            with self.db.cursor(connection) as cursor:
                table_names = self.dialect.list_tables(cursor, self.schema)
                for name in table_names:
                    try:
                        tables[name] = self._load_table(cursor, name)
                    except Exception as e:
                        # one unreadable table must not hide the rest
                        logger.warning(f"Excluding table {name} from catalog: {e}")
                        continue
                    logger.info(f"table: {name}")
        logger.info(f"Schema catalog loaded with {len(tables)} tables")
        return MappingProxyType(tables)

    def tables(self) -> Mapping[str, DbTable]:
        """The loaded snapshot, built on first access."""
        tables = self._tables
        if tables is None:
            with self._lock:
                if self._tables is None:
                    try:
                        self._tables = self.load()
                    except Exception as e:
                        # not cached: the next access retries the load
                        logger.error(f"Failed loading schema catalog: {e}")
                        return MappingProxyType({})
                tables = self._tables
        return tables

    def invalidate(self) -> None:
        """Drop the snapshot so the next access reloads it."""
        with self._lock:
            self._tables = None

    def table_def(self, name: str) -> Optional[DbTable]:
        """Definition of table ``name``, or None when it is unknown."""
        return self.tables().get(name)

    def table_names(self) -> List[str]:
        """Names of every table in the snapshot."""
        return list(self.tables())
