"""Metadata-driven data access: catalog, dialects, predicates and CRUD engine."""

from .catalog import SchemaCatalog
from .connection import DatabaseConnection, get_db_connection
from .crud import DataCrud, DbCrud
from .dialects import Dialect, DialectRegistry, MySQLSqlDialect, SQLiteSqlDialect, default_registry
from .exceptions import (
    CoercionError,
    CoercionErrors,
    CrudExecutionError,
    DbCrudError,
    TableNotFoundError,
)
from .models import ColumnOrder, DbColumn, DbTable, QueryData, Row, ValueKind, asc, desc
from .predicates import (
    EMPTY,
    AndPredicate,
    EmptyPredicate,
    OrPredicate,
    Predicate,
    SimpleConditions,
    coerce_values,
    eq,
    parse_predicate,
)
from .sql_types import SqlType

__all__ = [
    "SchemaCatalog",
    "DatabaseConnection",
    "get_db_connection",
    "DataCrud",
    "DbCrud",
    "Dialect",
    "DialectRegistry",
    "MySQLSqlDialect",
    "SQLiteSqlDialect",
    "default_registry",
    "CoercionError",
    "CoercionErrors",
    "CrudExecutionError",
    "DbCrudError",
    "TableNotFoundError",
    "ColumnOrder",
    "DbColumn",
    "DbTable",
    "QueryData",
    "Row",
    "ValueKind",
    "asc",
    "desc",
    "EMPTY",
    "AndPredicate",
    "EmptyPredicate",
    "OrPredicate",
    "Predicate",
    "SimpleConditions",
    "coerce_values",
    "eq",
    "parse_predicate",
    "SqlType",
]
