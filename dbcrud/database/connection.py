"""Database connection management."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Optional, TypeVar

from mysql.connector import Error as MySQLError
from mysql.connector.constants import ClientFlag
from mysql.connector.pooling import MySQLConnectionPool

from ..config.settings import get_settings

logger = logging.getLogger(__name__)

R = TypeVar("R")

BACKENDS = ("mysql", "sqlite")

# Driver exceptions the engine translates into CrudExecutionError
DRIVER_ERRORS = (MySQLError, sqlite3.Error)


class DatabaseConnection:
    """Hands out live DB-API connections and guarantees their release."""

    def __init__(self, settings=None):
        """Initialize the database connection manager."""
        self.settings = settings or get_settings()
        self.backend = self.settings.db_backend.lower()
        if self.backend not in BACKENDS:
            raise ValueError(f"Unsupported database backend: {self.settings.db_backend}")
        self._pool: Optional[MySQLConnectionPool] = None
        self._memory_connection: Optional[sqlite3.Connection] = None
        self._memory_lock = threading.RLock()
        self._product_name: Optional[str] = None
        if self.backend == "mysql":
            self._setup_connection_pool()

    def _setup_connection_pool(self) -> None:
        """Set up the MySQL connection pool."""
        try:
            config = {
                'host': self.settings.db_host,
                'port': self.settings.db_port,
                'database': self.settings.db_name,
                'user': self.settings.db_user,
                'password': self.settings.db_password,
                'pool_name': 'dbcrud_pool',
                'pool_size': self.settings.db_pool_size,
                'pool_reset_session': True,
                'charset': 'utf8mb4',
                'collation': 'utf8mb4_unicode_ci',
                'autocommit': True,
                'buffered': True,
                # lets an unbuffered streaming cursor close before its last row
                'consume_results': True,
                # rowcount reports matched rows, not only changed ones
                'client_flags': [ClientFlag.FOUND_ROWS]
            }

            self._pool = MySQLConnectionPool(**config)
            logger.info("Database connection pool created successfully")

        except MySQLError as e:
            logger.error(f"Failed to create connection pool: {e}")
            raise

    def _open_sqlite(self) -> sqlite3.Connection:
        # isolation_level=None puts the driver in autocommit mode
        return sqlite3.connect(
            self.settings.sqlite_path,
            isolation_level=None,
            check_same_thread=False,
        )

    @property
    def is_memory(self) -> bool:
        return self.backend == "sqlite" and self.settings.sqlite_path == ":memory:"

    @contextmanager
    def get_connection(self):
        """Get a connection, releasing it when the block exits."""
        if self.backend == "mysql":
            connection = None
            try:
                connection = self._pool.get_connection()
                yield connection
            except MySQLError as e:
                logger.error(f"Database connection error: {e}")
                raise
            finally:
                if connection and connection.is_connected():
                    connection.close()
        elif self.is_memory:
            # an in-memory database lives only as long as its one connection
            with self._memory_lock:
                if self._memory_connection is None:
                    self._memory_connection = self._open_sqlite()
                yield self._memory_connection
        else:
            connection = self._open_sqlite()
            try:
                yield connection
            finally:
                connection.close()

    @contextmanager
    def cursor(self, connection, stream: bool = False):
        """Open a cursor on ``connection`` and close it afterwards.

        With ``stream`` a MySQL cursor is unbuffered, so rows are read from the
        server as they are fetched instead of all at execute time. SQLite
        cursors always fetch lazily.
        """
        if stream and self.backend == "mysql":
            cursor = connection.cursor(buffered=False)
        else:
            cursor = connection.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def with_connection(self, fn: Callable[..., R]) -> R:
        """Run ``fn(connection)`` inside a scoped acquisition."""
        with self.get_connection() as connection:
            return fn(connection)

    def database_product_name(self) -> str:
        """Name of the database product, used to pick a SQL dialect."""
        if self._product_name is None:
            if self.backend == "sqlite":
                self._product_name = "SQLite"
            else:
                with self.get_connection() as connection:
                    server_info = connection.get_server_info() or ""
                self._product_name = "MariaDB" if "mariadb" in server_info.lower() else "MySQL"
        return self._product_name

    def test_connection(self) -> bool:
        """Test the database connection."""
        try:
            with self.get_connection() as connection:
                with self.cursor(connection) as cursor:
                    cursor.execute("SELECT 1")
                    cursor.fetchone()
                return True
        except DRIVER_ERRORS as e:
            logger.error(f"Connection test failed: {e}")
            return False

    def close(self) -> None:
        """Close the pool or the shared in-memory connection."""
        if self._pool:
            logger.info("Closing database connection pool")
        with self._memory_lock:
            if self._memory_connection is not None:
                self._memory_connection.close()
                self._memory_connection = None


# Global database connection instance
_db_connection: Optional[DatabaseConnection] = None


def get_db_connection() -> DatabaseConnection:
    """Get the global database connection instance."""
    global _db_connection
    if _db_connection is None:
        _db_connection = DatabaseConnection()
    return _db_connection
