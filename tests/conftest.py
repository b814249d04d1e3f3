"""Pytest configuration and shared fixtures."""

import pytest
from datetime import date
from unittest.mock import Mock

from dbcrud.config.settings import Settings
from dbcrud.database.connection import DatabaseConnection
from dbcrud.database.crud import DbCrud
from dbcrud.database.models import DbColumn, DbTable, QueryData
from dbcrud.database.sql_types import SqlType


@pytest.fixture
def sqlite_settings(tmp_path):
    """Settings pointing at a fresh SQLite database file."""
    return Settings(db_backend="sqlite", sqlite_path=str(tmp_path / "test.db"))


@pytest.fixture
def db_connection(sqlite_settings):
    """A real SQLite connection manager."""
    db = DatabaseConnection(sqlite_settings)
    yield db
    db.close()


@pytest.fixture
def crud(db_connection):
    """CRUD engine over an empty SQLite database."""
    return DbCrud(db_connection)


@pytest.fixture
def account_columns():
    return (
        DbColumn("id", SqlType.INTEGER, nullable=False),
        DbColumn("name", SqlType.VARCHAR, size=100),
        DbColumn("opened_at", SqlType.DATE),
    )


@pytest.fixture
def bank_crud(crud, account_columns):
    """CRUD engine with ACCOUNT, LEDGER and MEMBERSHIP tables created."""
    crud.create_table("ACCOUNT", *account_columns, primary_key=["id"])
    crud.create_table(
        "LEDGER",
        DbColumn("id", SqlType.INTEGER),
        DbColumn("description", SqlType.VARCHAR),
        DbColumn("amount", SqlType.DOUBLE),
    )
    crud.create_table(
        "MEMBERSHIP",
        DbColumn("account_id", SqlType.INTEGER, nullable=False),
        DbColumn("group_id", SqlType.INTEGER, nullable=False),
        DbColumn("role", SqlType.VARCHAR, size=20),
        primary_key=["account_id", "group_id"],
    )
    return crud


@pytest.fixture
def opened_at():
    return date(2024, 1, 15)


@pytest.fixture
def account_table(account_columns):
    """Definition of the ACCOUNT table without touching a database."""
    return DbTable("ACCOUNT", account_columns, ("id",))


@pytest.fixture
def sample_query_data():
    """Create a sample query result."""
    return QueryData(
        columns=["id", "name", "email"],
        rows=[
            [1, "John Doe", "john@example.com"],
            [2, "Jane Smith", "jane@example.com"],
            [3, "Bob Johnson", None],
        ],
        query="SELECT * FROM users",
        execution_time=0.123,
    )


@pytest.fixture
def mock_settings():
    """Create mock MySQL settings for testing."""
    settings = Mock(spec=Settings)
    settings.db_backend = "mysql"
    settings.db_host = "localhost"
    settings.db_port = 3306
    settings.db_name = "test_db"
    settings.db_user = "test_user"
    settings.db_password = "test_password"
    settings.db_pool_size = 5
    settings.db_schema = None
    settings.sqlite_path = ":memory:"
    settings.table_aliases = {}
    settings.debug = False
    settings.log_level = "INFO"
    settings.default_output_format = "table"
    settings.default_page_size = 50
    return settings


@pytest.fixture
def mock_mysql_connection():
    """Create a mock MySQL connection and cursor."""
    mock_cursor = Mock()
    mock_cursor.description = [('id',), ('name',)]
    mock_cursor.fetchall.return_value = [(1, 'John Doe'), (2, 'Jane Smith')]
    mock_cursor.rowcount = 1

    mock_connection = Mock()
    mock_connection.cursor.return_value = mock_cursor
    mock_connection.is_connected.return_value = True
    mock_connection.get_server_info.return_value = "8.0.36"

    return mock_connection, mock_cursor


@pytest.fixture(autouse=True)
def reset_global_instances():
    """Reset global instances before each test."""
    import dbcrud.config.settings
    import dbcrud.database.connection
    dbcrud.config.settings._settings = None
    dbcrud.database.connection._db_connection = None

    yield

    dbcrud.config.settings._settings = None
    dbcrud.database.connection._db_connection = None


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires database)"
    )
