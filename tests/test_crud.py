"""Tests for the CRUD engine against a real SQLite database."""

import sqlite3

import pytest
from datetime import date
from unittest.mock import ANY, Mock, patch

from dbcrud.database.crud import DbCrud
from dbcrud.database.dialects import Dialect, SQLiteSqlDialect
from dbcrud.database.exceptions import CrudExecutionError, TableNotFoundError
from dbcrud.database.models import DbColumn, DbTable, ValueKind, asc, desc
from dbcrud.database.predicates import EMPTY, SimpleConditions, eq
from dbcrud.database.sql_types import SqlType


class NoPagingDialect(SQLiteSqlDialect):
    """SQLite dialect that forces the skip-on-cursor strategy."""

    supports_pagination = False


def _insert_accounts(crud, opened_at, ids):
    for i in ids:
        crud.insert("ACCOUNT", {"id": i, "name": f"account {i}", "opened_at": opened_at})


class TestDialectResolution:

    def test_resolves_from_product_name(self, crud):
        assert isinstance(crud.dialect, SQLiteSqlDialect)

    def test_resolution_is_cached(self, crud):
        crud.db.database_product_name = Mock(return_value="SQLite")

        first = crud.dialect
        second = crud.dialect

        assert first is second
        crud.db.database_product_name.assert_called_once()

    def test_explicit_dialect_skips_resolution(self, db_connection):
        dialect = SQLiteSqlDialect()
        db_connection.database_product_name = Mock()

        crud = DbCrud(db_connection, dialect=dialect)

        assert crud.dialect is dialect
        db_connection.database_product_name.assert_not_called()


class TestCreateTable:
    """Test cases for table creation and catalog lookups."""

    def test_created_tables_are_listed(self, bank_crud):
        assert set(bank_crud.table_names()) == {"ACCOUNT", "LEDGER", "MEMBERSHIP"}

    def test_table_def_matches_declaration(self, bank_crud, account_columns):
        assert bank_crud.table_def("ACCOUNT") == DbTable("ACCOUNT", account_columns, ("id",))

    def test_composite_primary_key(self, bank_crud):
        assert bank_crud.table_def("MEMBERSHIP").primary_key == ("account_id", "group_id")

    def test_table_without_primary_key(self, bank_crud):
        ledger = bank_crud.table_def("LEDGER")

        assert ledger.primary_key == ()
        assert ledger.column("amount").sql_type is SqlType.DOUBLE

    def test_unknown_table_def(self, bank_crud):
        assert bank_crud.table_def("MISSING") is None

    def test_undeclared_primary_key_column(self, crud):
        with pytest.raises(ValueError):
            crud.create_table("T", DbColumn("a", SqlType.INTEGER), primary_key=["b"])

    def test_duplicate_table_is_an_execution_error(self, bank_crud):
        with pytest.raises(CrudExecutionError) as excinfo:
            bank_crud.create_table("ACCOUNT", DbColumn("id", SqlType.INTEGER))

        assert excinfo.value.sql.startswith("CREATE TABLE ACCOUNT")
        assert isinstance(excinfo.value.__cause__, sqlite3.Error)

    def test_auto_increment_key_round_trip(self, crud):
        columns = (
            DbColumn("id", SqlType.INTEGER, nullable=False, auto_increment=True),
            DbColumn("label", SqlType.VARCHAR, size=20),
        )
        crud.create_table("SEQ", *columns, primary_key=["id"])

        assert crud.table_def("SEQ") == DbTable("SEQ", columns, ("id",))
        assert crud.table_def("SEQ").column("id").auto_increment is True

        crud.insert("SEQ", {"label": "first"})
        crud.insert("SEQ", {"label": "second"})
        assert [(row["id"], row["label"]) for row in crud.select("SEQ", order_by=[asc("id")])] == [
            (1, "first"), (2, "second")]


class TestInsertAndSelect:
    """Test cases for inserting and reading rows."""

    def test_insert_returns_affected_count(self, bank_crud, opened_at):
        count = bank_crud.insert("ACCOUNT", {"id": 1, "name": "account 1", "opened_at": opened_at})

        assert count == 1

    def test_select_returns_inserted_row(self, bank_crud, opened_at):
        bank_crud.insert("ACCOUNT", [("id", 1), ("name", "account 1"), ("opened_at", opened_at)])

        data = bank_crud.select("ACCOUNT")

        assert len(data) == 1
        assert data[0]["name"] == "account 1"
        assert data.columns == ("id", "name", "opened_at")

    def test_round_trip_by_primary_key(self, bank_crud, opened_at):
        values = {"id": 7, "name": "account 7", "opened_at": opened_at}
        bank_crud.insert("ACCOUNT", values)
        _insert_accounts(bank_crud, opened_at, [8, 9])

        data = bank_crud.select("ACCOUNT", eq("id", 7))

        assert len(data) == 1
        assert data[0].as_dict() == values
        assert data[0].kind("opened_at") is ValueKind.DATE

    def test_double_values(self, bank_crud):
        bank_crud.insert("LEDGER", {"id": 1, "description": "coffee", "amount": 3.5})

        row = bank_crud.select("LEDGER")[0]

        assert row.get("amount", float) == 3.5

    def test_null_values(self, bank_crud):
        bank_crud.insert("ACCOUNT", {"id": 1, "name": None})

        assert len(bank_crud.select("ACCOUNT", SimpleConditions({"name": None}))) == 1
        assert bank_crud.select("ACCOUNT")[0]["opened_at"] is None

    def test_insert_into_unknown_column_fails(self, bank_crud):
        with pytest.raises(CrudExecutionError):
            bank_crud.insert("ACCOUNT", {"id": 1, "nickname": "x"})

    def test_insert_requires_values(self, bank_crud):
        with pytest.raises(ValueError):
            bank_crud.insert("ACCOUNT", {})

    def test_select_unknown_table_fails(self, bank_crud):
        with pytest.raises(CrudExecutionError):
            bank_crud.select("MISSING")

    def test_select_records_query(self, bank_crud):
        data = bank_crud.select("ACCOUNT", eq("id", 1), order_by=[asc("id")])

        assert data.query == "SELECT * FROM ACCOUNT WHERE id = ? ORDER BY id ASC"
        assert data.execution_time >= 0


class TestPagination:
    """Test cases for offset/count handling under a fixed ordering."""

    @pytest.fixture
    def ten_accounts(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, range(1, 11))
        return bank_crud

    def _ids(self, data):
        return [row["id"] for row in data]

    def test_native_pagination(self, ten_accounts):
        data = ten_accounts.select("ACCOUNT", offset=3, count=4, order_by=[asc("id")])

        assert self._ids(data) == [4, 5, 6, 7]

    def test_skip_strategy(self, ten_accounts, db_connection):
        crud = DbCrud(db_connection, dialect=NoPagingDialect())

        data = crud.select("ACCOUNT", offset=3, count=4, order_by=[asc("id")])

        assert self._ids(data) == [4, 5, 6, 7]

    def test_generic_dialect_uses_skip_strategy(self, ten_accounts, db_connection):
        crud = DbCrud(db_connection, dialect=Dialect())

        data = crud.select("ACCOUNT", offset=8, count=5, order_by=[desc("id")])

        assert self._ids(data) == [2, 1]

    def test_count_without_offset(self, ten_accounts):
        data = ten_accounts.select("ACCOUNT", count=3, order_by=[desc("id")])

        assert self._ids(data) == [10, 9, 8]
        assert data.query.endswith("LIMIT ? OFFSET ?")

    def test_unpaged_select_has_no_limit(self, ten_accounts):
        data = ten_accounts.select("ACCOUNT", order_by=[asc("id")])

        assert len(data) == 10
        assert "LIMIT" not in data.query

    def test_skip_strategy_has_no_limit(self, ten_accounts, db_connection):
        data = DbCrud(db_connection, dialect=NoPagingDialect()).select("ACCOUNT", count=3)

        assert len(data) == 3
        assert "LIMIT" not in data.query

    def test_offset_without_count(self, ten_accounts):
        data = ten_accounts.select("ACCOUNT", offset=7, order_by=[asc("id")])

        assert self._ids(data) == [8, 9, 10]

    def test_offset_past_the_end(self, ten_accounts):
        assert len(ten_accounts.select("ACCOUNT", offset=20, count=5, order_by=[asc("id")])) == 0

    def test_offset_with_filter(self, ten_accounts):
        where = eq("id", 2) | eq("id", 4) | eq("id", 6)

        data = ten_accounts.select("ACCOUNT", where, offset=1, count=1, order_by=[asc("id")])

        assert self._ids(data) == [4]

    def test_negative_values_rejected(self, ten_accounts):
        with pytest.raises(ValueError):
            ten_accounts.select("ACCOUNT", offset=-1)


class TestUpdate:
    """Test cases for the update operations."""

    def test_update_where_matches_only_one_row(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 99])

        count = bank_crud.update_where(
            "ACCOUNT", eq("id", 99) | eq("name", "account 99"), {"name": "Account 99"})

        assert count == 1
        assert bank_crud.select("ACCOUNT", eq("id", 99))[0]["name"] == "Account 99"
        assert bank_crud.select("ACCOUNT", eq("id", 1))[0]["name"] == "account 1"

    def test_update_all(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2, 3])

        count = bank_crud.update_all("ACCOUNT", {"name": "account updated"})

        assert count == 3
        assert {row["name"] for row in bank_crud.select("ACCOUNT")} == {"account updated"}

    def test_update_binds_set_values_before_predicate(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2])

        count = bank_crud.update_where("ACCOUNT", eq("id", 2), [("name", "two"), ("opened_at", date(2020, 2, 2))])

        assert count == 1
        row = bank_crud.select("ACCOUNT", eq("id", 2))[0]
        assert (row["name"], row["opened_at"]) == ("two", date(2020, 2, 2))

    def test_update_with_scalar_id(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2])

        assert bank_crud.update("ACCOUNT", 2, {"name": "second"}) == 1
        assert bank_crud.select("ACCOUNT", eq("id", 2))[0]["name"] == "second"

    def test_update_with_composite_id(self, bank_crud):
        bank_crud.insert("MEMBERSHIP", {"account_id": 1, "group_id": 1, "role": "member"})
        bank_crud.insert("MEMBERSHIP", {"account_id": 1, "group_id": 2, "role": "member"})

        count = bank_crud.update("MEMBERSHIP", [("account_id", 1), ("group_id", 2)], {"role": "owner"})

        assert count == 1
        assert bank_crud.select_by_id("MEMBERSHIP", {"account_id": 1, "group_id": 2})["role"] == "owner"

    def test_scalar_id_needs_single_key_column(self, bank_crud):
        with pytest.raises(ValueError):
            bank_crud.update("MEMBERSHIP", 1, {"role": "owner"})
        with pytest.raises(ValueError):
            bank_crud.update("LEDGER", 1, {"amount": 2.0})

    def test_scalar_id_on_unknown_table(self, bank_crud):
        with pytest.raises(TableNotFoundError):
            bank_crud.update("MISSING", 1, {"a": 1})

    def test_empty_composite_id_rejected(self, bank_crud):
        with pytest.raises(ValueError):
            bank_crud.update("ACCOUNT", {}, {"name": "x"})

    @pytest.mark.parametrize("empty_id", [[], ()])
    def test_empty_pair_sequence_is_not_a_scalar_id(self, bank_crud, opened_at, empty_id):
        _insert_accounts(bank_crud, opened_at, [1])

        with pytest.raises(ValueError, match="at least one column"):
            bank_crud.update("ACCOUNT", empty_id, {"name": "x"})
        assert bank_crud.select_by_id("ACCOUNT", 1)["name"] == "account 1"

    def test_update_requires_values(self, bank_crud):
        with pytest.raises(ValueError):
            bank_crud.update_all("ACCOUNT", {})


class TestDelete:

    def test_delete_by_scalar_id(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2])

        assert bank_crud.delete("ACCOUNT", 1) == 1
        assert [row["id"] for row in bank_crud.select("ACCOUNT")] == [2]

    def test_delete_missing_row(self, bank_crud):
        assert bank_crud.delete("ACCOUNT", 404) == 0

    def test_delete_by_composite_id(self, bank_crud):
        bank_crud.insert("MEMBERSHIP", {"account_id": 1, "group_id": 1, "role": "member"})

        assert bank_crud.delete("MEMBERSHIP", {"account_id": 1, "group_id": 1}) == 1

    def test_delete_scalar_id_needs_single_key_column(self, bank_crud):
        with pytest.raises(ValueError):
            bank_crud.delete("LEDGER", 1)

    @pytest.mark.parametrize("empty_id", [[], ()])
    def test_empty_pair_sequence_is_rejected(self, bank_crud, opened_at, empty_id):
        _insert_accounts(bank_crud, opened_at, [1])

        with pytest.raises(ValueError):
            bank_crud.delete("ACCOUNT", empty_id)
        assert len(bank_crud.select("ACCOUNT")) == 1


class TestSelectById:

    def test_found(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2])

        assert bank_crud.select_by_id("ACCOUNT", 2) == {"id": 2, "name": "account 2", "opened_at": opened_at}

    def test_not_found(self, bank_crud):
        assert bank_crud.select_by_id("ACCOUNT", 404) is None

    def test_composite_key_in_any_order(self, bank_crud):
        bank_crud.insert("MEMBERSHIP", {"account_id": 3, "group_id": 4, "role": "member"})

        row = bank_crud.select_by_id("MEMBERSHIP", {"group_id": 4, "account_id": 3})

        assert row["role"] == "member"

    def test_composite_id_must_match_primary_key(self, bank_crud):
        with pytest.raises(ValueError):
            bank_crud.select_by_id("MEMBERSHIP", {"account_id": 3})
        with pytest.raises(ValueError):
            bank_crud.select_by_id("MEMBERSHIP", 3)

    def test_table_without_primary_key(self, bank_crud):
        with pytest.raises(ValueError):
            bank_crud.select_by_id("LEDGER", 1)

    def test_unknown_table(self, bank_crud):
        with pytest.raises(TableNotFoundError):
            bank_crud.select_by_id("MISSING", 1)

    @pytest.mark.parametrize("empty_id", [[], ()])
    def test_empty_pair_sequence_is_rejected(self, bank_crud, empty_id):
        with pytest.raises(ValueError):
            bank_crud.select_by_id("ACCOUNT", empty_id)


class TestStream:

    def test_streams_every_row(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, range(1, 8))

        rows = list(bank_crud.stream("ACCOUNT", order_by=[asc("id")], batch_size=3))

        assert [row["id"] for row in rows] == list(range(1, 8))
        assert rows[0]["opened_at"] == opened_at

    def test_stream_with_filter(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2, 3])

        rows = list(bank_crud.stream("ACCOUNT", eq("name", "account 2")))

        assert [row["id"] for row in rows] == [2]

    def test_stream_releases_connection_when_closed(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2, 3])
        released = []
        real_get_connection = bank_crud.db.get_connection

        def tracking_get_connection():
            context = real_get_connection()

            class Tracker:
                def __enter__(self):
                    return context.__enter__()

                def __exit__(self, *exc):
                    released.append(True)
                    return context.__exit__(*exc)

            return Tracker()

        bank_crud.db.get_connection = tracking_get_connection
        bank_crud.table_def("ACCOUNT")
        released.clear()

        rows = bank_crud.stream("ACCOUNT", order_by=[asc("id")], batch_size=1)
        assert next(rows)["id"] == 1
        assert released == []

        rows.close()
        assert released == [True]

    def test_stream_asks_for_a_streaming_cursor(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2])
        bank_crud.table_def("ACCOUNT")

        with patch.object(bank_crud.db, "cursor", wraps=bank_crud.db.cursor) as cursor:
            rows = list(bank_crud.stream("ACCOUNT"))

        assert len(rows) == 2
        cursor.assert_called_once_with(ANY, stream=True)


class TestExecSql:

    def test_exec_sql(self, bank_crud, opened_at):
        _insert_accounts(bank_crud, opened_at, [1, 2])

        assert bank_crud.exec_sql("DELETE FROM ACCOUNT WHERE id > ?", [0]) == 2
        assert len(bank_crud.select("ACCOUNT", EMPTY)) == 0
