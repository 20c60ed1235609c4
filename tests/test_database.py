"""
Tests for the database access layer.
"""

import time
from unittest.mock import PropertyMock, patch

import pytest

from ticketry.config import Settings
from ticketry.db.connection import check_connection
from ticketry.db.database import Database, split_placeholders
from ticketry.exceptions import (
    DatabaseConnectError,
    DatabaseNotConnectedError,
    DatabaseQueryError,
)


@pytest.fixture
def items(db: Database) -> str:
    """Create an 'items' table with an index."""
    db.query(
        "CREATE TABLE items ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "name VARCHAR(50) NOT NULL, "
        "qty INTEGER)"
    )
    db.query("CREATE INDEX idx_items_name ON items (name)")
    return "items"


def insert_items(db: Database, *rows):
    for name, qty in rows:
        db.query_bound("INSERT INTO items (name, qty) VALUES (?, ?)", [name, qty])


class TestConnect:
    """Tests for opening and closing connections."""

    def test_connect_sqlite(self, test_settings: Settings):
        """Test connecting to an in-memory SQLite database."""
        db = Database(test_settings)

        assert db.is_connected() is False
        assert db.connect() is True
        assert db.is_connected() is True
        assert db.dbtype == "sqlite"
        assert db.is_sqlite() is True
        assert db.is_pgsql() is False
        assert db.is_mysql() is False
        assert db.is_mssql() is False
        assert db.is_db2() is False

        db.close()
        assert db.is_connected() is False

    def test_connect_with_explicit_dsn(self, test_settings: Settings, tmp_path):
        """Test that an explicit DSN is used instead of settings."""
        db = Database(test_settings)
        db.connect(f"sqlite:///{tmp_path / 'explicit.db'}")

        assert db.is_connected()
        db.close()
        assert (tmp_path / "explicit.db").exists()

    def test_connect_failure_raises(self, test_settings: Settings):
        """Test that a connection failure raises DatabaseConnectError."""
        db = Database(test_settings)

        with pytest.raises(DatabaseConnectError):
            db.connect("sqlite:////nonexistent-dir/sub/ticketry.db")

        assert db.is_connected() is False
        assert db.last_error

    def test_connect_unknown_dialect_raises(self, test_settings: Settings):
        """Test that an unknown dialect raises DatabaseConnectError."""
        db = Database(test_settings)

        with pytest.raises(DatabaseConnectError):
            db.connect("nosuchdialect://localhost/db")

    def test_query_without_connection_raises(self, test_settings: Settings):
        """Test querying before connecting."""
        db = Database(test_settings)

        with pytest.raises(DatabaseNotConnectedError):
            db.query("SELECT 1")

    def test_check_connection(self, db: Database):
        """Test check_connection on a live database."""
        assert check_connection(db) is True

    def test_check_connection_closed(self, test_settings: Settings):
        """Test check_connection reports a closed database as down."""
        db = Database(test_settings)

        assert check_connection(db) is False


class TestQueryBound:
    """Tests for parameter-bound queries."""

    def test_insert_and_select(self, db: Database, items: str):
        """Test inserting and reading back rows."""
        insert_items(db, ("widget", 3), ("gadget", 5))

        result = db.query_bound("SELECT name, qty FROM items WHERE qty > ? ORDER BY id", [1])
        rows = db.fetch_all(result)

        assert rows == [{"name": "widget", "qty": 3}, {"name": "gadget", "qty": 5}]

    def test_fetch_array_returns_rows_then_none(self, db: Database, items: str):
        """Test fetch_array iterates rows and returns None when exhausted."""
        insert_items(db, ("widget", 3))

        result = db.query("SELECT name FROM items")

        assert db.fetch_array(result) == {"name": "widget"}
        assert db.fetch_array(result) is None

    def test_result_returns_column(self, db: Database, items: str):
        """Test result() returns a column of the next row."""
        insert_items(db, ("widget", 3))

        assert db.result(db.query("SELECT COUNT(*) FROM items")) == 1
        assert db.result(db.query("SELECT name, qty FROM items"), 1) == 3
        assert db.result(db.query("SELECT name FROM items WHERE qty < 0")) is None

    def test_limit_and_offset(self, db: Database, items: str):
        """Test paging with limit and offset."""
        insert_items(db, ("a", 1), ("b", 2), ("c", 3), ("d", 4))

        page = db.fetch_all(db.query("SELECT name FROM items ORDER BY id", limit=2, offset=1))
        first = db.fetch_all(db.query("SELECT name FROM items ORDER BY id", limit=1))
        rest = db.fetch_all(db.query("SELECT name FROM items ORDER BY id", offset=3))

        assert [row["name"] for row in page] == ["b", "c"]
        assert [row["name"] for row in first] == ["a"]
        assert [row["name"] for row in rest] == ["d"]

    def test_affected_rows(self, db: Database, items: str):
        """Test affected_rows for an update."""
        insert_items(db, ("a", 1), ("b", 1), ("c", 2))

        result = db.query_bound("UPDATE items SET qty=? WHERE qty=?", [9, 1])

        assert db.affected_rows(result) == 2

    def test_insert_id(self, db: Database, items: str):
        """Test insert_id returns the generated key."""
        insert_items(db, ("a", 1))
        first_id = db.insert_id("items")
        insert_items(db, ("b", 2))

        assert db.insert_id("items") == first_id + 1

    def test_insert_id_before_insert(self, db: Database):
        """Test insert_id is None when nothing was inserted."""
        assert db.insert_id("items") is None

    def test_placeholder_inside_literal_is_not_bound(self, db: Database):
        """Test that '?' inside quotes is treated as text."""
        row = db.fetch_array(db.query_bound("SELECT '?' AS q, ? AS v", [5]))

        assert row == {"q": "?", "v": 5}

    def test_colon_in_literal_is_preserved(self, db: Database):
        """Test that colons in the query are not taken as bind parameters."""
        row = db.fetch_array(db.query("SELECT 'a:b' AS v, '12:30' AS t"))

        assert row == {"v": "a:b", "t": "12:30"}

    def test_null_parameter(self, db: Database, items: str):
        """Test binding None."""
        db.query_bound("INSERT INTO items (name, qty) VALUES (?, ?)", ["a", None])

        assert db.result(db.query("SELECT qty FROM items")) is None

    def test_parameter_count_mismatch_raises(self, db: Database):
        """Test that too few parameters raise DatabaseQueryError."""
        with pytest.raises(DatabaseQueryError) as exc_info:
            db.query_bound("SELECT ?, ?", [1])

        assert "expected 2" in str(exc_info.value)

    def test_invalid_parameter_type_raises(self, db: Database):
        """Test that unsupported parameter types raise DatabaseQueryError."""
        with pytest.raises(DatabaseQueryError):
            db.query_bound("SELECT ?", [object()])

    def test_failed_query_raises(self, db: Database):
        """Test that a failing query raises DatabaseQueryError with the query."""
        with pytest.raises(DatabaseQueryError) as exc_info:
            db.query("SELECT * FROM no_such_table")

        assert exc_info.value.query == "SELECT * FROM no_such_table"
        assert "no_such_table" in db.last_error

    def test_connection_usable_after_failed_query(self, db: Database, items: str):
        """Test that a failed query does not poison the connection."""
        with pytest.raises(DatabaseQueryError):
            db.query("SELECT nope FROM items")

        insert_items(db, ("a", 1))
        assert db.result(db.query("SELECT COUNT(*) FROM items")) == 1

    def test_param_placeholder(self):
        """Test the parameter placeholder."""
        assert Database.param() == "?"

    def test_split_placeholders(self):
        """Test splitting a query on placeholders outside literals."""
        assert split_placeholders("a=? AND b='?' AND c=?") == ["a=", " AND b='?' AND c=", ""]
        assert split_placeholders("SELECT 1") == ["SELECT 1"]


class TestTransaction:
    """Tests for transaction grouping."""

    def test_transaction_commits(self, db: Database, items: str):
        """Test statements in a transaction are committed together."""
        with db.transaction():
            insert_items(db, ("a", 1), ("b", 2))

        assert db.result(db.query("SELECT COUNT(*) FROM items")) == 2

    def test_transaction_rolls_back_on_error(self, db: Database, items: str):
        """Test statements in a failed transaction are rolled back."""
        with pytest.raises(ValueError):
            with db.transaction():
                insert_items(db, ("a", 1))
                raise ValueError("boom")

        assert db.result(db.query("SELECT COUNT(*) FROM items")) == 0

    def test_nested_transaction_joins_outer(self, db: Database, items: str):
        """Test that an inner block does not commit on its own."""
        with pytest.raises(RuntimeError):
            with db.transaction():
                with db.transaction():
                    insert_items(db, ("a", 1))
                raise RuntimeError("outer failure")

        assert db.result(db.query("SELECT COUNT(*) FROM items")) == 0


class TestIntrospection:
    """Tests for table, column and index introspection."""

    def test_get_table_list(self, db: Database, items: str):
        """Test listing tables includes core and created tables."""
        tables = db.get_table_list()

        assert "items" in tables
        assert "ticketry_plugin_table" in tables
        assert "ticketry_config_table" in tables

    def test_table_exists_case_insensitive(self, db: Database, items: str):
        """Test table_exists ignores case."""
        assert db.table_exists("items") is True
        assert db.table_exists("ITEMS") is True
        assert db.table_exists("missing") is False

    def test_table_exists_blank(self, db: Database):
        """Test blank table names never exist."""
        assert db.table_exists("") is False
        assert db.table_exists("   ") is False
        assert db.table_exists(None) is False

    def test_index_exists(self, db: Database, items: str):
        """Test index_exists ignores case and rejects blanks."""
        assert db.index_exists("items", "idx_items_name") is True
        assert db.index_exists("items", "IDX_ITEMS_NAME") is True
        assert db.index_exists("items", "idx_missing") is False
        assert db.index_exists("missing", "idx_items_name") is False
        assert db.index_exists("items", "") is False
        assert db.index_exists("", "idx_items_name") is False

    def test_field_names(self, db: Database, items: str):
        """Test listing the columns of a table."""
        assert db.field_names("items") == ["id", "name", "qty"]
        assert db.field_names("missing") == []

    def test_field_exists_case_sensitive(self, db: Database, items: str):
        """Test field_exists matches exact column names."""
        assert db.field_exists("name", "items") is True
        assert db.field_exists("NAME", "items") is False
        assert db.field_exists("name", "missing") is False


class TestTableNames:
    """Tests for table name prefixing."""

    def test_get_table_with_prefix_and_suffix(self, db: Database):
        assert db.get_table("bug") == "ticketry_bug_table"

    def test_get_table_without_prefix_or_suffix(self):
        db = Database(Settings(_env_file=None, db_table_prefix="", db_table_suffix=""))

        assert db.get_table("bug") == "bug"


class TestHelpers:
    """Tests for SQL and value helpers."""

    def test_minutes_to_hhmm(self):
        assert Database.minutes_to_hhmm(125) == "02:05"
        assert Database.minutes_to_hhmm(0) == "00:00"
        assert Database.minutes_to_hhmm() == "00:00"

    def test_prepare_helpers(self):
        assert Database.prepare_string("it's") == "it's"
        assert Database.prepare_int("42") == 42
        assert Database.prepare_bool("yes") == 1
        assert Database.prepare_bool(0) == 0

    def test_now_is_unix_time(self):
        assert abs(Database.now() - int(time.time())) <= 1

    def test_helper_like_sqlite(self, db: Database):
        assert db.helper_like("summary") == "(summary LIKE ?)"
        assert db.helper_like("summary", case_sensitive=True) == "(summary LIKE ?)"

    def test_helper_like_postgresql(self, db: Database):
        with patch.object(Database, "dbtype", new_callable=PropertyMock, return_value="postgresql"):
            assert db.helper_like("summary") == "(summary ILIKE ?)"
            assert db.helper_like("summary", case_sensitive=True) == "(summary LIKE ?)"

    def test_helper_like_is_usable(self, db: Database, items: str):
        insert_items(db, ("Widget", 1), ("gadget", 2))

        result = db.query_bound(
            f"SELECT name FROM items WHERE {db.helper_like('name')}", ["%idg%"]
        )

        assert [row["name"] for row in db.fetch_all(result)] == ["Widget"]

    def test_helper_compare_days(self, db: Database):
        assert (
            db.helper_compare_days(1700000000, "date_submitted", "> 7")
            == "((? - date_submitted)> 7)"
        )
        assert db.helper_compare_days("a", "b", "<= 1") == "((a - b)<= 1)"

    def test_prepare_binary_string(self, db: Database):
        assert db.prepare_binary_string(b"abc") == "'abc'"

        with patch.object(Database, "dbtype", new_callable=PropertyMock, return_value="mssql"):
            assert db.prepare_binary_string(b"abc") == "0x616263"

        with patch.object(Database, "dbtype", new_callable=PropertyMock, return_value="postgresql"):
            assert db.prepare_binary_string("abc") == "'\\x616263'"


class TestQueryLog:
    """Tests for the per-request query log."""

    def test_counts_queries(self, db: Database):
        db.reset_query_log()

        db.query("SELECT 1")
        db.query("SELECT 1")
        db.query("SELECT 2")

        assert db.count_queries() == 3
        assert db.count_unique_queries() == 2
        assert db.time_queries() >= 0

    def test_logged_query_interpolates_parameters(self, db: Database):
        db.log_queries = True
        db.reset_query_log()

        db.query_bound("SELECT ? AS a, ? AS b, ? AS c, ? AS d", ["x", None, 3, True])

        assert db.query_log[-1][0] == "SELECT 'x' AS a, NULL AS b, 3 AS c, 1 AS d"

    def test_unlogged_query_keeps_placeholders(self, db: Database):
        db.reset_query_log()

        db.query_bound("SELECT ?", [1])

        assert db.query_log == [("SELECT ?", db.query_log[0][1])]

    def test_reset_query_log(self, db: Database):
        db.query("SELECT 1")
        db.reset_query_log()

        assert db.count_queries() == 0
