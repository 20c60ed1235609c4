"""
Tests for the shared engine and the request-scoped database dependency.
"""

from pathlib import Path
from typing import Generator

import pytest

from ticketry.config import Settings
from ticketry.db import connection
from ticketry.db.connection import dispose_engine, get_db, get_engine
from ticketry.db.database import Database


@pytest.fixture
def file_settings(tmp_path: Path, monkeypatch) -> Generator[Settings, None, None]:
    """Point the module-level settings at a file database with no engine yet."""
    file_db_settings = Settings(
        db_type="sqlite",
        db_name=str(tmp_path / "ticketry.db"),
        plugin_path=str(tmp_path / "plugins"),
        _env_file=None,
    )
    monkeypatch.setattr(connection, "settings", file_db_settings)
    monkeypatch.setattr(connection, "_engine", None)

    setup = Database(file_db_settings)
    setup.connect(engine=get_engine())
    setup.query("CREATE TABLE items (id INTEGER PRIMARY KEY, name VARCHAR(50))")
    setup.commit()
    setup.close()

    yield file_db_settings
    dispose_engine()


def count_items() -> int:
    db = Database(connection.settings)
    db.connect(engine=get_engine())
    try:
        return db.result(db.query("SELECT COUNT(*) FROM items"))
    finally:
        db.close()


class TestSharedEngine:
    """Tests for get_engine and dispose_engine."""

    def test_engine_is_reused(self, file_settings):
        assert get_engine() is get_engine()

    def test_dispose_resets_engine(self, file_settings):
        first = get_engine()
        dispose_engine()

        assert connection._engine is None
        assert get_engine() is not first

    def test_close_keeps_shared_engine_usable(self, file_settings):
        db = Database(file_settings)
        db.connect(engine=get_engine())
        db.close()

        assert not db.is_connected()
        assert count_items() == 0


class TestGetDb:
    """Tests for the get_db dependency."""

    def test_each_request_gets_its_own_connection(self, file_settings):
        first_request = get_db()
        second_request = get_db()
        first = next(first_request)
        second = next(second_request)

        assert first is not second
        assert first.connection is not second.connection
        assert first.engine is second.engine is get_engine()

        first_request.close()
        second_request.close()

    def test_finished_request_does_not_affect_another(self, file_settings):
        first_request = get_db()
        second_request = get_db()
        first = next(first_request)
        second = next(second_request)

        with pytest.raises(StopIteration):
            next(first_request)

        assert not first.is_connected()
        assert second.is_connected()
        assert second.result(second.query("SELECT 1")) == 1

        second_request.close()

    def test_separate_query_logs(self, file_settings):
        first_request = get_db()
        second_request = get_db()
        first = next(first_request)
        second = next(second_request)

        first.query("SELECT 1")

        assert first.count_queries() == 1
        assert second.count_queries() == 0

        first_request.close()
        second_request.close()

    def test_commits_on_success(self, file_settings):
        request = get_db()
        db = next(request)
        db.query_bound("INSERT INTO items (name) VALUES (?)", ["kept"])

        with pytest.raises(StopIteration):
            next(request)

        assert not db.is_connected()
        assert count_items() == 1

    def test_rolls_back_on_error(self, file_settings):
        request = get_db()
        db = next(request)
        db.query_bound("INSERT INTO items (name) VALUES (?)", ["discarded"])

        with pytest.raises(RuntimeError):
            request.throw(RuntimeError("request failed"))

        assert not db.is_connected()
        assert count_items() == 0
