"""
Pytest configuration and fixtures for Ticketry tests.

This module provides shared fixtures for testing the database layer, the
configuration store and the plugin system.
"""

from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional

import pytest

from ticketry.config import Settings
from ticketry.config_store import ConfigStore
from ticketry.db.connection import init_db
from ticketry.db.database import Database
from ticketry.events import EventManager
from ticketry.plugins.context import PluginContext
from ticketry.plugins.loader import PluginLoader
from ticketry.plugins.manager import PluginManager
from ticketry.plugins.manifest import PluginDefinition

NOTES_PLUGIN = '''
from sqlalchemy import Column, Integer, String, Text

from ticketry.db.schema import CreateIndex, CreateTable
from ticketry.plugins.manifest import PluginDefinition


def info():
    return {
        "name": "Notes",
        "description": "Private notes attached to issues",
        "version": "1.1",
        "author": "Test Author",
        "requires": {"ticketry": "0.1"},
    }


def schema(plugin):
    return [
        CreateTable(
            plugin.table("note"),
            [
                Column("id", Integer, primary_key=True),
                Column("issue_id", Integer, nullable=False),
                Column("body", Text, nullable=False),
            ],
        ),
        CreateIndex("idx_notes_issue", plugin.table("note"), ["issue_id"]),
    ]


def config(plugin):
    return {"max_length": 500}


def summary(plugin, **params):
    return {
        "plugin": plugin.basename,
        "max_length": plugin.config_get("max_length"),
        "params": params,
    }


def register():
    return PluginDefinition(
        info=info,
        config=config,
        schema=schema,
        pages={"summary": summary},
    )
'''


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings using an in-memory SQLite database and a temporary plugin path."""
    return Settings(
        _env_file=None,
        db_type="sqlite",
        database_url="sqlite:///:memory:",
        plugin_path=str(tmp_path / "plugins"),
        db_table_prefix="ticketry",
        db_table_suffix="_table",
        plugins_enabled=True,
        log_queries=False,
    )


@pytest.fixture
def db(test_settings: Settings) -> Generator[Database, None, None]:
    """
    Connected database with the core tables created.

    Each test gets a fresh in-memory database.
    """
    database = Database(test_settings)
    database.connect()
    init_db(database)
    yield database
    database.close()


@pytest.fixture
def config_store(db: Database) -> ConfigStore:
    return ConfigStore(db)


@pytest.fixture
def plugin_context() -> PluginContext:
    return PluginContext()


@pytest.fixture
def events(plugin_context: PluginContext) -> EventManager:
    return EventManager(plugin_context)


@pytest.fixture
def loader() -> PluginLoader:
    """Loader that only knows about in-process plugin definitions."""
    return PluginLoader(enable_entry_points=False, enable_directories=False)


@pytest.fixture
def plugin_manager(
    db: Database,
    config_store: ConfigStore,
    events: EventManager,
    loader: PluginLoader,
) -> PluginManager:
    return PluginManager(db, config_store=config_store, events=events, loader=loader)


@pytest.fixture
def register_plugin(loader: PluginLoader) -> Callable[..., PluginDefinition]:
    """
    Register an in-process plugin.

    Usage:
        register_plugin("timecard", version="1.0", requires={"ticketry": "0.1"},
                        init=lambda plugin: ...)
    """

    def _register(
        basename: str,
        version: str = "1.0",
        requires: Optional[Dict[str, str]] = None,
        **callbacks: Any,
    ) -> PluginDefinition:
        info = {"name": basename.title(), "version": version, "requires": requires or {}}
        definition = PluginDefinition(info=lambda: info, **callbacks)
        loader.register_definition(basename, definition)
        return definition

    return _register


@pytest.fixture
def plugin_dir(test_settings: Settings) -> Path:
    """Plugin directory holding a 'notes' plugin and a directory without one."""
    plugins_root = Path(test_settings.plugin_path)
    plugins_root.mkdir(parents=True)

    notes = plugins_root / "notes"
    notes.mkdir()
    (notes / "register.py").write_text(NOTES_PLUGIN)

    # Directory without a register file (should be ignored)
    (plugins_root / "assets").mkdir()

    return plugins_root
