"""
Tests for logging configuration.
"""

import json
import logging
from pathlib import Path

import pytest

from ticketry import logging_config
from ticketry.config import Settings
from ticketry.logging_config import JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Remove handlers added by a test and forget configured contexts."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    logging_config._configured_contexts.clear()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_handlers(self):
        before = len(logging.getLogger().handlers)

        setup_logging("test-console", Settings(_env_file=None, log_level="DEBUG"))

        root = logging.getLogger()
        assert len(root.handlers) == before + 2
        assert root.level == logging.DEBUG

    def test_idempotent_per_context(self):
        config = Settings(_env_file=None)
        before = len(logging.getLogger().handlers)

        setup_logging("test-repeat", config)
        setup_logging("test-repeat", config)

        assert len(logging.getLogger().handlers) == before + 2

    def test_file_handler(self, tmp_path: Path):
        config = Settings(
            _env_file=None,
            log_console_enabled=False,
            log_file_enabled=True,
            log_dir=str(tmp_path),
        )

        setup_logging("test-file", config)
        logging.getLogger("ticketry.test").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_file = tmp_path / "test-file.log"
        assert log_file.exists()
        assert "written to file" in log_file.read_text()

    def test_query_logging(self):
        setup_logging("test-queries", Settings(_env_file=None, log_queries=True))

        assert logging.getLogger("ticketry.db.database").level == logging.DEBUG
        logging.getLogger("ticketry.db.database").setLevel(logging.NOTSET)


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_format(self):
        record = logging.LogRecord(
            "ticketry.plugins", logging.WARNING, __file__, 1, "Plugin %s failed", ("notes",), None
        )

        payload = json.loads(JsonFormatter().format(record))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "ticketry.plugins"
        assert payload["message"] == "Plugin notes failed"
