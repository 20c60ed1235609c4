"""
Logging configuration for Ticketry.

Routes INFO/DEBUG records to stdout and WARNING and above to stderr, with an
optional rotating log file per process context (``api``, ``cli``, ...).
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from ticketry.config import Settings, settings as default_settings

STANDARD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured_contexts: set[str] = set()


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class _MaxLevelFilter(logging.Filter):
    """Only pass records strictly below a level."""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _build_formatter(config: Settings) -> logging.Formatter:
    if config.log_format == "json":
        return JsonFormatter()
    return logging.Formatter(STANDARD_FORMAT)


def setup_logging(context: str = "app", config: Optional[Settings] = None) -> None:
    """
    Configure root logging for a process context.

    Calling this more than once for the same context is a no-op.

    Args:
        context: Name of the process context, used for the log file name
        config: Settings to read from (defaults to the global settings)

    Raises:
        PermissionError: If the log directory cannot be created
    """
    if context in _configured_contexts:
        return

    config = config or default_settings
    formatter = _build_formatter(config)
    root = logging.getLogger()
    root.setLevel(config.log_level.upper())

    if config.log_console_enabled:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(logging.DEBUG)
        stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))
        stdout_handler.setFormatter(formatter)
        root.addHandler(stdout_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    if config.log_file_enabled:
        log_dir = config.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / f"{context}.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # SQL logging is controlled by log_queries, not by SQLAlchemy's echo
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    if config.log_queries:
        logging.getLogger("ticketry.db.database").setLevel(logging.DEBUG)

    _configured_contexts.add(context)
