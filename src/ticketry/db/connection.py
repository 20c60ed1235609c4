"""
Database connection management for Ticketry.

Builds SQLAlchemy engines, creates the host's core tables and provides the
request-scoped ``Database`` dependency used by the API.
"""

import logging
from typing import Any, Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from ticketry.config import Settings, settings

logger = logging.getLogger(__name__)


def create_database_engine(
    dsn: str, config: Optional[Settings] = None, **options: Any
) -> Engine:
    """
    Create an engine for a DSN.

    SQLite engines allow cross-thread access (for the API test client) and
    in-memory databases share one connection so the schema persists. Other
    backends get a connection pool sized from settings.

    Args:
        dsn: Database URL
        config: Settings supplying pool sizes (defaults to global settings)
        **options: Extra keyword arguments passed to ``create_engine``

    Returns:
        Engine: A new SQLAlchemy engine
    """
    config = config or settings

    if dsn.startswith("sqlite"):
        engine_options: dict[str, Any] = {
            "connect_args": {"check_same_thread": False},
        }
        if ":memory:" in dsn or dsn in ("sqlite://", "sqlite:///"):
            engine_options["poolclass"] = StaticPool
        engine_options.update(options)
        return create_engine(dsn, **engine_options)

    engine_options = {
        "pool_size": config.db_pool_size,
        "max_overflow": config.db_pool_max_overflow,
        "pool_pre_ping": True,  # Verify connections before using
        "pool_timeout": config.db_pool_timeout,
        "pool_recycle": config.db_pool_recycle,
    }
    engine_options.update(options)
    return create_engine(dsn, **engine_options)


def init_db(db) -> None:
    """
    Create the host's core tables (plugin registry and configuration).

    Existing tables are left untouched.

    Args:
        db: A connected ``Database``
    """
    from ticketry.models.db import build_core_metadata

    metadata = build_core_metadata(db.get_table)
    metadata.create_all(bind=db.connection)
    db.commit()
    logger.info(f"Core tables ready: {', '.join(sorted(metadata.tables))}")


def check_connection(db) -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        return db.result(db.query("SELECT 1")) == 1
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """
    Get the process-wide engine, creating it on first use.

    Requests share the engine's connection pool; each one checks out its
    own connection.

    Returns:
        Engine: The shared engine
    """
    global _engine

    if _engine is None:
        _engine = create_database_engine(settings.dsn, settings)
    return _engine


def dispose_engine() -> None:
    """Dispose of the shared engine and its pooled connections."""
    global _engine

    if _engine is not None:
        _engine.dispose()
        _engine = None


def get_db() -> Generator:
    """
    Dependency for FastAPI to get a database with automatic cleanup.

    Each call opens a new ``Database`` on its own connection from the shared
    engine. Commits on success, rolls back on error, and always closes the
    connection.

    Yields:
        Database: The connected database
    """
    from ticketry.db.database import Database

    db = Database(settings)
    db.connect(engine=get_engine())
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
