"""
Database layer for Ticketry.

Provides the ``Database`` query wrapper, engine/connection helpers and the
schema migration steps used by plugins.
"""

from ticketry.db.connection import (
    check_connection,
    dispose_engine,
    get_db,
    get_engine,
    init_db,
)
from ticketry.db.database import Database

__all__ = [
    "Database",
    "check_connection",
    "dispose_engine",
    "get_db",
    "get_engine",
    "init_db",
]
