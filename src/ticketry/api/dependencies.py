"""
FastAPI dependencies.
"""

from fastapi import Depends

from ticketry.db.connection import get_db
from ticketry.db.database import Database
from ticketry.plugins.manager import PluginManager


def get_plugin_manager(db: Database = Depends(get_db)) -> PluginManager:
    """
    Plugin manager for one request, with enabled plugins initialized.

    Plugin state is request scoped: every request builds a fresh manager
    and initializes plugins against the current database.
    """
    manager = PluginManager(db)
    manager.init_all()
    return manager
