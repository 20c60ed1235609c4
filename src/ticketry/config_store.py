"""
Runtime configuration options.

Options resolve from the database first (the most specific user/project row
wins), then from in-memory globals, then from the caller's default. Values
are stored JSON encoded.
"""

import json
import logging
from typing import Any, Dict, Optional

from ticketry.db.database import Database

logger = logging.getLogger(__name__)

NO_USER = 0
ALL_PROJECTS = 0
ADMINISTRATOR = 90

_MISSING = object()


class ConfigStore:
    """Configuration options backed by the ``config`` table."""

    def __init__(self, db: Database, globals_: Optional[Dict[str, Any]] = None):
        self.db = db
        self._globals: Dict[str, Any] = dict(globals_ or {})
        self._cache: Dict[tuple, Any] = {}

    @property
    def table(self) -> str:
        return self.db.get_table("config")

    def get_global(self, option: str, default: Any = None) -> Any:
        """Get an in-memory global option."""
        return self._globals.get(option, default)

    def set_global(self, option: str, value: Any, override: bool = True) -> bool:
        """
        Set an in-memory global option.

        Args:
            option: Option name
            value: Option value
            override: Replace an existing value

        Returns:
            True if the value was set
        """
        if not override and option in self._globals:
            return False
        self._globals[option] = value
        return True

    def get(
        self,
        option: str,
        default: Any = None,
        user_id: int = NO_USER,
        project_id: int = ALL_PROJECTS,
    ) -> Any:
        """
        Get an option for a user and project.

        Args:
            option: Option name
            default: Value returned when the option is set nowhere
            user_id: User to resolve for
            project_id: Project to resolve for

        Returns:
            The option value
        """
        key = (option, user_id, project_id)
        if key in self._cache:
            return self._cache[key]

        value = self._lookup(option, user_id, project_id)
        if value is _MISSING:
            return self._globals.get(option, default)

        self._cache[key] = value
        return value

    def _lookup(self, option: str, user_id: int, project_id: int) -> Any:
        query = (
            f"SELECT value FROM {self.table} "
            "WHERE config_id=? AND user_id IN (?, ?) AND project_id IN (?, ?) "
            "ORDER BY user_id DESC, project_id DESC"
        )
        result = self.db.query_bound(
            query, [option, user_id, NO_USER, project_id, ALL_PROJECTS], limit=1
        )
        raw = self.db.result(result)
        if raw is None:
            return _MISSING
        return json.loads(raw)

    def is_set(
        self, option: str, user_id: int = NO_USER, project_id: int = ALL_PROJECTS
    ) -> bool:
        """Check whether an option is stored in the database or globals."""
        if self._lookup(option, user_id, project_id) is not _MISSING:
            return True
        return option in self._globals

    def set(
        self,
        option: str,
        value: Any,
        user_id: int = NO_USER,
        project_id: int = ALL_PROJECTS,
        access: int = ADMINISTRATOR,
    ) -> None:
        """Store an option in the database, replacing any existing row."""
        encoded = json.dumps(value)
        with self.db.transaction():
            self.db.query_bound(
                f"DELETE FROM {self.table} WHERE config_id=? AND user_id=? AND project_id=?",
                [option, user_id, project_id],
            )
            self.db.query_bound(
                f"INSERT INTO {self.table} (config_id, project_id, user_id, access_reqd, value) "
                "VALUES (?, ?, ?, ?, ?)",
                [option, project_id, user_id, access, encoded],
            )
        self._cache.clear()
        logger.debug(f"Config {option} set for user {user_id}, project {project_id}")

    def delete(
        self, option: str, user_id: int = NO_USER, project_id: int = ALL_PROJECTS
    ) -> None:
        """Remove a stored option."""
        self.db.query_bound(
            f"DELETE FROM {self.table} WHERE config_id=? AND user_id=? AND project_id=?",
            [option, user_id, project_id],
        )
        self._cache.clear()
