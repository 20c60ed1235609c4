"""Custom exceptions for Ticketry."""

from typing import Optional


class TicketryError(Exception):
    """Base class for all Ticketry errors."""


class DatabaseError(TicketryError):
    """Base class for database layer errors."""


class DatabaseConnectError(DatabaseError):
    """Raised when a connection to the database cannot be opened."""

    def __init__(self, dsn: str, message: str):
        self.dsn = dsn
        self.message = message
        super().__init__(f"Database connection failed: {message}")


class DatabaseNotConnectedError(DatabaseError):
    """Raised when a query is attempted before connecting."""

    def __init__(self) -> None:
        super().__init__("No database connection has been opened")


class DatabaseQueryError(DatabaseError):
    """Raised when a query fails to execute."""

    def __init__(self, query: str, message: str):
        self.query = query
        self.message = message
        super().__init__(f"Database query failed: {message} (query: {query})")


class PluginError(TicketryError):
    """Base class for plugin errors."""


class PluginNotRegisteredError(PluginError):
    """Raised when a plugin that has not been registered is required."""

    def __init__(self, basename: Optional[str]):
        self.basename = basename
        super().__init__(f"Plugin '{basename}' is not registered")


class PluginLoadError(PluginError):
    """Raised when a plugin fails to load."""


class AccessDeniedError(TicketryError):
    """Raised when the current user lacks the required access level."""

    def __init__(self, threshold: int):
        self.threshold = threshold
        super().__init__(f"Access level {threshold} required")
