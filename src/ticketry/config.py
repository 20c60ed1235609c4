"""
Ticketry Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables (prefixed with ``TICKETRY_``)
and an optional ``.env`` file.
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

# Driver names used when building a DSN from components
DB_DRIVERS = {
    "sqlite": "sqlite",
    "postgresql": "postgresql+psycopg2",
    "mysql": "mysql+pymysql",
    "mssql": "mssql+pyodbc",
    "db2": "db2+ibm_db",
}


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for Ticketry logs.

    Follows XDG Base Directory Specification:
    - Uses $XDG_STATE_HOME/ticketry if XDG_STATE_HOME is set
    - Falls back to $HOME/.local/state/ticketry if not set
    - Returns relative path ./logs if HOME not available (dev/testing)

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "ticketry" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "ticketry" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TICKETRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    db_type: str = "sqlite"  # sqlite, postgresql, mysql, mssql, db2
    database_url: str = ""  # Full DSN; overrides the components below when set
    db_hostname: str = "localhost"
    db_port: int | None = None
    db_username: str = "ticketry"
    db_password: str = ""
    db_name: str = "ticketry.db"
    db_table_prefix: str = "ticketry"
    db_table_suffix: str = "_table"

    # Connection pool (ignored for SQLite)
    db_pool_size: int = 5
    db_pool_max_overflow: int = 5
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Plugins
    plugins_enabled: bool = True
    plugin_path: str = "plugins"
    manage_plugin_threshold: int = 90  # ADMINISTRATOR

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    base_url: str = "/"

    # Application
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = False
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5
    log_queries: bool = False  # Log every bound query with its parameters

    @property
    def dsn(self) -> str:
        """Construct the database DSN from components unless overridden."""
        if self.database_url:
            return self.database_url

        driver = DB_DRIVERS.get(self.db_type, self.db_type)
        if self.db_type == "sqlite":
            return f"sqlite:///{self.db_name}"

        url = URL.create(
            drivername=driver,
            username=self.db_username or None,
            password=self.db_password or None,
            host=self.db_hostname or None,
            port=self.db_port,
            database=self.db_name or None,
        )
        return url.render_as_string(hide_password=False)

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())

    @property
    def plugin_directory(self) -> Path:
        """Get the plugin directory path."""
        return Path(self.plugin_path).expanduser()


# Global settings instance
settings = Settings()
