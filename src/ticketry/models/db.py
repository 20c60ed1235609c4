"""
SQLAlchemy table definitions for the Ticketry core schema.

Table names carry the configured prefix and suffix, so the tables are built
per database from a naming function rather than declared statically.
"""

from typing import Callable

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
)


def build_core_metadata(table_name: Callable[[str], str]) -> MetaData:
    """
    Build the core schema.

    Args:
        table_name: Maps a base table name to its full name
            (e.g. ``Database.get_table``)

    Returns:
        MetaData holding the plugin registry and configuration tables
    """
    metadata = MetaData()

    # Installed plugins
    Table(
        table_name("plugin"),
        metadata,
        Column("basename", String(40), primary_key=True),
        Column("enabled", Boolean, nullable=False, default=False),
    )

    # Stored configuration options (values are JSON encoded)
    Table(
        table_name("config"),
        metadata,
        Column("config_id", String(64), nullable=False),
        Column("project_id", Integer, nullable=False, default=0),
        Column("user_id", Integer, nullable=False, default=0),
        Column("access_reqd", Integer, nullable=False, default=0),
        Column("value", Text, nullable=False),
        PrimaryKeyConstraint("config_id", "project_id", "user_id"),
    )

    return metadata
