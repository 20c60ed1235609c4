"""
Pydantic schemas for API responses.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class PluginResponse(BaseModel):
    """A plugin found in the plugin directory, with its install state."""

    basename: str
    name: str
    description: str = ""
    version: str = ""
    author: str = ""
    contact: str = ""
    url: str = ""
    requires: Dict[str, str] = Field(default_factory=dict)
    installed: bool = False
    enabled: bool = False
    registered: bool = False
    needs_upgrade: bool = False


class PluginActionResponse(BaseModel):
    """Result of an install, upgrade or uninstall request."""

    basename: str
    action: str
    success: bool
    message: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    database: str
