"""
Plugin descriptors.

``PluginDefinition`` is the capability record a plugin hands to the host when
it is loaded: one optional callable per lifecycle step. ``PluginInfo`` is the
validated information a plugin's ``info`` callback describes itself with.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from ticketry.db.schema import SchemaStep
    from ticketry.plugins.manager import PluginHandle

logger = logging.getLogger(__name__)

HookCallback = Callable[..., Any]
HookMap = Mapping[str, Union[HookCallback, List[HookCallback]]]


class PluginInfo(BaseModel):
    """
    Information registered by a plugin.

    Missing fields default to empty values; ``name`` defaults to the
    plugin's basename.
    """

    basename: str = Field(
        ...,
        description="Unique plugin identifier (the plugin directory name)",
        min_length=1,
    )

    name: str = Field(
        "",
        description="Display name",
    )

    description: str = Field("", description="Human-readable description")

    version: str = Field("", description="Plugin version, e.g. '1.2.0'")

    author: str = Field("", description="Plugin author name or organization")

    contact: str = Field("", description="Contact address for the author")

    url: str = Field("", description="URL to plugin documentation or homepage")

    page: str = Field("", description="Configuration page of the plugin")

    requires: Dict[str, str] = Field(
        default_factory=dict,
        description="Required plugins: basename -> version constraint (e.g. '1.2', '<2.0')",
    )

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, value: Any) -> str:
        """Accept numeric versions such as ``1.0``."""
        if value is None:
            return ""
        return str(value)

    @field_validator("requires", mode="before")
    @classmethod
    def coerce_requires(cls, value: Any) -> Dict[str, str]:
        if value is None:
            return {}
        return {str(k): str(v) for k, v in dict(value).items()}

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = self.basename


@dataclass
class PluginDefinition:
    """
    Callbacks a plugin registers with the host.

    Every callback except ``info`` receives a ``PluginHandle`` for the
    plugin as its first argument.

    Attributes:
        info: Returns the plugin's information as a mapping
        config: Returns default configuration options
        init: Runs once the plugin's dependencies are satisfied
        hooks: Returns event name -> callback (or list of callbacks)
        schema: Returns the ordered list of schema migration steps
        install: Runs before installation; a falsy result aborts it
        upgrade: Runs after schema upgrades with the previous schema version
        uninstall: Runs after the plugin is removed
        pages: Page name -> callable rendering that page
    """

    info: Callable[[], Optional[Mapping[str, Any]]]
    config: Optional[Callable[["PluginHandle"], Mapping[str, Any]]] = None
    init: Optional[Callable[["PluginHandle"], None]] = None
    hooks: Optional[Callable[["PluginHandle"], HookMap]] = None
    schema: Optional[Callable[["PluginHandle"], List["SchemaStep"]]] = None
    install: Optional[Callable[["PluginHandle"], bool]] = None
    upgrade: Optional[Callable[["PluginHandle", int], bool]] = None
    uninstall: Optional[Callable[["PluginHandle"], bool]] = None
    pages: Dict[str, Callable[..., Any]] = field(default_factory=dict)
