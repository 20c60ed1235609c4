"""
Plugin system for extending Ticketry.

This package provides infrastructure for discovering, loading, initializing
and installing plugins. Plugins can be distributed as Python packages or
placed in the plugin directory. The host-side API lives in
``ticketry.plugins.manager``.
"""

from ticketry.plugins.context import PluginContext
from ticketry.plugins.loader import PluginLoader
from ticketry.plugins.manifest import PluginDefinition, PluginInfo
from ticketry.plugins.version import DependencyStatus, version_array, version_check

__all__ = [
    "DependencyStatus",
    "PluginContext",
    "PluginDefinition",
    "PluginInfo",
    "PluginLoader",
    "version_array",
    "version_check",
]
