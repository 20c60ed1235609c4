"""
Plugin discovery and loading system.

Provides hybrid plugin discovery from both:
1. Entry points (setuptools-based packages)
2. The plugin directory (one subdirectory per plugin)

Entry points take precedence when multiple plugins have the same basename.
A plugin module exposes a ``register()`` function returning its
``PluginDefinition``.
"""

import importlib.util
import logging
import sys
from importlib.metadata import EntryPoint, entry_points
from pathlib import Path
from types import ModuleType
from typing import Dict, List, Optional, Union

from ticketry.exceptions import PluginLoadError
from ticketry.plugins.manifest import PluginDefinition

logger = logging.getLogger(__name__)

# Files that may hold a directory plugin's register() function, in order
REGISTER_FILES = ("register.py", "__init__.py")


class PluginLoader:
    """
    Discovers and loads plugin definitions from multiple sources.

    The loader supports two discovery mechanisms:
    1. Entry points: Plugins installed as Python packages
    2. Directory scanning: Plugins in the plugin directory

    Definitions can also be registered in-process with
    ``register_definition``.
    """

    # Entry point group name for Ticketry plugins
    ENTRY_POINT_GROUP = "ticketry.plugins"

    # Package under which directory plugins are imported
    MODULE_NAMESPACE = "ticketry_plugins"

    def __init__(
        self,
        plugin_dirs: Optional[List[Path]] = None,
        enable_entry_points: bool = True,
        enable_directories: bool = True,
    ) -> None:
        """
        Initialize the plugin loader.

        Args:
            plugin_dirs: Directories to scan for plugins
            enable_entry_points: Whether to discover entry point plugins
            enable_directories: Whether to discover directory plugins
        """
        self.enable_entry_points = enable_entry_points
        self.enable_directories = enable_directories
        self.plugin_dirs: List[Path] = list(plugin_dirs or [])

        # Where each discovered plugin comes from (basename -> file or entry point)
        self._sources: Dict[str, Union[Path, EntryPoint]] = {}

        # Cache of loaded definitions (basename -> definition)
        self._definitions: Dict[str, PluginDefinition] = {}

        self._discovered = False

    def discover_plugins(self) -> List[str]:
        """
        Discover all available plugins from entry points and directories.

        Returns:
            Basenames of discovered plugins

        Note:
            Results are cached. Call this method again to refresh discovery.
        """
        self._sources.clear()

        if self.enable_entry_points:
            self._discover_entry_points()

        if self.enable_directories:
            self._discover_directories()

        self._discovered = True
        logger.info(f"Discovered {len(self._sources)} plugin(s)")
        return list(self._sources)

    def _discover_entry_points(self) -> None:
        """
        Discover plugins from setuptools entry points.

        Entry points are declared in pyproject.toml like:
        [project.entry-points."ticketry.plugins"]
        timecard = "ticketry_timecard:register"
        """
        try:
            eps = entry_points(group=self.ENTRY_POINT_GROUP)
        except Exception as e:
            logger.error(f"Entry point discovery failed: {e}")
            return

        for ep in eps:
            self._sources[ep.name] = ep
            logger.debug(f"Discovered entry point plugin: {ep.name}")

    def _discover_directories(self) -> None:
        """
        Discover plugins from local directories.

        Each plugin is a subdirectory named after its basename containing
        register.py or __init__.py.
        """
        for plugin_dir in self.plugin_dirs:
            if not plugin_dir.exists():
                logger.debug(f"Plugin directory does not exist: {plugin_dir}")
                continue

            if not plugin_dir.is_dir():
                logger.warning(f"Plugin path is not a directory: {plugin_dir}")
                continue

            for subdir in sorted(plugin_dir.iterdir()):
                if not subdir.is_dir() or subdir.name.startswith((".", "_")):
                    continue

                register_file = next(
                    (subdir / name for name in REGISTER_FILES if (subdir / name).is_file()),
                    None,
                )
                if register_file is None:
                    continue

                if subdir.name in self._sources:
                    logger.debug(
                        f"Skipping directory plugin {subdir.name} "
                        f"(entry point takes precedence)"
                    )
                    continue

                self._sources[subdir.name] = register_file
                logger.debug(f"Discovered directory plugin: {subdir.name} at {subdir}")

    def register_definition(self, basename: str, definition: PluginDefinition) -> None:
        """Register a plugin definition directly, bypassing discovery."""
        self._definitions[basename] = definition

    def include(self, basename: str) -> Optional[PluginDefinition]:
        """
        Load a plugin's definition.

        Args:
            basename: Plugin basename

        Returns:
            The plugin definition, or None if no such plugin exists

        Raises:
            PluginLoadError: If the plugin exists but fails to load

        Note:
            Results are cached.
        """
        if basename in self._definitions:
            return self._definitions[basename]

        if not self._discovered:
            self.discover_plugins()

        source = self._sources.get(basename)
        if source is None:
            return None

        try:
            if isinstance(source, Path):
                register = self._load_register_function(basename, source)
            else:
                register = source.load()

            definition = register()
        except PluginLoadError:
            raise
        except Exception as e:
            raise PluginLoadError(f"Failed to load plugin '{basename}': {e}") from e

        if not isinstance(definition, PluginDefinition):
            raise PluginLoadError(
                f"Plugin '{basename}' returned invalid type: "
                f"{type(definition).__name__} (expected PluginDefinition)"
            )

        self._definitions[basename] = definition
        logger.debug(f"Loaded plugin: {basename}")
        return definition

    def _load_register_function(self, basename: str, register_file: Path):
        """Import a directory plugin's module and return its register()."""
        module_name = f"{self.MODULE_NAMESPACE}.{basename}"
        search_locations = (
            [str(register_file.parent)] if register_file.name == "__init__.py" else None
        )
        spec = importlib.util.spec_from_file_location(
            module_name, register_file, submodule_search_locations=search_locations
        )
        if spec is None or spec.loader is None:
            raise PluginLoadError(f"Cannot import {register_file}")

        module: ModuleType = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(module_name, None)
            raise

        register = getattr(module, "register", None)
        if register is None or not callable(register):
            raise PluginLoadError(f"{register_file} has no register() function")
        return register

    def list_plugins(self) -> List[str]:
        """
        Get basenames of all known plugins.

        Returns:
            Discovered and directly registered basenames
        """
        if not self._discovered:
            self.discover_plugins()
        names = list(self._sources)
        names.extend(name for name in self._definitions if name not in self._sources)
        return names

    @property
    def plugin_count(self) -> int:
        """Get count of known plugins."""
        return len(self.list_plugins())
