"""
Plugin management.

``PluginManager`` is the host side of the plugin system: it reads plugin
information, resolves dependencies, initializes enabled plugins, and
installs, upgrades and uninstalls plugins in the host database.
``PluginHandle`` is the plugin side: the view of the host API each plugin
callback receives.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ticketry import __version__
from ticketry.config import Settings
from ticketry.config_store import ADMINISTRATOR, ALL_PROJECTS, NO_USER, ConfigStore
from ticketry.db.database import Database
from ticketry.db.schema import SchemaStep
from ticketry.events import EVENT_PLUGIN_INIT, EventManager
from ticketry.exceptions import (
    DatabaseError,
    PluginError,
    PluginLoadError,
    PluginNotRegisteredError,
)
from ticketry.plugins.context import PluginContext
from ticketry.plugins.loader import PluginLoader
from ticketry.plugins.manifest import HookMap, PluginDefinition, PluginInfo
from ticketry.plugins.version import DependencyStatus, parse_requirement, version_check

logger = logging.getLogger(__name__)

# Basename of the pseudo-plugin representing the host application
HOST_BASENAME = "ticketry"


def host_info() -> Dict[str, Any]:
    """Information for the host pseudo-plugin, used for version dependencies."""
    return {
        "name": "Ticketry",
        "description": "Core plugin API for the Ticketry issue tracker.",
        "version": __version__,
        "author": "Ticketry Team",
        "contact": "",
        "url": "",
    }


class PluginHandle:
    """
    The host API as seen by one plugin.

    Passed to every plugin callback; all helpers resolve to the plugin the
    handle was created for.
    """

    def __init__(self, manager: "PluginManager", basename: str):
        self.manager = manager
        self.basename = basename

    @property
    def db(self) -> Database:
        return self.manager.db

    @property
    def info(self) -> Optional[PluginInfo]:
        return self.manager.get_info(self.basename)

    def table(self, name: str) -> str:
        return self.manager.table(name, basename=self.basename)

    def page(self, page: str) -> str:
        return self.manager.page(page, basename=self.basename)

    def config_get(self, option: str, default: Any = None, global_: bool = False) -> Any:
        return self.manager.config_get(option, default, global_, basename=self.basename)

    def config_set(
        self,
        option: str,
        value: Any,
        user_id: int = NO_USER,
        project_id: int = ALL_PROJECTS,
        access: int = ADMINISTRATOR,
    ) -> None:
        self.manager.config_set(
            option, value, user_id, project_id, access, basename=self.basename
        )

    def event_hook(self, event: str, callback: Callable[..., Any]) -> None:
        self.manager.event_hook(event, callback, basename=self.basename)

    def event_hook_many(self, hooks: HookMap) -> None:
        self.manager.event_hook_many(hooks, basename=self.basename)


class PluginManager:
    """
    Host-side plugin API.

    Example:
        >>> manager = PluginManager(db)
        >>> manager.install("timecard")
        >>> manager.init_all()
        ['timecard']
    """

    def __init__(
        self,
        db: Database,
        config_store: Optional[ConfigStore] = None,
        events: Optional[EventManager] = None,
        loader: Optional[PluginLoader] = None,
        context: Optional[PluginContext] = None,
        config: Optional[Settings] = None,
        access_check: Optional[Callable[[int], None]] = None,
    ) -> None:
        """
        Initialize the plugin manager.

        Args:
            db: Connected database
            config_store: Configuration options (defaults to one over ``db``)
            events: Event registry (defaults to a new one sharing ``context``)
            loader: Plugin loader (defaults to scanning the plugin path)
            context: Plugin context (defaults to the event registry's)
            config: Settings (defaults to the database's)
            access_check: Called with the required access level before
                install/upgrade/uninstall; raises to deny
        """
        self.db = db
        self.config = config or db.config
        if context is None:
            context = events.context if events is not None else PluginContext()
        self.context = context
        self.events = events or EventManager(context)
        self.config_store = config_store or ConfigStore(db)
        self.loader = loader or PluginLoader(plugin_dirs=[self.config.plugin_directory])
        self.access_check = access_check

        self.loader.register_definition(HOST_BASENAME, PluginDefinition(info=host_info))

    # ------------------------------------------------------------------
    # Registration and current plugin
    # ------------------------------------------------------------------

    def is_registered(self, basename: Optional[str]) -> bool:
        return self.context.is_registered(basename)

    def ensure_registered(self, basename: Optional[str]) -> None:
        self.context.ensure_registered(basename)

    def get_current(self) -> Optional[str]:
        return self.context.get_current()

    def push_current(self, basename: str) -> None:
        self.context.push_current(basename)

    def pop_current(self) -> Optional[str]:
        return self.context.pop_current()

    def info(self, basename: Optional[str] = None) -> Optional[PluginInfo]:
        """Information of a registered plugin (defaults to the current plugin)."""
        return self.context.info(basename)

    def handle(self, basename: str) -> PluginHandle:
        return PluginHandle(self, basename)

    def _resolve(self, basename: Optional[str]) -> str:
        if basename is None:
            basename = self.get_current()
        if basename is None:
            raise PluginNotRegisteredError(None)
        return basename

    # ------------------------------------------------------------------
    # Plugin helpers
    # ------------------------------------------------------------------

    def page(self, page: str, basename: Optional[str] = None) -> str:
        """URL of a plugin page."""
        basename = self._resolve(basename)
        return f"{self.config.base_url.rstrip('/')}/plugins/{basename}/pages/{page}"

    def table(self, name: str, basename: Optional[str] = None) -> str:
        """
        Full name of a plugin table, with the configured prefix and suffix.

        Example:
            >>> manager.table("entry", "timecard")
            'ticketry_plugin_timecard_entry_table'
        """
        basename = self._resolve(basename)
        parts = [self.config.db_table_prefix, "plugin", basename, name]
        return "_".join(part for part in parts if part) + self.config.db_table_suffix

    def event_hook(
        self, event: str, callback: Callable[..., Any], basename: Optional[str] = None
    ) -> None:
        """Hook a plugin callback onto an event."""
        self.events.hook(event, callback, self._resolve(basename))

    def event_hook_many(self, hooks: HookMap, basename: Optional[str] = None) -> None:
        """
        Hook several plugin callbacks at once.

        Args:
            hooks: Event name -> callback, or list of callbacks
            basename: Owning plugin (defaults to the current plugin)
        """
        if not isinstance(hooks, Mapping):
            return

        basename = self._resolve(basename)
        for event, callbacks in hooks.items():
            if not isinstance(callbacks, (list, tuple)):
                callbacks = [callbacks]
            for callback in callbacks:
                self.events.hook(event, callback, basename)

    @staticmethod
    def _option(basename: str, option: str) -> str:
        return f"plugin_{basename}_{option}"

    def config_get(
        self,
        option: str,
        default: Any = None,
        global_: bool = False,
        basename: Optional[str] = None,
    ) -> Any:
        """Get a plugin configuration option."""
        full_option = self._option(self._resolve(basename), option)
        if global_:
            return self.config_store.get_global(full_option, default)
        return self.config_store.get(full_option, default)

    def config_set(
        self,
        option: str,
        value: Any,
        user_id: int = NO_USER,
        project_id: int = ALL_PROJECTS,
        access: int = ADMINISTRATOR,
        basename: Optional[str] = None,
    ) -> None:
        """Store a plugin configuration option in the database."""
        full_option = self._option(self._resolve(basename), option)
        self.config_store.set(full_option, value, user_id, project_id, access)

    def config_defaults(
        self, options: Optional[Mapping[str, Any]], basename: Optional[str] = None
    ) -> None:
        """Set plugin defaults as global options without overriding anything."""
        if not isinstance(options, Mapping):
            return

        basename = self._resolve(basename)
        for option, value in options.items():
            self.config_store.set_global(self._option(basename, option), value, override=False)

    # ------------------------------------------------------------------
    # Plugin information
    # ------------------------------------------------------------------

    def _include(self, basename: str) -> Optional[PluginDefinition]:
        try:
            return self.loader.include(basename)
        except PluginLoadError as e:
            logger.error(str(e))
            return None

    def _call(self, basename: str, callback: Callable[..., Any], *args: Any) -> Any:
        with self.context.current(basename):
            return callback(self.handle(basename), *args)

    def get_info(self, basename: str) -> Optional[PluginInfo]:
        """
        Get a plugin's information.

        Registered plugins are answered from the context; otherwise the
        plugin's info callback is called.

        Returns:
            Plugin info, or None if the plugin is unknown or describes
            itself invalidly
        """
        if self.is_registered(basename):
            return self.context.info(basename)

        definition = self._include(basename)
        if definition is None or definition.info is None:
            return None

        with self.context.current(basename):
            raw = definition.info()

        if isinstance(raw, PluginInfo):
            return raw
        if not isinstance(raw, Mapping):
            logger.warning(f"Plugin {basename} returned invalid info: {raw!r}")
            return None

        data = {key: value for key, value in raw.items() if key != "basename"}
        try:
            return PluginInfo(basename=basename, **data)
        except ValidationError as e:
            logger.warning(f"Plugin {basename} returned invalid info: {e}")
            return None

    def dependency(self, basename: str, required: str) -> DependencyStatus:
        """
        Check a plugin dependency.

        Args:
            basename: Required plugin
            required: Version constraint, e.g. ``"1.2"`` or ``"<2.0"``

        Returns:
            MET, MISSING if the plugin is not registered, or
            VERSION_MISMATCH
        """
        if not self.is_registered(basename):
            return DependencyStatus.MISSING

        version, maximum = parse_requirement(required)
        return version_check(self.context.info(basename).version, version, maximum)

    def get_schema(self, basename: str) -> Optional[List[SchemaStep]]:
        """Get a plugin's schema migration steps, or None if it has none."""
        definition = self._include(basename)
        if definition is None or definition.schema is None:
            return None

        schema = self._call(basename, definition.schema)
        if isinstance(schema, (list, tuple)):
            return list(schema)
        return None

    def find_all(self) -> Dict[str, PluginInfo]:
        """Search for all available plugins, including the host."""
        plugins: Dict[str, PluginInfo] = {}
        host = self.get_info(HOST_BASENAME)
        if host is not None:
            plugins[HOST_BASENAME] = host

        for basename in self.loader.list_plugins():
            if basename == HOST_BASENAME:
                continue
            info = self.get_info(basename)
            if info is not None:
                plugins[basename] = info
        return plugins

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    @property
    def plugin_table(self) -> str:
        return self.db.get_table("plugin")

    def _schema_option(self, basename: str) -> str:
        return self._option(basename, "schema")

    def _ensure_access(self) -> None:
        if self.access_check is not None:
            self.access_check(self.config.manage_plugin_threshold)

    def get_installed(self) -> Dict[str, bool]:
        """Installed plugins and whether each is enabled, including the host."""
        result = self.db.query(f"SELECT basename, enabled FROM {self.plugin_table}")
        plugins = {HOST_BASENAME: True}
        for row in self.db.fetch_all(result):
            plugins[row["basename"]] = bool(row["enabled"])
        return plugins

    def get_enabled(self) -> List[str]:
        """Basenames of enabled plugins."""
        result = self.db.query_bound(
            f"SELECT basename FROM {self.plugin_table} WHERE enabled=?", [True]
        )
        return [row["basename"] for row in self.db.fetch_all(result)]

    def is_installed(self, basename: str) -> bool:
        result = self.db.query_bound(
            f"SELECT COUNT(*) FROM {self.plugin_table} WHERE basename=?", [basename]
        )
        return self.db.result(result) > 0

    def install(self, basename: str) -> Optional[bool]:
        """
        Install a plugin and apply its schema.

        Returns:
            True if installed, None if the plugin is already installed,
            unknown, refused by its install callback or failed to upgrade

        Raises:
            AccessDeniedError: If the access check denies plugin management
        """
        self._ensure_access()

        if self.is_installed(basename):
            logger.warning(f"Plugin {basename} is already installed")
            return None

        definition = self._include(basename)
        if definition is None:
            logger.warning(f"Plugin {basename} not found")
            return None

        if definition.install is not None and not self._call(basename, definition.install):
            logger.warning(f"Plugin {basename} refused installation")
            return None

        self.db.query_bound(
            f"INSERT INTO {self.plugin_table} (basename, enabled) VALUES (?, ?)",
            [basename, True],
        )

        schema_option = self._schema_option(basename)
        if not self.config_store.is_set(schema_option):
            self.config_store.set(schema_option, -1)

        logger.info(f"Installed plugin {basename}")
        return self.upgrade(basename)

    def needs_upgrade(self, basename: Optional[str] = None) -> bool:
        """Determine if an installed plugin has schema steps left to apply."""
        basename = self._resolve(basename)
        schema = self.get_schema(basename)
        if schema is None:
            return False

        schema_version = self.config_store.get(self._schema_option(basename), -1)
        return schema_version < len(schema) - 1

    def upgrade(self, basename: str) -> Optional[bool]:
        """
        Apply a plugin's pending schema steps, then run its upgrade callback.

        The schema version is stored after every successful step, so a
        failed upgrade resumes from the failed step next time.

        Returns:
            True if the upgrade completed, None if a step or the upgrade
            callback failed
        """
        self._ensure_access()

        schema_option = self._schema_option(basename)
        schema_version = self.config_store.get(schema_option, -1)
        schema = self.get_schema(basename) or []

        if len(schema) > schema_version + 1:
            ops = self.db.operations()
            for i in range(schema_version + 1, len(schema)):
                step = schema[i]
                try:
                    with self.db.transaction():
                        step.apply(ops, self.db)
                except (SQLAlchemyError, DatabaseError) as e:
                    logger.error(
                        f"Schema step {i} ({type(step).__name__} on {step.target}) "
                        f"failed for plugin {basename}: {e}"
                    )
                    return None

                self.config_store.set(schema_option, i)
                logger.debug(f"Plugin {basename} schema now at version {i}")

        definition = self._include(basename)
        if definition is not None and definition.upgrade is not None:
            if not self._call(basename, definition.upgrade, schema_version):
                logger.warning(f"Plugin {basename} upgrade callback failed")
                return None

        return True

    def uninstall(self, basename: str) -> Optional[bool]:
        """
        Remove a plugin from the database and run its uninstall callback.

        Plugin tables and configuration are left in place.

        Returns:
            True if uninstalled, None if the plugin was not installed or its
            uninstall callback failed
        """
        self._ensure_access()

        if not self.is_installed(basename):
            return None

        self.db.query_bound(
            f"DELETE FROM {self.plugin_table} WHERE basename=?", [basename]
        )
        logger.info(f"Uninstalled plugin {basename}")

        definition = self._include(basename)
        if definition is not None and definition.uninstall is not None:
            if not self._call(basename, definition.uninstall):
                logger.warning(f"Plugin {basename} uninstall callback failed")
                return None

        return True

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def init_all(self) -> List[str]:
        """
        Initialize all enabled plugins and signal ``EVENT_PLUGIN_INIT``.

        Does nothing when plugins are disabled or the plugin table has not
        been created.

        Returns:
            Basenames of the initialized plugins, in initialization order
        """
        if not self.config.plugins_enabled or not self.db.table_exists(self.plugin_table):
            return []

        host = self.get_info(HOST_BASENAME)
        if host is not None:
            self.context.register(host)

        initialized = self.init_array(self.get_enabled())

        self.events.signal(EVENT_PLUGIN_INIT)
        return initialized

    def init_array(self, basenames: List[str]) -> List[str]:
        """
        Initialize plugins in dependency order.

        Plugins whose dependencies are not yet registered are retried on the
        next pass. There are at most as many passes as plugins; whatever is
        still pending after that (or after a pass that initialized nothing)
        is dropped. Missing dependencies and dependency cycles are not told
        apart.

        Returns:
            Basenames of the initialized plugins, in initialization order
        """
        pending = list(basenames)
        initialized: List[str] = []

        for _ in range(len(pending)):
            retry = []
            for basename in pending:
                try:
                    ready = self.init(basename)
                except Exception as e:
                    logger.error(f"Failed to initialize plugin {basename}: {e}", exc_info=True)
                    self.context.unregister(basename)
                    self.events.unhook_plugin(basename)
                    continue

                if not ready:
                    retry.append(basename)
                elif self.is_registered(basename):
                    initialized.append(basename)

            if not retry or len(retry) == len(pending):
                pending = retry
                break
            pending = retry

        for basename in pending:
            logger.warning(f"Plugin {basename} not initialized: unmet dependencies")

        return initialized

    def init(self, basename: str) -> bool:
        """
        Initialize a single plugin.

        Returns:
            False if a dependency is missing or the wrong version, True
            otherwise (including plugins that provide no information, which
            are skipped)
        """
        info = self.get_info(basename)
        if info is None:
            logger.debug(f"Plugin {basename} provides no information; skipping")
            return True

        for required, constraint in info.requires.items():
            status = self.dependency(required, constraint)
            if status != DependencyStatus.MET:
                logger.debug(
                    f"Plugin {basename} dependency {required} {constraint}: {status.name}"
                )
                return False

        self.context.register(info)
        definition = self._include(basename)
        if definition is None:
            return True

        if definition.config is not None:
            self.config_defaults(self._call(basename, definition.config), basename=basename)

        if definition.init is not None:
            self._call(basename, definition.init)

        if definition.hooks is not None:
            self.event_hook_many(self._call(basename, definition.hooks), basename=basename)

        logger.info(f"Initialized plugin {basename} v{info.version}")
        return True

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def render_page(self, basename: str, page: str, **kwargs: Any) -> Any:
        """
        Render a registered plugin's page.

        Raises:
            PluginNotRegisteredError: If the plugin is not registered
            PluginError: If the plugin has no such page
        """
        self.ensure_registered(basename)
        definition = self._include(basename)
        if definition is None or page not in definition.pages:
            raise PluginError(f"Plugin '{basename}' has no page '{page}'")

        with self.context.current(basename):
            return definition.pages[page](self.handle(basename), **kwargs)
