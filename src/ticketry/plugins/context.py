"""
Plugin runtime context.

Holds the registry of initialized plugins and the stack of plugins whose code
is currently executing. One context is created per application (or request)
and passed to everything that needs plugin state.
"""

from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

from ticketry.exceptions import PluginNotRegisteredError
from ticketry.plugins.manifest import PluginInfo


class PluginContext:
    """Registered plugin information and the current-plugin stack."""

    def __init__(self) -> None:
        self._registered: Dict[str, PluginInfo] = {}
        self._current: List[str] = []

    def register(self, info: PluginInfo) -> None:
        """Record a plugin as registered (initialized)."""
        self._registered[info.basename] = info

    def unregister(self, basename: str) -> None:
        self._registered.pop(basename, None)

    def is_registered(self, basename: Optional[str]) -> bool:
        """Determine if a plugin has been registered."""
        return basename is not None and basename in self._registered

    def ensure_registered(self, basename: Optional[str]) -> None:
        """
        Make sure a plugin has been registered.

        Raises:
            PluginNotRegisteredError: If it has not
        """
        if not self.is_registered(basename):
            raise PluginNotRegisteredError(basename)

    def registered(self) -> List[str]:
        """Basenames of registered plugins, in registration order."""
        return list(self._registered)

    def info(self, basename: Optional[str] = None) -> Optional[PluginInfo]:
        """
        Get a registered plugin's information.

        Args:
            basename: Plugin basename (defaults to the current plugin)

        Returns:
            The plugin's info, or None if it is not registered
        """
        if basename is None:
            basename = self.get_current()
        if basename is None:
            return None
        return self._registered.get(basename)

    def get_current(self) -> Optional[str]:
        """Basename of the currently executing plugin, or None."""
        return self._current[0] if self._current else None

    def push_current(self, basename: str) -> None:
        self._current.insert(0, basename)

    def pop_current(self) -> Optional[str]:
        """Remove and return the current plugin, or None if the stack is empty."""
        return self._current.pop(0) if self._current else None

    @contextmanager
    def current(self, basename: str) -> Generator[str, None, None]:
        """
        Make a plugin current for the duration of a block.

        Example:
            >>> with context.current("timecard"):
            >>>     assert context.get_current() == "timecard"
        """
        self.push_current(basename)
        try:
            yield basename
        finally:
            self.pop_current()

    def clear(self) -> None:
        self._registered.clear()
        self._current.clear()
