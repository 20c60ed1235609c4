"""
Event hooks.

Plugins hook callbacks onto named events; the host signals an event to run
every hooked callback in the order it was hooked. Callbacks run inside the
owning plugin's scope so plugin helpers resolve to the right plugin.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ticketry.plugins.context import PluginContext

logger = logging.getLogger(__name__)

EVENT_PLUGIN_INIT = "EVENT_PLUGIN_INIT"


@dataclass
class EventHook:
    """A callback hooked onto an event."""

    callback: Callable[..., Any]
    plugin: Optional[str] = None


class EventManager:
    """Registry of event hooks."""

    def __init__(self, context: Optional[PluginContext] = None):
        self.context = context or PluginContext()
        self._hooks: Dict[str, List[EventHook]] = {}

    def hook(
        self, event: str, callback: Callable[..., Any], plugin: Optional[str] = None
    ) -> None:
        """
        Hook a callback onto an event.

        Args:
            event: Event name
            callback: Callable run when the event is signalled
            plugin: Basename of the plugin that owns the callback
        """
        if not callable(callback):
            raise TypeError(f"Event callback for {event} is not callable: {callback!r}")
        self._hooks.setdefault(event, []).append(EventHook(callback, plugin))
        logger.debug(f"Hooked {getattr(callback, '__name__', callback)} onto {event}")

    def is_hooked(self, event: str) -> bool:
        return bool(self._hooks.get(event))

    def hooks(self, event: str) -> List[EventHook]:
        return list(self._hooks.get(event, []))

    def signal(self, event: str, *args: Any, **kwargs: Any) -> List[Any]:
        """
        Signal an event.

        Returns:
            The callbacks' return values, in hook order
        """
        results = []
        for hook in self.hooks(event):
            if hook.plugin is None:
                results.append(hook.callback(*args, **kwargs))
                continue
            with self.context.current(hook.plugin):
                results.append(hook.callback(*args, **kwargs))
        return results

    def clear(self, event: Optional[str] = None) -> None:
        """Remove the hooks of one event, or of all events."""
        if event is None:
            self._hooks.clear()
        else:
            self._hooks.pop(event, None)

    def unhook_plugin(self, plugin: str) -> int:
        """
        Remove every hook owned by a plugin.

        Returns:
            The number of hooks removed
        """
        removed = 0
        for event in list(self._hooks):
            kept = [hook for hook in self._hooks[event] if hook.plugin != plugin]
            removed += len(self._hooks[event]) - len(kept)
            if kept:
                self._hooks[event] = kept
            else:
                del self._hooks[event]
        if removed:
            logger.debug(f"Removed {removed} hook(s) owned by {plugin}")
        return removed
