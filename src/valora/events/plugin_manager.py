"""
Plugin Manager
==============
In-process observers of Valora domain events.

A plugin declares capability flags; the manager only invokes a plugin's hook
when the flag for the event's category is set and the plugin is enabled.
This is the same filter-then-dispatch shape as webhook delivery, and both are
driven from ``valora.events.event_bus.EventBus``.

Hooks receive the event data in wire form (plain dicts, see
``valora.events.schemas``). Hook failures are logged and never propagated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from valora.core.exceptions import PluginError, PluginNotFoundError
from .schemas import EVENT_CAPABILITIES, WebhookEvent, to_event


@dataclass
class PluginCapabilities:
    memory_operations: bool = False
    chat_operations: bool = False
    search_operations: bool = False
    export_operations: bool = False

    def allows(self, event: WebhookEvent) -> bool:
        return bool(getattr(self, EVENT_CAPABILITIES[event]))

    def to_dict(self) -> Dict[str, bool]:
        return {
            "memoryOperations": self.memory_operations,
            "chatOperations": self.chat_operations,
            "searchOperations": self.search_operations,
            "exportOperations": self.export_operations,
        }


@dataclass
class PluginConfig:
    enabled: bool = True
    settings: Dict[str, Any] = field(default_factory=dict)


class ValoraPlugin(ABC):
    """
    Base class for plugins.

    Subclasses set ``name``, ``version``, ``description`` and
    ``capabilities`` and override the hooks they care about. The default
    hooks do nothing.
    """

    name: str = "plugin"
    version: str = "0.0.0"
    description: str = ""
    capabilities: PluginCapabilities = PluginCapabilities()

    @abstractmethod
    async def initialize(self) -> None:
        ...

    async def shutdown(self) -> None:
        pass

    async def on_memory_created(self, memory: Dict[str, Any]) -> None:
        pass

    async def on_memory_updated(self, memory: Dict[str, Any]) -> None:
        pass

    async def on_memory_deleted(self, memory: Dict[str, Any]) -> None:
        pass

    async def on_chat_imported(self, conversation: Dict[str, Any]) -> None:
        pass

    async def on_search_performed(self, search: Dict[str, Any]) -> None:
        pass

    async def on_export_completed(self, export: Dict[str, Any]) -> None:
        pass

    def get_capabilities(self) -> PluginCapabilities:
        return self.capabilities


HOOKS = {
    WebhookEvent.MEMORY_CREATED: "on_memory_created",
    WebhookEvent.MEMORY_UPDATED: "on_memory_updated",
    WebhookEvent.MEMORY_DELETED: "on_memory_deleted",
    WebhookEvent.CHAT_IMPORTED: "on_chat_imported",
    WebhookEvent.SEARCH_PERFORMED: "on_search_performed",
    WebhookEvent.EXPORT_COMPLETED: "on_export_completed",
}


class PluginManager:
    """Registry of plugins and their enabled state."""

    def __init__(self):
        self._plugins: Dict[str, ValoraPlugin] = {}
        self._configs: Dict[str, PluginConfig] = {}

    async def register_plugin(
        self,
        plugin: ValoraPlugin,
        enabled: bool = True,
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize and register a plugin.

        Raises:
            PluginError: If ``initialize()`` fails; the plugin is not registered
        """
        try:
            await plugin.initialize()
        except Exception as e:
            logger.error(f"[PluginManager] Failed to register plugin {plugin.name}: {e}")
            raise PluginError(plugin.name, str(e)) from e

        self._plugins[plugin.name] = plugin
        self._configs[plugin.name] = PluginConfig(enabled=enabled, settings=dict(settings or {}))
        logger.info(f"[PluginManager] Plugin registered: {plugin.name} v{plugin.version}")

    async def shutdown(self) -> None:
        for name, plugin in self._plugins.items():
            try:
                await plugin.shutdown()
            except Exception as e:
                logger.error(f"[PluginManager] Error shutting down plugin {name}: {e}")

    def list_plugins(self) -> List[ValoraPlugin]:
        return list(self._plugins.values())

    def get_plugin(self, name: str) -> Optional[ValoraPlugin]:
        return self._plugins.get(name)

    def is_enabled(self, name: str) -> bool:
        config = self._configs.get(name)
        return bool(config and config.enabled)

    def enable_plugin(self, name: str) -> None:
        self._set_enabled(name, True)

    def disable_plugin(self, name: str) -> None:
        self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> None:
        config = self._configs.get(name)
        if config is None:
            raise PluginNotFoundError(name)
        config.enabled = enabled
        logger.info(f"[PluginManager] Plugin {'enabled' if enabled else 'disabled'}: {name}")

    def describe(self, plugin: ValoraPlugin) -> Dict[str, Any]:
        return {
            "name": plugin.name,
            "version": plugin.version,
            "description": plugin.description,
            "capabilities": plugin.capabilities.to_dict(),
            "enabled": self.is_enabled(plugin.name),
        }

    def get_status_counts(self) -> Dict[str, int]:
        total = len(self._plugins)
        enabled = sum(1 for name in self._plugins if self.is_enabled(name))
        return {"total": total, "enabled": enabled, "disabled": total - enabled}

    async def notify(self, event: Union[str, WebhookEvent], data: Any) -> int:
        """
        Invoke the matching hook on every enabled, capable plugin.

        Plugins run one after another in registration order.

        Returns:
            Number of plugins whose hook completed without error
        """
        event = to_event(event)
        hook_name = HOOKS[event]
        notified = 0

        for name, plugin in list(self._plugins.items()):
            if not self.is_enabled(name) or not plugin.capabilities.allows(event):
                continue
            try:
                await getattr(plugin, hook_name)(data)
                notified += 1
            except Exception as e:
                logger.error(f"[PluginManager] Error in plugin {name} {hook_name}: {e}")

        return notified

    def get_config(self, name: str) -> Optional[Dict[str, Any]]:
        config = self._configs.get(name)
        return asdict(config) if config else None


__all__ = [
    "PluginCapabilities",
    "PluginConfig",
    "ValoraPlugin",
    "PluginManager",
    "HOOKS",
]
