"""
Valora Events Module
====================

Domain event fan-out to webhooks and plugins.

Components:
    - EventBus: publishes an event to both observer kinds
    - WebhookManager: HTTP delivery with retries and backoff
    - PluginManager: capability-filtered in-process observers
    - integration: typed emit_* helpers

Events:
    - memory.created / memory.updated / memory.deleted
    - chat.imported
    - search.performed
    - export.completed
"""

from .schemas import EVENT_TYPES, WebhookEvent
from .webhook_manager import (
    RetryPolicy,
    WebhookDelivery,
    WebhookManager,
    WebhookSignature,
    WebhookSubscription,
)
from .plugin_manager import (
    PluginCapabilities,
    PluginManager,
    ValoraPlugin,
)
from .event_bus import Event, EventBus, PublishResult
from .integration import (
    emit_event,
    emit_memory_created,
    emit_memory_updated,
    emit_memory_deleted,
    emit_chat_imported,
    emit_search_performed,
    emit_export_completed,
)

__all__ = [
    # Schemas
    "EVENT_TYPES",
    "WebhookEvent",
    # Webhooks
    "RetryPolicy",
    "WebhookDelivery",
    "WebhookManager",
    "WebhookSignature",
    "WebhookSubscription",
    # Plugins
    "PluginCapabilities",
    "PluginManager",
    "ValoraPlugin",
    # Bus
    "Event",
    "EventBus",
    "PublishResult",
    # Integration
    "emit_event",
    "emit_memory_created",
    "emit_memory_updated",
    "emit_memory_deleted",
    "emit_chat_imported",
    "emit_search_performed",
    "emit_export_completed",
]
