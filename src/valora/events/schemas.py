"""
Event Schemas
=============
The fixed set of domain events Valora fans out to webhooks and plugins.

Event data shapes:
    memory.created / memory.updated / memory.deleted -> a full Memory dict
    chat.imported     -> the normalized conversation dict
    search.performed  -> {"query": str, "results": [Memory dict, ...]}
    export.completed  -> {"memoryIds": [...], "format": str, "result": str}
"""

from enum import Enum
from typing import List, Union


class WebhookEvent(str, Enum):
    MEMORY_CREATED = "memory.created"
    MEMORY_UPDATED = "memory.updated"
    MEMORY_DELETED = "memory.deleted"
    CHAT_IMPORTED = "chat.imported"
    SEARCH_PERFORMED = "search.performed"
    EXPORT_COMPLETED = "export.completed"


EVENT_TYPES: List[str] = [e.value for e in WebhookEvent]

# Plugin capability flag that must be set for a plugin to receive an event
EVENT_CAPABILITIES = {
    WebhookEvent.MEMORY_CREATED: "memory_operations",
    WebhookEvent.MEMORY_UPDATED: "memory_operations",
    WebhookEvent.MEMORY_DELETED: "memory_operations",
    WebhookEvent.CHAT_IMPORTED: "chat_operations",
    WebhookEvent.SEARCH_PERFORMED: "search_operations",
    WebhookEvent.EXPORT_COMPLETED: "export_operations",
}


def is_valid_event_type(event: Union[str, WebhookEvent]) -> bool:
    value = event.value if isinstance(event, WebhookEvent) else event
    return value in EVENT_TYPES


def to_event(event: Union[str, WebhookEvent]) -> WebhookEvent:
    """Coerce a string to ``WebhookEvent``; raises ValueError when unknown."""
    if isinstance(event, WebhookEvent):
        return event
    return WebhookEvent(event)


__all__ = [
    "WebhookEvent",
    "EVENT_TYPES",
    "EVENT_CAPABILITIES",
    "is_valid_event_type",
    "to_event",
]
