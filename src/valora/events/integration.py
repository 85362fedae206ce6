"""
Event Integration Helpers
=========================

Typed helpers for emitting Valora domain events from services and routes.

Every helper tolerates a missing bus and never raises. By default delivery
is scheduled in the background; pass ``wait=True`` to block until webhooks
and plugins have settled.

Usage:
    ```python
    from valora.events.integration import emit_memory_created

    await emit_memory_created(container.event_bus, memory)
    ```
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from loguru import logger

from valora.core.memory_model import ChatImportRequest, Memory
from .event_bus import EventBus
from .schemas import WebhookEvent


# =============================================================================
# Generic Event Emission
# =============================================================================

async def emit_event(
    event_bus: Optional[EventBus],
    event_type: Union[str, WebhookEvent],
    data: Any,
    wait: bool = False,
) -> None:
    """
    Emit an event to the EventBus if available.

    Args:
        event_bus: EventBus instance (may be None)
        event_type: One of the known event types
        data: Event payload data
        wait: Await delivery instead of scheduling it
    """
    if event_bus is None:
        return

    try:
        if wait:
            await event_bus.publish(event_type, data)
        else:
            event_bus.publish_nowait(event_type, data)
    except Exception as e:
        logger.warning(f"[EventIntegration] Failed to emit {event_type}: {e}")


# =============================================================================
# Memory Events
# =============================================================================

async def emit_memory_created(
    event_bus: Optional[EventBus], memory: Memory, wait: bool = False
) -> None:
    await emit_event(event_bus, WebhookEvent.MEMORY_CREATED, memory.to_dict(), wait)


async def emit_memory_updated(
    event_bus: Optional[EventBus], memory: Memory, wait: bool = False
) -> None:
    await emit_event(event_bus, WebhookEvent.MEMORY_UPDATED, memory.to_dict(), wait)


async def emit_memory_deleted(
    event_bus: Optional[EventBus], memory: Memory, wait: bool = False
) -> None:
    await emit_event(event_bus, WebhookEvent.MEMORY_DELETED, memory.to_dict(), wait)


# =============================================================================
# Chat, Search and Export Events
# =============================================================================

async def emit_chat_imported(
    event_bus: Optional[EventBus],
    conversation: ChatImportRequest,
    wait: bool = False,
) -> None:
    await emit_event(event_bus, WebhookEvent.CHAT_IMPORTED, conversation.to_dict(), wait)


async def emit_search_performed(
    event_bus: Optional[EventBus],
    query: str,
    results: List[Memory],
    wait: bool = False,
) -> None:
    data: Dict[str, Any] = {
        "query": query,
        "results": [m.to_dict() for m in results],
    }
    await emit_event(event_bus, WebhookEvent.SEARCH_PERFORMED, data, wait)


async def emit_export_completed(
    event_bus: Optional[EventBus],
    memory_ids: List[str],
    format: str,
    result: str,
    wait: bool = False,
) -> None:
    data = {"memoryIds": list(memory_ids), "format": format, "result": result}
    await emit_event(event_bus, WebhookEvent.EXPORT_COMPLETED, data, wait)


__all__ = [
    "emit_event",
    "emit_memory_created",
    "emit_memory_updated",
    "emit_memory_deleted",
    "emit_chat_imported",
    "emit_search_performed",
    "emit_export_completed",
]
