"""
EventBus - Domain Event Fan-out
===============================

Single entry point for Valora domain events. Publishing an event delivers it
to two kinds of observers:

    - webhook subscriptions (``WebhookManager``), over HTTP with retries
    - in-process plugins (``PluginManager``), by capability

Both observers filter before invoking: webhooks on ``enabled`` and their
event list, plugins on ``enabled`` and their capability flags.

Callers on a request path use ``publish_nowait`` so a slow or dead subscriber
never delays or fails the domain operation. ``drain`` waits for those
background deliveries (application shutdown, tests).

Example:
    ```python
    bus = EventBus(webhook_manager=webhooks, plugin_manager=plugins)

    bus.publish_nowait("memory.created", memory.to_dict())

    # On shutdown
    await bus.drain()
    ```
"""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Set, Union

from loguru import logger

from valora.core.exceptions import ValidationError
from valora.core.memory_model import format_timestamp
from .plugin_manager import PluginManager
from .schemas import EVENT_TYPES, WebhookEvent
from .webhook_manager import WebhookDelivery, WebhookManager


@dataclass
class Event:
    """A published domain event."""

    type: str
    data: Any
    id: str = field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:12]}")
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "timestamp": format_timestamp(self.timestamp),
        }


@dataclass
class PublishResult:
    """Outcome of one ``publish`` call."""

    event: Event
    deliveries: List[WebhookDelivery] = field(default_factory=list)
    plugins_notified: int = 0


class EventBus:
    """
    Fans events out to webhooks and plugins concurrently.

    Either manager may be omitted; the bus then only serves the other.
    """

    def __init__(
        self,
        webhook_manager: Optional[WebhookManager] = None,
        plugin_manager: Optional[PluginManager] = None,
        history_size: int = 1000,
    ):
        self._webhook_manager = webhook_manager
        self._plugin_manager = plugin_manager

        self._pending: Set[asyncio.Task] = set()
        self._history: Deque[Event] = deque(maxlen=history_size)

        # Metrics
        self._events_published = 0
        self._events_failed = 0

    @property
    def webhook_manager(self) -> Optional[WebhookManager]:
        return self._webhook_manager

    @property
    def plugin_manager(self) -> Optional[PluginManager]:
        return self._plugin_manager

    async def publish(self, event_type: Union[str, WebhookEvent], data: Any) -> PublishResult:
        """
        Deliver an event to webhooks and plugins and wait for both to settle.

        Raises:
            ValidationError: If ``event_type`` is not one of the known events.
                Delivery failures are never raised.
        """
        event = Event(type=self._validate(event_type), data=data)
        self._events_published += 1
        self._history.append(event)

        webhook_task = self._notify_webhooks(event)
        plugin_task = self._notify_plugins(event)
        deliveries, plugins_notified = await asyncio.gather(webhook_task, plugin_task)

        logger.debug(
            f"[EventBus] Published {event.type} ({event.id}): "
            f"{len(deliveries)} webhook deliveries, {plugins_notified} plugins"
        )

        return PublishResult(
            event=event,
            deliveries=deliveries,
            plugins_notified=plugins_notified,
        )

    def publish_nowait(
        self, event_type: Union[str, WebhookEvent], data: Any
    ) -> asyncio.Task:
        """
        Schedule ``publish`` on the running loop and return immediately.

        The event type is validated synchronously so a typo still fails at
        the call site.
        """
        self._validate(event_type)
        task = asyncio.create_task(self.publish(event_type, data))
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    async def drain(self) -> None:
        """Wait until every event scheduled with ``publish_nowait`` is delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._events_failed += 1
            logger.error(f"[EventBus] Background publish failed: {exc}")

    def _validate(self, event_type: Union[str, WebhookEvent]) -> str:
        value = event_type.value if isinstance(event_type, WebhookEvent) else event_type
        if value not in EVENT_TYPES:
            raise ValidationError("event", f"Unknown event type {value!r}", value)
        return value

    async def _notify_webhooks(self, event: Event) -> List[WebhookDelivery]:
        if self._webhook_manager is None:
            return []
        try:
            return await self._webhook_manager.notify_webhooks(event.type, event.data)
        except Exception as e:
            logger.error(f"[EventBus] Webhook fan-out failed for {event.type}: {e}")
            return []

    async def _notify_plugins(self, event: Event) -> int:
        if self._plugin_manager is None:
            return 0
        try:
            return await self._plugin_manager.notify(event.type, event.data)
        except Exception as e:
            logger.error(f"[EventBus] Plugin fan-out failed for {event.type}: {e}")
            return 0

    def get_history(self, event_type: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        history = list(self._history)
        if event_type:
            history = [e for e in history if e.type == event_type]
        return [e.to_dict() for e in history[-limit:]]

    def get_metrics(self) -> Dict[str, Any]:
        """Get current EventBus metrics."""
        return {
            "events_published": self._events_published,
            "events_failed": self._events_failed,
            "pending": len(self._pending),
            "history_size": len(self._history),
        }


__all__ = ["Event", "EventBus", "PublishResult"]
