"""
WebhookManager - Webhook Delivery with Retry Logic
==================================================

Owns the registry of webhook subscriptions and delivers Valora domain events
to them over HTTP.

Features:
    - Synchronous registry mutations (register, update, enable, disable, delete)
    - Strict per-event subscription filtering
    - Concurrent, independent delivery per subscriber
    - Bounded retries with exponential backoff and per-attempt timeouts
    - Optional HMAC-SHA256 signatures for subscribers with a shared secret
    - Bounded in-memory delivery history for debugging

The registry is volatile. Subscriptions live as long as the process; callers
that need durability must re-register them on startup.

Delivery state per subscriber:
    pending -> sending -> delivered
                       -> retry-scheduled -> sending ...
                       -> failed (retries exhausted, logged, dropped)

Example:
    ```python
    manager = WebhookManager()

    subscription = manager.register_webhook(
        url="https://example.com/valora-webhook",
        events=["memory.created", "chat.imported"],
        secret="my_shared_secret",
    )

    await manager.notify_webhooks("memory.created", memory.to_dict())
    status = await manager.get_webhook_status(subscription.id)
    ```

Webhook Payload Format:
    ```json
    {
        "event": "memory.created",
        "timestamp": "2024-01-01T00:00:00.000Z",
        "data": {"id": "...", "content": "..."},
        "source": "valora",
        "webhookId": "webhook_1704067200000_k3j9x0a1b"
    }
    ```
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional, Union

import aiohttp
from loguru import logger

from valora.core.exceptions import ValidationError
from valora.core.memory_model import format_timestamp
from .schemas import EVENT_TYPES, WebhookEvent


DEFAULT_USER_AGENT = "Valora-Webhook/1.0"


# =============================================================================
# Retry Policy with Exponential Backoff
# =============================================================================

@dataclass
class RetryPolicy:
    """
    Retry behavior for webhook deliveries.

    A subscriber receives at most ``max_retries + 1`` attempts. After the
    failed attempt with 0-based index ``n`` the manager waits
    ``backoff_ms * 2 ** n`` milliseconds before trying again.

    Attributes:
        max_retries: Retries after the first attempt
        backoff_ms: Base backoff delay in milliseconds
        timeout_ms: Per-attempt HTTP timeout in milliseconds
    """
    max_retries: int = 3
    backoff_ms: int = 1000
    timeout_ms: int = 10000

    def get_delay(self, attempt: int) -> float:
        """
        Delay in seconds to wait after a failed attempt.

        Args:
            attempt: 0-based index of the attempt that just failed
        """
        return self.backoff_ms * (2 ** attempt) / 1000.0

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxRetries": self.max_retries,
            "backoffMs": self.backoff_ms,
            "timeoutMs": self.timeout_ms,
        }

    @classmethod
    def from_dict(
        cls,
        data: Optional[Dict[str, Any]],
        defaults: Optional["RetryPolicy"] = None,
    ) -> "RetryPolicy":
        base = defaults or cls()
        data = data or {}
        return cls(
            max_retries=int(data.get("maxRetries", base.max_retries)),
            backoff_ms=int(data.get("backoffMs", base.backoff_ms)),
            timeout_ms=int(data.get("timeoutMs", base.timeout_ms)),
        )


# =============================================================================
# Webhook Subscription
# =============================================================================

@dataclass
class WebhookSubscription:
    """
    A registered webhook endpoint.

    Attributes:
        id: ``webhook_<ms>_<random>`` identifier
        url: Delivery target
        events: Event types to deliver; an event outside this list is never sent
        headers: Extra HTTP headers merged into every delivery
        retry_policy: Retry behavior for this subscriber
        enabled: Disabled subscriptions stay registered but receive nothing
        secret: Optional shared secret used to sign deliveries
    """
    id: str
    url: str
    events: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    enabled: bool = True
    secret: Optional[str] = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def matches_event(self, event_type: str) -> bool:
        """Check if this subscription should receive the given event type."""
        return event_type in self.events

    def to_dict(self, scrub_secret: bool = True) -> Dict[str, Any]:
        """Convert to the API representation, hiding the secret by default."""
        data = {
            "id": self.id,
            "url": self.url,
            "events": list(self.events),
            "headers": dict(self.headers),
            "retryPolicy": self.retry_policy.to_dict(),
            "enabled": self.enabled,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }
        if self.secret:
            data["secret"] = "***" if scrub_secret else self.secret
        return data


# =============================================================================
# Webhook Delivery Record
# =============================================================================

@dataclass
class WebhookDelivery:
    """
    Record of one event delivery to one subscriber.

    Attributes:
        id: Unique delivery identifier
        webhook_id: Subscriber the event was sent to
        event: Event type
        status: pending, sending, retrying, delivered or failed
        http_status: Last HTTP status received, if any
        attempts: Number of HTTP attempts made
        error_message: Last error, if any
    """
    id: str
    webhook_id: str
    event: str
    status: str = "pending"
    http_status: Optional[int] = None
    attempts: int = 0
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "delivered"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "webhookId": self.webhook_id,
            "event": self.event,
            "status": self.status,
            "httpStatus": self.http_status,
            "attempts": self.attempts,
            "createdAt": format_timestamp(self.created_at),
            "completedAt": format_timestamp(self.completed_at) if self.completed_at else None,
            "errorMessage": self.error_message,
        }


# =============================================================================
# Webhook Signature (HMAC)
# =============================================================================

class WebhookSignature:
    """
    HMAC-SHA256 signature generation and verification for webhooks.

    The signature is computed as:
        hmac_sha256(secret, timestamp + "." + payload)

    and sent in the X-Valora-Signature header:
        X-Valora-Signature: t=<timestamp>,v1=<signature>
    """

    SIGNATURE_HEADER = "X-Valora-Signature"
    ALGORITHM = "sha256"
    VERSION_PREFIX = "v1"
    TOLERANCE_SECONDS = 300

    @classmethod
    def sign(
        cls,
        payload: str,
        secret: str,
        timestamp: Optional[int] = None,
    ) -> str:
        """
        Generate the signature header value for a payload.

        Returns:
            "t=<timestamp>,v1=<hex digest>"
        """
        if timestamp is None:
            timestamp = int(time.time())

        message = f"{timestamp}.{payload}"
        signature = hmac.new(
            secret.encode(),
            message.encode(),
            getattr(hashlib, cls.ALGORITHM)
        ).hexdigest()

        return f"t={timestamp},{cls.VERSION_PREFIX}={signature}"

    @classmethod
    def verify(cls, payload: str, secret: str, signature_header: str) -> bool:
        """
        Verify a received signature header.

        Returns:
            True if the signature matches and the timestamp is fresh
        """
        try:
            timestamp = None
            signature = None

            for part in signature_header.split(","):
                key, value = part.split("=", 1)
                if key == "t":
                    timestamp = int(value)
                elif key == cls.VERSION_PREFIX:
                    signature = value

            if timestamp is None or signature is None:
                return False

            now = int(time.time())
            if abs(now - timestamp) > cls.TOLERANCE_SECONDS:
                logger.warning(
                    f"[WebhookSignature] Timestamp too old: {timestamp} vs {now}"
                )
                return False

            expected = cls.sign(payload, secret, timestamp)
            return hmac.compare_digest(signature_header, expected)

        except (ValueError, AttributeError) as e:
            logger.warning(f"[WebhookSignature] Verification error: {e}")
            return False


# =============================================================================
# Webhook Manager
# =============================================================================

def generate_webhook_id() -> str:
    return f"webhook_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class WebhookManager:
    """
    Registry and delivery engine for webhook subscriptions.

    One instance is built per process (see ``valora.core.container``) and
    injected wherever it is needed. Tests build a fresh instance each.
    """

    def __init__(
        self,
        default_retry_policy: Optional[RetryPolicy] = None,
        max_history_size: int = 1000,
        user_agent: str = DEFAULT_USER_AGENT,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Args:
            default_retry_policy: Policy for subscriptions registered without one
            max_history_size: Delivery records kept per subscription
            user_agent: User-Agent header sent with every delivery
            http_session: Optional aiohttp session; one is created lazily otherwise
        """
        self._default_retry_policy = default_retry_policy or RetryPolicy()
        self._max_history_size = max_history_size
        self._user_agent = user_agent

        self._webhooks: Dict[str, WebhookSubscription] = {}
        self._history: Dict[str, List[WebhookDelivery]] = {}

        self._session = http_session
        self._owns_session = http_session is None

        # Metrics
        self._deliveries_total = 0
        self._deliveries_success = 0
        self._deliveries_failed = 0

    @property
    def default_retry_policy(self) -> RetryPolicy:
        return self._default_retry_policy

    async def close(self) -> None:
        """Close the HTTP session if this manager created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
        logger.info("[WebhookManager] Closed")

    # ======================================================================
    # Registry
    # ======================================================================

    def register_webhook(
        self,
        url: str,
        events: List[Union[str, WebhookEvent]],
        headers: Optional[Dict[str, str]] = None,
        retry_policy: Optional[Union[RetryPolicy, Dict[str, Any]]] = None,
        enabled: bool = True,
        secret: Optional[str] = None,
    ) -> WebhookSubscription:
        """
        Register a new webhook endpoint.

        Raises:
            ValidationError: If the URL is empty or an event type is unknown
        """
        if not url:
            raise ValidationError("url", "URL is required")

        subscription = WebhookSubscription(
            id=generate_webhook_id(),
            url=url,
            events=self._normalize_events(events),
            headers=dict(headers or {}),
            retry_policy=self._coerce_policy(retry_policy),
            enabled=enabled,
            secret=secret or None,
        )

        self._webhooks[subscription.id] = subscription
        self._history[subscription.id] = []

        logger.info(
            f"[WebhookManager] Registered webhook {subscription.id} -> {url} "
            f"for events: {subscription.events}"
        )

        return subscription

    def update_webhook(self, webhook_id: str, **changes: Any) -> Optional[WebhookSubscription]:
        """
        Update fields of a subscription.

        Accepted keyword arguments: url, events, headers, retry_policy,
        enabled, secret. ``None`` values are ignored.

        Returns:
            The updated subscription, or None if the id is unknown
        """
        subscription = self._webhooks.get(webhook_id)
        if subscription is None:
            return None

        if changes.get("url") is not None:
            subscription.url = changes["url"]
        if changes.get("events") is not None:
            subscription.events = self._normalize_events(changes["events"])
        if changes.get("headers") is not None:
            subscription.headers = dict(changes["headers"])
        if changes.get("retry_policy") is not None:
            policy = changes["retry_policy"]
            if isinstance(policy, dict):
                policy = RetryPolicy.from_dict(policy, subscription.retry_policy)
            subscription.retry_policy = policy
        if changes.get("enabled") is not None:
            subscription.enabled = bool(changes["enabled"])
        if changes.get("secret") is not None:
            subscription.secret = changes["secret"] or None

        subscription.updated_at = datetime.now(timezone.utc)

        logger.info(f"[WebhookManager] Updated webhook {webhook_id}")

        return subscription

    def enable_webhook(self, webhook_id: str) -> bool:
        return self._set_enabled(webhook_id, True)

    def disable_webhook(self, webhook_id: str) -> bool:
        return self._set_enabled(webhook_id, False)

    def _set_enabled(self, webhook_id: str, enabled: bool) -> bool:
        subscription = self._webhooks.get(webhook_id)
        if subscription is None:
            return False
        subscription.enabled = enabled
        subscription.updated_at = datetime.now(timezone.utc)
        logger.info(
            f"[WebhookManager] {'Enabled' if enabled else 'Disabled'} webhook {webhook_id}"
        )
        return True

    def delete_webhook(self, webhook_id: str) -> bool:
        """
        Remove a subscription and its delivery history.

        Returns:
            True if the webhook existed
        """
        if webhook_id not in self._webhooks:
            return False

        del self._webhooks[webhook_id]
        self._history.pop(webhook_id, None)

        logger.info(f"[WebhookManager] Deleted webhook {webhook_id}")

        return True

    def get_webhook(self, webhook_id: str) -> Optional[WebhookSubscription]:
        return self._webhooks.get(webhook_id)

    def list_webhooks(
        self,
        enabled_only: bool = False,
        event_type: Optional[str] = None,
    ) -> List[WebhookSubscription]:
        """
        List registered webhooks with optional filtering.

        Args:
            enabled_only: Only return enabled webhooks
            event_type: Only return webhooks subscribed to this event
        """
        webhooks = list(self._webhooks.values())

        if enabled_only:
            webhooks = [w for w in webhooks if w.enabled]

        if event_type:
            webhooks = [w for w in webhooks if w.matches_event(event_type)]

        return webhooks

    def get_status_counts(self) -> Dict[str, int]:
        total = len(self._webhooks)
        enabled = sum(1 for w in self._webhooks.values() if w.enabled)
        return {"total": total, "enabled": enabled, "disabled": total - enabled}

    def _normalize_events(self, events: List[Union[str, WebhookEvent]]) -> List[str]:
        if not events:
            raise ValidationError("events", "At least one event type is required")
        normalized: List[str] = []
        for event in events:
            value = event.value if isinstance(event, WebhookEvent) else str(event)
            if value not in EVENT_TYPES:
                raise ValidationError("events", f"Unknown event type {value!r}", value)
            if value not in normalized:
                normalized.append(value)
        return normalized

    def _coerce_policy(
        self, retry_policy: Optional[Union[RetryPolicy, Dict[str, Any]]]
    ) -> RetryPolicy:
        if isinstance(retry_policy, RetryPolicy):
            return retry_policy
        return RetryPolicy.from_dict(retry_policy, self._default_retry_policy)

    # ======================================================================
    # Event Delivery
    # ======================================================================

    async def notify_webhooks(
        self,
        event: Union[str, WebhookEvent],
        data: Any,
    ) -> List[WebhookDelivery]:
        """
        Deliver an event to every enabled subscription listening for it.

        Subscribers are served concurrently; each runs its own retry
        schedule. Returns once every delivery has settled. Delivery
        failures are recorded and logged, never raised.

        Returns:
            One delivery record per matching subscriber
        """
        event_type = event.value if isinstance(event, WebhookEvent) else event

        matching = [
            w for w in self._webhooks.values()
            if w.enabled and w.matches_event(event_type)
        ]

        if not matching:
            return []

        tasks = [
            self._deliver_to_webhook(webhook, event_type, data)
            for webhook in matching
        ]

        results = await asyncio.gather(*tasks, return_exceptions=True)

        deliveries = []
        for webhook, result in zip(matching, results):
            if isinstance(result, WebhookDelivery):
                deliveries.append(result)
            else:
                logger.error(
                    f"[WebhookManager] Unexpected error delivering {event_type} "
                    f"to {webhook.id}: {result}"
                )

        return deliveries

    async def _deliver_to_webhook(
        self,
        webhook: WebhookSubscription,
        event_type: str,
        data: Any,
    ) -> WebhookDelivery:
        """Deliver one event to one subscriber, retrying per its policy."""
        delivery = WebhookDelivery(
            id=f"dlv_{uuid.uuid4().hex[:12]}",
            webhook_id=webhook.id,
            event=event_type,
        )

        payload_str = json.dumps(self._build_payload(webhook, event_type, data), default=str)
        policy = webhook.retry_policy

        for attempt in range(policy.max_retries + 1):
            delivery.attempts = attempt + 1
            delivery.status = "sending"

            if await self._attempt_delivery(webhook, payload_str, delivery):
                delivery.status = "delivered"
                delivery.error_message = None
                delivery.completed_at = datetime.now(timezone.utc)
                self._deliveries_success += 1
                break

            if attempt < policy.max_retries:
                delivery.status = "retrying"
                delay = policy.get_delay(attempt)
                logger.warning(
                    f"[WebhookManager] Retrying {webhook.id} "
                    f"(attempt {attempt + 1}/{policy.max_retries + 1}) after {delay}s"
                )
                await asyncio.sleep(delay)
            else:
                delivery.status = "failed"
                delivery.completed_at = datetime.now(timezone.utc)
                self._deliveries_failed += 1
                logger.error(
                    f"[WebhookManager] Webhook {webhook.id} failed after "
                    f"{delivery.attempts} attempts for {event_type}: "
                    f"{delivery.error_message or delivery.http_status}"
                )

        self._add_to_history(webhook.id, delivery)
        self._deliveries_total += 1

        return delivery

    async def _attempt_delivery(
        self,
        webhook: WebhookSubscription,
        payload_str: str,
        delivery: WebhookDelivery,
    ) -> bool:
        """
        Make a single HTTP POST to the subscriber.

        Returns:
            True on a 2xx response. Non-2xx, timeouts and connection errors
            return False so the caller can schedule a retry.
        """
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            **webhook.headers,
        }
        if webhook.secret:
            headers[WebhookSignature.SIGNATURE_HEADER] = WebhookSignature.sign(
                payload_str, webhook.secret
            )

        session = self._get_session()

        try:
            async with session.post(
                webhook.url,
                data=payload_str,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=webhook.retry_policy.timeout_seconds),
            ) as response:
                delivery.http_status = response.status
                success = 200 <= response.status < 300

                if success:
                    logger.debug(
                        f"[WebhookManager] Delivered {delivery.event} to {webhook.id} "
                        f"(status={response.status})"
                    )
                else:
                    delivery.error_message = f"HTTP {response.status}"
                    logger.warning(
                        f"[WebhookManager] Webhook {webhook.id} returned "
                        f"status {response.status}"
                    )

                return success

        except asyncio.TimeoutError:
            delivery.error_message = "Timeout"
            return False
        except (aiohttp.ClientError, OSError) as e:
            delivery.error_message = f"HTTP error: {e}"
            return False

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _build_payload(
        self,
        webhook: WebhookSubscription,
        event_type: str,
        data: Any,
    ) -> Dict[str, Any]:
        return {
            "event": event_type,
            "timestamp": format_timestamp(datetime.now(timezone.utc)),
            "data": data,
            "source": "valora",
            "webhookId": webhook.id,
        }

    # ======================================================================
    # Delivery History
    # ======================================================================

    def _add_to_history(self, webhook_id: str, delivery: WebhookDelivery) -> None:
        """Add delivery to history with size limiting."""
        if webhook_id not in self._webhooks:
            # Deleted while the delivery was in flight
            return

        history = self._history.setdefault(webhook_id, [])
        history.append(delivery)

        if len(history) > self._max_history_size:
            self._history[webhook_id] = history[-self._max_history_size:]

    async def get_delivery_history(
        self,
        webhook_id: str,
        limit: int = 100,
        status: Optional[str] = None,
    ) -> List[WebhookDelivery]:
        """
        Get delivery history for a webhook, most recent first.

        Args:
            webhook_id: Webhook ID
            limit: Maximum records to return
            status: Filter by status (optional)
        """
        history = self._history.get(webhook_id, [])

        if status:
            history = [d for d in history if d.status == status]

        return list(reversed(history[-limit:]))

    async def get_webhook_status(self, webhook_id: str) -> Dict[str, Any]:
        """Get delivery statistics for a webhook; empty dict if unknown."""
        if webhook_id not in self._webhooks:
            return {}

        history = self._history.get(webhook_id, [])

        total = len(history)
        success = sum(1 for d in history if d.status == "delivered")
        failed = sum(1 for d in history if d.status == "failed")

        cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
        recent = [d for d in history if d.created_at >= cutoff]
        recent_success = sum(1 for d in recent if d.status == "delivered")

        return {
            "webhookId": webhook_id,
            "totalDeliveries": total,
            "successfulDeliveries": success,
            "failedDeliveries": failed,
            "successRate": success / total if total > 0 else 0.0,
            "recentDeliveries24h": len(recent),
            "recentSuccessRate24h": recent_success / len(recent) if recent else 0.0,
            "lastDelivery": history[-1].to_dict() if history else None,
        }

    # ======================================================================
    # Metrics
    # ======================================================================

    def get_metrics(self) -> Dict[str, Any]:
        """Get webhook manager metrics."""
        return {
            "total_webhooks": len(self._webhooks),
            "enabled_webhooks": sum(1 for w in self._webhooks.values() if w.enabled),
            "total_deliveries": self._deliveries_total,
            "successful_deliveries": self._deliveries_success,
            "failed_deliveries": self._deliveries_failed,
            "success_rate": (
                self._deliveries_success / self._deliveries_total
                if self._deliveries_total > 0
                else 0.0
            ),
        }


__all__ = [
    "RetryPolicy",
    "WebhookSubscription",
    "WebhookDelivery",
    "WebhookSignature",
    "WebhookManager",
    "generate_webhook_id",
    "DEFAULT_USER_AGENT",
]
