"""
Memory Model
============
Core records handled by Valora: stored memories and normalized chat conversations.

Attributes are snake_case; ``to_dict`` / ``from_dict`` speak the camelCase
wire format used by the HTTP API, the JSON export and the JSON file store.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any, default: Optional[datetime] = None) -> datetime:
    """
    Coerce a wire timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (a trailing ``Z`` is allowed) and
    epoch milliseconds. Anything else falls back to ``default`` or now.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return default or utc_now()
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return default or utc_now()
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return default or utc_now()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return default or utc_now()


def format_timestamp(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def new_memory_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Memory:
    """
    The atomic unit of stored knowledge.

    Chat-derived memories carry ``conversationId``, ``participant``,
    ``messageIndex`` and ``totalMessages`` in ``metadata`` and mirror the
    first two on the record itself.
    """

    id: str
    content: str
    source: str
    timestamp: datetime = field(default_factory=utc_now)
    version: int = 1
    tags: List[str] = field(default_factory=list)
    inferred_tags: Optional[List[str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    content_type: Optional[str] = None
    conversation_id: Optional[str] = None
    participant: Optional[str] = None
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "source": self.source,
            "timestamp": format_timestamp(self.timestamp),
            "version": self.version,
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
        }
        if self.inferred_tags is not None:
            data["inferredTags"] = list(self.inferred_tags)
        if self.content_type is not None:
            data["contentType"] = self.content_type
        if self.conversation_id is not None:
            data["conversationId"] = self.conversation_id
        if self.participant is not None:
            data["participant"] = self.participant
        if self.context is not None:
            data["context"] = self.context
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Memory":
        return cls(
            id=data.get("id") or new_memory_id(),
            content=data.get("content", ""),
            source=data.get("source", "unknown"),
            timestamp=parse_timestamp(data.get("timestamp")),
            version=int(data.get("version", 1)),
            tags=list(data.get("tags") or []),
            inferred_tags=data.get("inferredTags", data.get("inferred_tags")),
            metadata=dict(data.get("metadata") or {}),
            content_type=data.get("contentType", data.get("content_type")),
            conversation_id=data.get("conversationId", data.get("conversation_id")),
            participant=data.get("participant"),
            context=data.get("context"),
        )

    @property
    def message_index(self) -> Optional[int]:
        value = self.metadata.get("messageIndex")
        return value if isinstance(value, int) else None


@dataclass
class ChatMessage:
    """One turn of a conversation."""

    participant: str
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participant": self.participant,
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            participant=data.get("participant", "unknown"),
            content=data.get("content", ""),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass
class ChatImportRequest:
    """A normalized conversation, ready for the chat import service."""

    conversation_id: str
    messages: List[ChatMessage]
    source: str
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "conversationId": self.conversation_id,
            "messages": [m.to_dict() for m in self.messages],
            "source": self.source,
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
        }
        if self.context is not None:
            data["context"] = self.context
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatImportRequest":
        return cls(
            conversation_id=data.get("conversationId") or str(uuid.uuid4()),
            messages=[ChatMessage.from_dict(m) for m in data.get("messages") or []],
            source=data.get("source", "unknown"),
            tags=list(data.get("tags") or []),
            metadata=dict(data.get("metadata") or {}),
            context=data.get("context"),
        )


__all__ = [
    "Memory",
    "ChatMessage",
    "ChatImportRequest",
    "parse_timestamp",
    "format_timestamp",
    "new_memory_id",
    "utc_now",
]
