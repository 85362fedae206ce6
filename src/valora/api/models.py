"""
API Request/Response Models
===========================
Pydantic models for request validation. Field names are snake_case in Python
and camelCase on the wire (``alias``).
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from valora.chat.parser import ChatFormat
from valora.core.memory_model import ChatImportRequest, ChatMessage, parse_timestamp
from valora.events.schemas import WebhookEvent
from valora.storage.memory_exporter import ExportFormat


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Chat import
# =============================================================================

class ChatMessageModel(WireModel):
    participant: str
    content: str
    timestamp: Optional[datetime] = None


class ChatImportBody(WireModel):
    """Request model for importing a structured conversation."""
    conversation_id: str = Field(..., alias="conversationId", min_length=1)
    messages: List[ChatMessageModel]
    source: str
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None
    context: Optional[str] = None

    def to_request(self) -> ChatImportRequest:
        return ChatImportRequest(
            conversation_id=self.conversation_id,
            messages=[
                ChatMessage(
                    participant=m.participant,
                    content=m.content,
                    timestamp=parse_timestamp(m.timestamp),
                )
                for m in self.messages
            ],
            source=self.source,
            tags=list(self.tags or []),
            metadata=dict(self.metadata or {}),
            context=self.context,
        )


class FormatImportBody(WireModel):
    """Request model for importing raw JSON, text or markdown content."""
    content: str
    format: str = Field(..., pattern="^(json|text|markdown)$")
    source: str
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class TextImportBody(WireModel):
    """Request model for importing a pasted transcript through the chat parser."""
    text: str = Field(..., max_length=1_000_000)
    format: Optional[ChatFormat] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    tags: Optional[List[str]] = None


# =============================================================================
# Export
# =============================================================================

class ExportBundleBody(WireModel):
    memory_ids: List[str] = Field(..., alias="memoryIds")
    format: Optional[ExportFormat] = None

    @field_validator("memory_ids")
    @classmethod
    def validate_uuids(cls, v: List[str]) -> List[str]:
        """Memory ids are UUIDs."""
        for memory_id in v:
            try:
                uuid.UUID(memory_id)
            except ValueError:
                raise ValueError(f'Invalid memory id "{memory_id}" (must be a UUID)')
        return v


# =============================================================================
# Memories
# =============================================================================

class CreateMemoryBody(WireModel):
    content: str = Field(..., max_length=100_000)
    source: str
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None


class UpdateMemoryBody(WireModel):
    content: Optional[str] = Field(default=None, max_length=100_000)
    source: Optional[str] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# =============================================================================
# Webhooks
# =============================================================================

class RetryPolicyModel(WireModel):
    max_retries: int = Field(..., alias="maxRetries", ge=0, le=10)
    backoff_ms: int = Field(..., alias="backoffMs", ge=100, le=30000)
    timeout_ms: int = Field(..., alias="timeoutMs", ge=1000, le=60000)

    def to_wire(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


def _check_url(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid url")
    return v


class WebhookBody(WireModel):
    """Request model for registering a webhook."""
    url: str
    events: List[WebhookEvent] = Field(..., min_length=1)
    headers: Optional[Dict[str, str]] = None
    retry_policy: Optional[RetryPolicyModel] = Field(default=None, alias="retryPolicy")
    enabled: bool = True
    secret: Optional[str] = Field(default=None, max_length=256)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _check_url(v)


class WebhookUpdateBody(WireModel):
    """Partial webhook update; omitted fields are left unchanged."""
    url: Optional[str] = None
    events: Optional[List[WebhookEvent]] = Field(default=None, min_length=1)
    headers: Optional[Dict[str, str]] = None
    retry_policy: Optional[RetryPolicyModel] = Field(default=None, alias="retryPolicy")
    enabled: Optional[bool] = None
    secret: Optional[str] = Field(default=None, max_length=256)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


# =============================================================================
# Responses
# =============================================================================

class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
    memories: int
    webhooks: int
    plugins: int
    timestamp: str
