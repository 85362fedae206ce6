"""
Chat Import Service
===================
Persists conversations as linked memory records.

Each message becomes one ``Memory`` carrying ``conversationId``,
``participant``, ``messageIndex`` and ``totalMessages`` in its metadata, so a
conversation can be rebuilt in order regardless of store ordering.

Input tiers:
    - ``import_chat``: an already normalized conversation
    - ``import_from_format("json")``: structured; invalid JSON raises ParseError
    - ``import_from_format("text" | "markdown")``: heuristic; never rejects
      input, degrading to a single opaque memory when no turns are found
"""

from __future__ import annotations

import json
import re
import uuid
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from valora.core.exceptions import ParseError, ValidationError
from valora.core.memory_model import (
    ChatImportRequest,
    ChatMessage,
    Memory,
    new_memory_id,
    parse_timestamp,
    utc_now,
)
from valora.events.event_bus import EventBus
from valora.events.integration import emit_chat_imported, emit_memory_created
from .memory_store import MemoryStore


IMPORT_FORMATS = ("json", "text", "markdown")

CHAT_TAGS = ("chat", "conversation")

_TEXT_MARKERS = {
    "User:": "user",
    "Human:": "user",
    "Assistant:": "assistant",
    "AI:": "assistant",
}

_MARKDOWN_HEADER = re.compile(r"^#{1,3} ")


def merge_tags(*groups: Iterable[str]) -> List[str]:
    """Order-preserving union of tag lists."""
    merged: List[str] = []
    for group in groups:
        for tag in group or []:
            if tag not in merged:
                merged.append(tag)
    return merged


def _message_from_item(item: Any) -> ChatMessage:
    """Build a message from a loosely shaped JSON item."""
    if not isinstance(item, dict):
        return ChatMessage(participant="unknown", content=str(item))
    participant = item.get("participant") or item.get("role") or "unknown"
    content = item.get("content") or item.get("message") or item.get("text") or ""
    return ChatMessage(
        participant=str(participant),
        content=content if isinstance(content, str) else json.dumps(content),
        timestamp=parse_timestamp(item.get("timestamp")),
    )


class ChatImportService:
    """
    Turns conversations into stored memories.

    Args:
        store: Memory store the records are saved to
        event_bus: Optional bus; ``chat.imported`` (or ``memory.created`` for
            single-memory fallbacks) is scheduled after a successful import
    """

    def __init__(self, store: MemoryStore, event_bus: Optional[EventBus] = None):
        self.store = store
        self.event_bus = event_bus

    async def import_chat(self, conversation: ChatImportRequest) -> List[Memory]:
        """
        Persist every message of a conversation, in order.

        Not transactional. Records are saved one at a time; if saving
        message k fails the error propagates, messages 0..k-1 stay stored
        and nothing is rolled back. Integrations may rely on this partial
        import, so do not wrap it in an all-or-nothing transaction.

        Returns:
            The created memories, in message order
        """
        total = len(conversation.messages)
        tags = merge_tags(conversation.tags, CHAT_TAGS)
        memories: List[Memory] = []

        for index, message in enumerate(conversation.messages):
            memory = Memory(
                id=new_memory_id(),
                content=message.content,
                source=conversation.source,
                timestamp=message.timestamp,
                version=1,
                tags=list(tags),
                metadata={
                    **(conversation.metadata or {}),
                    "conversationId": conversation.conversation_id,
                    "participant": message.participant,
                    "messageIndex": index,
                    "totalMessages": total,
                },
                content_type="chat",
                conversation_id=conversation.conversation_id,
                participant=message.participant,
                context=conversation.context,
            )
            await self.store.save_memory(memory)
            memories.append(memory)

        logger.info(
            f"[ChatImportService] Imported {len(memories)} messages "
            f"for conversation {conversation.conversation_id}"
        )

        await emit_chat_imported(self.event_bus, conversation)
        return memories

    async def import_from_format(
        self,
        content: str,
        format: str,
        source: str,
        conversation_id: Optional[str] = None,
    ) -> List[Memory]:
        """
        Import raw content in ``json``, ``text`` or ``markdown`` form.

        Raises:
            ValidationError: Unsupported format
            ParseError: ``json`` content that does not decode
        """
        if format == "json":
            return await self._import_from_json(content, source, conversation_id)
        if format == "text":
            return await self._import_from_text(content, source, conversation_id)
        if format == "markdown":
            return await self._import_from_markdown(content, source, conversation_id)
        raise ValidationError("format", f"Unsupported format: {format}", format)

    async def get_conversation_context(self, conversation_id: str) -> List[Memory]:
        return await self.store.get_conversation_context(conversation_id)

    # ======================================================================
    # Format importers
    # ======================================================================

    async def _import_from_json(
        self, content: str, source: str, conversation_id: Optional[str]
    ) -> List[Memory]:
        try:
            data = json.loads(content)
        except (TypeError, ValueError) as e:
            raise ParseError("json", str(e)) from e

        if isinstance(data, list):
            return await self.import_chat(
                ChatImportRequest(
                    conversation_id=conversation_id or str(uuid.uuid4()),
                    messages=[_message_from_item(item) for item in data],
                    source=source,
                    tags=["imported", "json"],
                )
            )

        if isinstance(data, dict) and isinstance(data.get("messages"), list):
            metadata = data.get("metadata")
            return await self.import_chat(
                ChatImportRequest(
                    conversation_id=(
                        conversation_id or data.get("conversationId") or str(uuid.uuid4())
                    ),
                    messages=[_message_from_item(item) for item in data["messages"]],
                    source=source,
                    tags=merge_tags(data.get("tags") or [], ["imported", "json"]),
                    metadata=metadata if isinstance(metadata, dict) else {},
                    context=data.get("context"),
                )
            )

        logger.debug("[ChatImportService] JSON payload has no message list, storing as-is")
        return await self._save_single(
            content=json.dumps(data),
            source=source,
            tags=["imported", "json", "unknown-format"],
            metadata={"originalData": data},
            conversation_id=conversation_id,
        )

    async def _import_from_text(
        self, content: str, source: str, conversation_id: Optional[str]
    ) -> List[Memory]:
        messages: List[ChatMessage] = []
        participant = "user"
        buffer = ""
        structured = False

        for line in (l for l in content.split("\n") if l.strip()):
            marker = next((m for m in _TEXT_MARKERS if line.lstrip().startswith(m)), None)
            if marker is None:
                buffer += "\n" + line
                continue
            if buffer.strip():
                messages.append(ChatMessage(participant=participant, content=buffer.strip()))
            participant = _TEXT_MARKERS[marker]
            structured = True
            buffer = line.lstrip()[len(marker):].strip()

        if buffer.strip():
            messages.append(ChatMessage(participant=participant, content=buffer.strip()))

        if not structured or not messages:
            return await self._save_single(
                content=content,
                source=source,
                tags=["imported", "text"],
                conversation_id=conversation_id,
            )

        return await self.import_chat(
            ChatImportRequest(
                conversation_id=conversation_id or str(uuid.uuid4()),
                messages=messages,
                source=source,
                tags=["imported", "text"],
            )
        )

    async def _import_from_markdown(
        self, content: str, source: str, conversation_id: Optional[str]
    ) -> List[Memory]:
        messages: List[ChatMessage] = []
        participant = "user"
        buffer = ""
        structured = False

        for line in content.split("\n"):
            if not _MARKDOWN_HEADER.match(line):
                buffer += "\n" + line
                continue
            if buffer.strip():
                messages.append(ChatMessage(participant=participant, content=buffer.strip()))
            header = line.lstrip("#").strip().lower()
            participant = "user" if ("user" in header or "human" in header) else "assistant"
            structured = True
            buffer = ""

        if buffer.strip():
            messages.append(ChatMessage(participant=participant, content=buffer.strip()))

        if not structured or not messages:
            return await self._save_single(
                content=content,
                source=source,
                tags=["imported", "markdown"],
                conversation_id=conversation_id,
            )

        return await self.import_chat(
            ChatImportRequest(
                conversation_id=conversation_id or str(uuid.uuid4()),
                messages=messages,
                source=source,
                tags=["imported", "markdown"],
            )
        )

    async def _save_single(
        self,
        content: str,
        source: str,
        tags: List[str],
        conversation_id: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Memory]:
        """Store unstructured content as one memory."""
        memory = Memory(
            id=new_memory_id(),
            content=content,
            source=source,
            timestamp=utc_now(),
            version=1,
            tags=tags,
            metadata=metadata or {},
            content_type="chat",
            conversation_id=conversation_id or str(uuid.uuid4()),
        )
        await self.store.save_memory(memory)
        logger.info(f"[ChatImportService] Stored unstructured {tags[1]} import as {memory.id}")

        await emit_memory_created(self.event_bus, memory)
        return [memory]


__all__ = ["ChatImportService", "IMPORT_FORMATS", "merge_tags"]
