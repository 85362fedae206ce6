"""
Memory Store
============
Persistence collaborator for memory records.

Two backends share the ``MemoryStore`` interface:

- ``InMemoryMemoryStore``: dict-backed, process lifetime only. Used by tests
  and by the API under the default ``storage.backend: memory`` configuration.
- ``JsonFileMemoryStore``: a single JSON document ``{"memories": [...]}``
  read lazily with aiofiles and rewritten after every mutation.

Stores report "not found" through ``None`` / ``False`` return values. The
HTTP layer decides when a missing record becomes a 404.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles
from loguru import logger

from valora.core.exceptions import wrap_storage_exception
from valora.core.memory_model import Memory


# Wire key -> attribute name for fields a caller may patch. ``id``,
# ``version`` and ``timestamp`` are owned by the store.
PATCHABLE_FIELDS = {
    "content": "content",
    "source": "source",
    "tags": "tags",
    "inferredTags": "inferred_tags",
    "metadata": "metadata",
    "contentType": "content_type",
    "conversationId": "conversation_id",
    "participant": "participant",
    "context": "context",
}


def apply_patch(memory: Memory, patch: Dict[str, Any]) -> Memory:
    """
    Return an updated copy of ``memory`` with the version bumped.

    ``timestamp`` keeps the authored time. A patch with no patchable fields
    returns ``memory`` unchanged.
    """
    changes: Dict[str, Any] = {}
    for key, value in patch.items():
        attr = PATCHABLE_FIELDS.get(key)
        if attr is None and key in PATCHABLE_FIELDS.values():
            attr = key
        if attr is None:
            continue
        changes[attr] = value
    if not changes:
        return memory
    return replace(memory, **changes, id=memory.id, version=memory.version + 1)


def _matches(memory: Memory, needle: str) -> bool:
    if needle in memory.content.lower():
        return True
    if any(needle in tag.lower() for tag in memory.tags):
        return True
    return any(needle in tag.lower() for tag in memory.inferred_tags or [])


def _conversation_order(memory: Memory):
    index = memory.message_index
    return (memory.timestamp, index if index is not None else 0)


class MemoryStore(ABC):
    """Async CRUD and lookup over memory records."""

    @abstractmethod
    async def save_memory(self, memory: Memory) -> None:
        ...

    @abstractmethod
    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        ...

    @abstractmethod
    async def list_memories(self) -> List[Memory]:
        ...

    @abstractmethod
    async def update_memory(self, memory_id: str, patch: Dict[str, Any]) -> Optional[Memory]:
        ...

    @abstractmethod
    async def delete_memory(self, memory_id: str) -> bool:
        ...

    async def search_memories(self, query: str) -> List[Memory]:
        """Case-insensitive substring match on content, tags and inferred tags."""
        needle = (query or "").strip().lower()
        memories = await self.list_memories()
        if not needle:
            return memories
        return [m for m in memories if _matches(m, needle)]

    async def get_conversation_context(self, conversation_id: str) -> List[Memory]:
        """All memories of one conversation, oldest first."""
        memories = await self.list_memories()
        related = [m for m in memories if m.conversation_id == conversation_id]
        return sorted(related, key=_conversation_order)

    async def get_memories(self, memory_ids: List[str]) -> List[Optional[Memory]]:
        return [await self.get_memory(memory_id) for memory_id in memory_ids]

    async def close(self) -> None:
        """Release backend resources. No-op by default."""


class InMemoryMemoryStore(MemoryStore):
    """Dict-backed store, insertion ordered."""

    def __init__(self):
        self._memories: Dict[str, Memory] = {}

    async def save_memory(self, memory: Memory) -> None:
        self._memories[memory.id] = memory

    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        return self._memories.get(memory_id)

    async def list_memories(self) -> List[Memory]:
        return list(self._memories.values())

    async def update_memory(self, memory_id: str, patch: Dict[str, Any]) -> Optional[Memory]:
        existing = self._memories.get(memory_id)
        if existing is None:
            return None
        updated = apply_patch(existing, patch)
        self._memories[memory_id] = updated
        return updated

    async def delete_memory(self, memory_id: str) -> bool:
        return self._memories.pop(memory_id, None) is not None

    def __len__(self) -> int:
        return len(self._memories)


class JsonFileMemoryStore(MemoryStore):
    """
    Whole-file JSON persistence.

    The document is loaded on first access and rewritten after every
    mutation while holding an asyncio lock, so concurrent requests in one
    process never interleave writes. Read or write failures surface as
    ``StorageError``.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()
        self._memories: Dict[str, Memory] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self._path.exists():
            try:
                async with aiofiles.open(self._path, "r", encoding="utf-8") as f:
                    content = await f.read()
                data = json.loads(content) if content.strip() else {}
            except (OSError, ValueError) as e:
                raise wrap_storage_exception("load", e)
            for item in data.get("memories", []):
                memory = Memory.from_dict(item)
                self._memories[memory.id] = memory
            logger.info(
                f"[JsonFileMemoryStore] Loaded {len(self._memories)} memories from {self._path}"
            )
        self._loaded = True

    async def _save(self, memories: Dict[str, Memory]) -> None:
        data = {
            "version": "1.0",
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "memories": [m.to_dict() for m in memories.values()],
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self._path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2))
        except OSError as e:
            raise wrap_storage_exception("save", e)

    async def _commit(self, memories: Dict[str, Memory]) -> None:
        # The cache only changes once the document is on disk.
        await self._save(memories)
        self._memories = memories

    async def save_memory(self, memory: Memory) -> None:
        async with self._lock:
            await self._ensure_loaded()
            await self._commit({**self._memories, memory.id: memory})

    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        async with self._lock:
            await self._ensure_loaded()
            return self._memories.get(memory_id)

    async def list_memories(self) -> List[Memory]:
        async with self._lock:
            await self._ensure_loaded()
            return list(self._memories.values())

    async def update_memory(self, memory_id: str, patch: Dict[str, Any]) -> Optional[Memory]:
        async with self._lock:
            await self._ensure_loaded()
            existing = self._memories.get(memory_id)
            if existing is None:
                return None
            updated = apply_patch(existing, patch)
            if updated is existing:
                return existing
            await self._commit({**self._memories, memory_id: updated})
            return updated

    async def delete_memory(self, memory_id: str) -> bool:
        async with self._lock:
            await self._ensure_loaded()
            if memory_id not in self._memories:
                return False
            remaining = dict(self._memories)
            del remaining[memory_id]
            await self._commit(remaining)
            return True


def create_memory_store(backend: str, data_file: Optional[str] = None) -> MemoryStore:
    """Build the store named by ``storage.backend``."""
    if backend == "file":
        return JsonFileMemoryStore(data_file or "~/.valora/db.json")
    return InMemoryMemoryStore()


__all__ = [
    "MemoryStore",
    "InMemoryMemoryStore",
    "JsonFileMemoryStore",
    "create_memory_store",
    "apply_patch",
    "PATCHABLE_FIELDS",
]
