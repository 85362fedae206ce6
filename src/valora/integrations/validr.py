"""
Validr Integration
==================
Plugin that mirrors validation-related memories and conversations to a
Validr instance.

A memory qualifies when its content or one of its tags mentions one of
``VALIDATION_KEYWORDS``; conversations use the same list without
``schema``. The plugin stays registered but inert when the API URL or key
is missing.

Endpoints (all with ``Authorization: Bearer <key>``):
    POST   {api_url}/api/valora-sync/memory        {"action", "memory"}
    POST   {api_url}/api/valora-sync/conversation  {conversationId, messages, ...}
    DELETE {api_url}/api/valora-sync/delete        {"memoryId"}
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Iterable, Optional

import aiohttp
from loguru import logger

from valora.events.plugin_manager import PluginCapabilities, ValoraPlugin


VALIDATION_KEYWORDS = ("validation", "rule", "validate", "constraint", "schema")
CONVERSATION_KEYWORDS = ("validation", "rule", "validate", "constraint")


def _mentions(keywords: Iterable[str], content: str, tags: Iterable[str]) -> bool:
    content = content.lower()
    tags = [t.lower() for t in tags]
    return any(k in content or any(k in t for t in tags) for k in keywords)


class ValidrPlugin(ValoraPlugin):
    name = "validr-integration"
    version = "1.0.0"
    description = "Integration with Validr platform for validation rule management"
    capabilities = PluginCapabilities(
        memory_operations=True,
        chat_operations=True,
        search_operations=True,
        export_operations=True,
    )

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_url = api_url.rstrip("/") if api_url else None
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._session = http_session
        self._owns_session = http_session is None

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    async def initialize(self) -> None:
        if not self.configured:
            logger.warning(
                "[ValidrPlugin] Validr integration not fully configured. "
                "Set VALIDR_API_URL and VALIDR_API_KEY for full functionality."
            )
        else:
            logger.info(f"[ValidrPlugin] Validr integration initialized ({self.api_url})")

    async def shutdown(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    # ======================================================================
    # Hooks
    # ======================================================================

    async def on_memory_created(self, memory: Dict[str, Any]) -> None:
        if self.is_validation_memory(memory):
            await self._sync_memory(memory, "created")

    async def on_memory_updated(self, memory: Dict[str, Any]) -> None:
        if self.is_validation_memory(memory):
            await self._sync_memory(memory, "updated")

    async def on_memory_deleted(self, memory: Dict[str, Any]) -> None:
        await self._send("DELETE", "/api/valora-sync/delete", {"memoryId": memory.get("id")})

    async def on_chat_imported(self, conversation: Dict[str, Any]) -> None:
        if not self.is_validation_conversation(conversation):
            return
        await self._send(
            "POST",
            "/api/valora-sync/conversation",
            {
                "conversationId": conversation.get("conversationId"),
                "messages": conversation.get("messages", []),
                "tags": conversation.get("tags", []),
                "metadata": conversation.get("metadata", {}),
                "source": conversation.get("source"),
            },
        )

    # ======================================================================
    # Classification
    # ======================================================================

    @staticmethod
    def is_validation_memory(memory: Dict[str, Any]) -> bool:
        return _mentions(
            VALIDATION_KEYWORDS, memory.get("content", ""), memory.get("tags") or []
        )

    @staticmethod
    def is_validation_conversation(conversation: Dict[str, Any]) -> bool:
        content = " ".join(m.get("content", "") for m in conversation.get("messages", []))
        return _mentions(CONVERSATION_KEYWORDS, content, conversation.get("tags") or [])

    # ======================================================================
    # HTTP
    # ======================================================================

    async def _sync_memory(self, memory: Dict[str, Any], action: str) -> None:
        body = {
            "action": action,
            "memory": {
                "id": memory.get("id"),
                "content": memory.get("content"),
                "tags": memory.get("tags", []),
                "metadata": memory.get("metadata", {}),
                "source": memory.get("source"),
                "timestamp": memory.get("timestamp"),
            },
        }
        await self._send("POST", "/api/valora-sync/memory", body)

    async def _send(self, method: str, path: str, body: Dict[str, Any]) -> bool:
        """Send one request to Validr. Failures are logged and reported as False."""
        if not self.configured:
            return False

        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        try:
            async with self._session.request(
                method,
                f"{self.api_url}{path}",
                data=json.dumps(body, default=str),
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if 200 <= response.status < 300:
                    logger.info(f"[ValidrPlugin] Synced {method} {path}")
                    return True
                logger.warning(
                    f"[ValidrPlugin] Validr returned status {response.status} for {path}"
                )
                return False
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"[ValidrPlugin] Error syncing to Validr ({path}): {e}")
            return False


__all__ = ["ValidrPlugin", "VALIDATION_KEYWORDS", "CONVERSATION_KEYWORDS"]
