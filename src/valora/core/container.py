"""
Dependency Injection Container
==============================
Builds and wires all application dependencies.
Every registry is an owned instance; nothing is a module-level singleton.
"""

from dataclasses import dataclass
from typing import Optional

import aiohttp
from loguru import logger

from valora.core.config import ValoraConfig
from valora.core.exceptions import PluginError
from valora.events.event_bus import EventBus
from valora.events.plugin_manager import PluginManager
from valora.events.webhook_manager import RetryPolicy, WebhookManager
from valora.integrations.validr import ValidrPlugin
from valora.storage.file_crawler import FileCrawler
from valora.storage.memory_exporter import MemoryExporter
from valora.storage.memory_importer import ChatImportService
from valora.storage.memory_store import MemoryStore, create_memory_store


@dataclass
class Container:
    """
    Container holding all wired application dependencies.
    """
    config: ValoraConfig
    store: MemoryStore
    webhook_manager: WebhookManager
    plugin_manager: PluginManager
    event_bus: EventBus
    chat_import: ChatImportService
    crawler: FileCrawler
    exporter: MemoryExporter
    started: bool = False

    async def startup(self) -> None:
        """Register built-in plugins. Safe to call more than once."""
        if self.started:
            return
        if self.config.validr.enabled:
            validr = ValidrPlugin(
                api_url=self.config.validr.api_url,
                api_key=self.config.validr.api_key,
                timeout_seconds=self.config.validr.timeout_seconds,
            )
            try:
                await self.plugin_manager.register_plugin(validr)
            except PluginError as e:
                logger.error(f"[Container] Validr plugin unavailable: {e}")
        self.started = True

    async def shutdown(self) -> None:
        """Flush pending event deliveries, then release network and storage resources."""
        await self.event_bus.drain()
        await self.plugin_manager.shutdown()
        await self.webhook_manager.close()
        await self.store.close()
        self.started = False


def build_container(
    config: ValoraConfig,
    store: Optional[MemoryStore] = None,
    http_session: Optional[aiohttp.ClientSession] = None,
) -> Container:
    """
    Build and wire all application dependencies.

    Args:
        config: Validated ValoraConfig instance.
        store: Optional pre-built memory store (tests); otherwise chosen by
            ``config.storage.backend``.
        http_session: Optional aiohttp session for webhook delivery.

    Returns:
        Container with all dependencies initialized.
    """
    if store is None:
        store = create_memory_store(config.storage.backend, config.storage.data_file)

    webhook_manager = WebhookManager(
        default_retry_policy=RetryPolicy(
            max_retries=config.webhooks.max_retries,
            backoff_ms=config.webhooks.backoff_ms,
            timeout_ms=config.webhooks.timeout_ms,
        ),
        max_history_size=config.webhooks.max_history_size,
        user_agent=config.webhooks.user_agent,
        http_session=http_session,
    )
    plugin_manager = PluginManager()
    event_bus = EventBus(webhook_manager=webhook_manager, plugin_manager=plugin_manager)

    return Container(
        config=config,
        store=store,
        webhook_manager=webhook_manager,
        plugin_manager=plugin_manager,
        event_bus=event_bus,
        chat_import=ChatImportService(store, event_bus),
        crawler=FileCrawler(store, event_bus),
        exporter=MemoryExporter(),
    )
