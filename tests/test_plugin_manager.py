"""
Tests for PluginManager registration, capability filtering and hook isolation.
"""

import pytest

from valora.core.exceptions import PluginError, PluginNotFoundError
from valora.events.plugin_manager import PluginCapabilities, PluginManager
from valora.events.schemas import WebhookEvent

from tests.mocks import FailingPlugin, RecordingPlugin


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_initializes(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin, settings={"mode": "test"})

        assert recording_plugin.initialized is True
        assert plugin_manager.get_plugin("recorder") is recording_plugin
        assert plugin_manager.is_enabled("recorder")
        assert plugin_manager.get_config("recorder") == {"enabled": True, "settings": {"mode": "test"}}

    @pytest.mark.asyncio
    async def test_failed_initialize_is_not_registered(self, plugin_manager):
        with pytest.raises(PluginError):
            await plugin_manager.register_plugin(FailingPlugin(fail_on="initialize"))

        assert plugin_manager.list_plugins() == []

    @pytest.mark.asyncio
    async def test_register_disabled(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin, enabled=False)

        assert plugin_manager.is_enabled("recorder") is False
        assert plugin_manager.get_status_counts() == {"total": 1, "enabled": 0, "disabled": 1}

    @pytest.mark.asyncio
    async def test_enable_disable(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)

        plugin_manager.disable_plugin("recorder")
        assert plugin_manager.is_enabled("recorder") is False
        plugin_manager.enable_plugin("recorder")
        assert plugin_manager.is_enabled("recorder") is True

    def test_unknown_plugin(self, plugin_manager):
        with pytest.raises(PluginNotFoundError):
            plugin_manager.enable_plugin("ghost")
        with pytest.raises(PluginNotFoundError):
            plugin_manager.disable_plugin("ghost")
        assert plugin_manager.get_config("ghost") is None

    @pytest.mark.asyncio
    async def test_describe(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)

        description = plugin_manager.describe(recording_plugin)

        assert description["name"] == "recorder"
        assert description["enabled"] is True
        assert description["capabilities"]["chatOperations"] is True

    @pytest.mark.asyncio
    async def test_shutdown(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)
        await plugin_manager.shutdown()
        assert recording_plugin.shut_down is True


class TestNotify:

    @pytest.mark.asyncio
    async def test_hook_receives_data(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)

        notified = await plugin_manager.notify("memory.created", {"id": "m1"})

        assert notified == 1
        assert recording_plugin.calls == [("memory.created", {"id": "m1"})]

    @pytest.mark.asyncio
    async def test_capability_filter(self, plugin_manager):
        memory_only = RecordingPlugin(
            name="memory-only", capabilities=PluginCapabilities(memory_operations=True)
        )
        await plugin_manager.register_plugin(memory_only)

        assert await plugin_manager.notify(WebhookEvent.CHAT_IMPORTED, {}) == 0
        assert await plugin_manager.notify(WebhookEvent.SEARCH_PERFORMED, {}) == 0
        assert await plugin_manager.notify(WebhookEvent.MEMORY_DELETED, {}) == 1
        assert memory_only.events == ["memory.deleted"]

    @pytest.mark.asyncio
    async def test_disabled_plugin_is_skipped(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)
        plugin_manager.disable_plugin("recorder")

        assert await plugin_manager.notify("memory.created", {}) == 0
        assert recording_plugin.calls == []

    @pytest.mark.asyncio
    async def test_hook_failure_is_isolated(self, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(FailingPlugin())
        await plugin_manager.register_plugin(recording_plugin)

        notified = await plugin_manager.notify("memory.created", {"id": "m1"})

        assert notified == 1
        assert recording_plugin.events == ["memory.created"]

    @pytest.mark.asyncio
    async def test_default_hooks_are_noops(self, plugin_manager):
        await plugin_manager.register_plugin(FailingPlugin())

        # FailingPlugin only overrides on_memory_created and lacks export capability
        assert await plugin_manager.notify("memory.updated", {}) == 1
        assert await plugin_manager.notify("export.completed", {}) == 0


def test_capabilities_to_dict():
    caps = PluginCapabilities(search_operations=True)

    assert caps.to_dict() == {
        "memoryOperations": False,
        "chatOperations": False,
        "searchOperations": True,
        "exportOperations": False,
    }
    assert caps.allows(WebhookEvent.SEARCH_PERFORMED)
    assert not caps.allows(WebhookEvent.EXPORT_COMPLETED)
