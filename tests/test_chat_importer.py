"""
Tests for ChatImportService: structured import, format importers and the
events they emit.
"""

import json
from datetime import datetime, timezone

import pytest

from valora.core.exceptions import ParseError, StorageError, ValidationError
from valora.core.memory_model import ChatImportRequest, ChatMessage
from valora.storage.memory_exporter import MemoryExporter
from valora.storage.memory_importer import ChatImportService, merge_tags
from valora.storage.memory_store import InMemoryMemoryStore


T1 = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def _conversation(n=3, **kwargs):
    messages = [
        ChatMessage(
            participant="user" if i % 2 == 0 else "assistant",
            content=f"message {i}",
            timestamp=T1,
        )
        for i in range(n)
    ]
    defaults = dict(conversation_id="c1", messages=messages, source="x")
    defaults.update(kwargs)
    return ChatImportRequest(**defaults)


class FlakyStore(InMemoryMemoryStore):
    """Fails on the n-th save (1-based)."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.saves = 0

    async def save_memory(self, memory):
        self.saves += 1
        if self.saves == self.fail_on:
            raise StorageError("save", "disk full")
        await super().save_memory(memory)


class TestImportChat:

    @pytest.mark.asyncio
    async def test_single_message_linkage(self, importer):
        request = ChatImportRequest(
            conversation_id="c1",
            messages=[ChatMessage(participant="user", content="hi", timestamp=T1)],
            source="x",
        )

        memories = await importer.import_chat(request)

        assert len(memories) == 1
        memory = memories[0]
        assert memory.metadata["conversationId"] == "c1"
        assert memory.metadata["messageIndex"] == 0
        assert memory.metadata["totalMessages"] == 1
        assert memory.metadata["participant"] == "user"
        assert "chat" in memory.tags and "conversation" in memory.tags
        assert memory.content_type == "chat"
        assert memory.conversation_id == "c1"
        assert memory.participant == "user"
        assert memory.timestamp == T1
        assert memory.version == 1

    @pytest.mark.asyncio
    async def test_order_is_preserved(self, importer, store):
        memories = await importer.import_chat(_conversation(5))

        assert [m.metadata["messageIndex"] for m in memories] == [0, 1, 2, 3, 4]
        assert [m.content for m in memories] == [f"message {i}" for i in range(5)]
        assert len({m.id for m in memories}) == 5
        assert len(await store.list_memories()) == 5

    @pytest.mark.asyncio
    async def test_metadata_and_tags_are_merged(self, importer):
        request = _conversation(
            1, tags=["work", "chat"], metadata={"project": "valora"}, context="standup"
        )

        memory = (await importer.import_chat(request))[0]

        assert memory.tags == ["work", "chat", "conversation"]
        assert memory.metadata["project"] == "valora"
        assert memory.context == "standup"

    @pytest.mark.asyncio
    async def test_empty_conversation(self, importer, store):
        assert await importer.import_chat(_conversation(0)) == []
        assert await store.list_memories() == []

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_earlier_messages(self):
        store = FlakyStore(fail_on=3)
        importer = ChatImportService(store)

        with pytest.raises(StorageError):
            await importer.import_chat(_conversation(5))

        stored = await store.list_memories()
        assert [m.metadata["messageIndex"] for m in stored] == [0, 1]

    @pytest.mark.asyncio
    async def test_emits_chat_imported(self, importer, event_bus, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)

        await importer.import_chat(_conversation(2))
        await event_bus.drain()

        assert recording_plugin.events == ["chat.imported"]
        payload = recording_plugin.calls[0][1]
        assert payload["conversationId"] == "c1"
        assert len(payload["messages"]) == 2

    @pytest.mark.asyncio
    async def test_works_without_event_bus(self, store):
        memories = await ChatImportService(store).import_chat(_conversation(2))
        assert len(memories) == 2


class TestImportFromJson:

    @pytest.mark.asyncio
    async def test_array_with_aliases(self, importer):
        content = json.dumps([
            {"role": "user", "message": "hello"},
            {"participant": "assistant", "text": "hi there", "timestamp": "2024-03-01T09:30:00Z"},
        ])

        memories = await importer.import_from_format(content, "json", "api", "conv-9")

        assert [(m.participant, m.content) for m in memories] == [
            ("user", "hello"),
            ("assistant", "hi there"),
        ]
        assert memories[1].timestamp == T1
        assert all(m.conversation_id == "conv-9" for m in memories)
        assert "json" in memories[0].tags and "imported" in memories[0].tags

    @pytest.mark.asyncio
    async def test_object_with_messages(self, importer):
        content = json.dumps({
            "conversationId": "from-file",
            "messages": [{"participant": "user", "content": "q"}],
            "tags": ["legal"],
            "metadata": {"case": 7},
            "context": "contract review",
        })

        memory = (await importer.import_from_format(content, "json", "api"))[0]

        assert memory.conversation_id == "from-file"
        assert "legal" in memory.tags
        assert memory.metadata["case"] == 7
        assert memory.context == "contract review"

    @pytest.mark.asyncio
    async def test_unknown_shape_is_stored_whole(self, importer):
        memories = await importer.import_from_format('{"foo": 1}', "json", "api")

        assert len(memories) == 1
        assert "unknown-format" in memories[0].tags
        assert memories[0].metadata["originalData"] == {"foo": 1}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, importer, store):
        with pytest.raises(ParseError):
            await importer.import_from_format("{not json", "json", "api")
        assert await store.list_memories() == []

    @pytest.mark.asyncio
    async def test_json_export_round_trip(self, importer, store):
        original = await importer.import_chat(_conversation(4))
        exported = MemoryExporter().format_memories(original, "json")

        second = ChatImportService(InMemoryMemoryStore())
        reimported = await second.import_from_format(exported, "json", "roundtrip", "c2")

        assert [m.content for m in reimported] == [m.content for m in original]
        assert [m.participant for m in reimported] == [m.participant for m in original]
        assert [m.timestamp for m in reimported] == [m.timestamp for m in original]


class TestImportFromText:

    @pytest.mark.asyncio
    async def test_markers_start_turns(self, importer):
        content = "User: hi\ncontinued\nAssistant: hello\n  Human: again\nAI: ok"

        memories = await importer.import_from_format(content, "text", "paste")

        assert [(m.participant, m.content) for m in memories] == [
            ("user", "hi\ncontinued"),
            ("assistant", "hello"),
            ("user", "again"),
            ("assistant", "ok"),
        ]
        assert memories[0].tags == ["imported", "text", "chat", "conversation"]

    @pytest.mark.asyncio
    async def test_unstructured_text_is_one_memory(self, importer, event_bus, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)

        memories = await importer.import_from_format("just a note\nsecond line", "text", "paste")
        await event_bus.drain()

        assert len(memories) == 1
        assert memories[0].content == "just a note\nsecond line"
        assert memories[0].tags == ["imported", "text"]
        assert recording_plugin.events == ["memory.created"]


class TestImportFromMarkdown:

    @pytest.mark.asyncio
    async def test_headers_start_turns(self, importer):
        content = "# User\nWhat is HMAC?\n\n## Assistant\nA keyed hash.\n### Human question\nThanks"

        memories = await importer.import_from_format(content, "markdown", "notes")

        assert [(m.participant, m.content) for m in memories] == [
            ("user", "What is HMAC?"),
            ("assistant", "A keyed hash."),
            ("user", "Thanks"),
        ]

    @pytest.mark.asyncio
    async def test_no_headers_is_one_memory(self, importer):
        memories = await importer.import_from_format("plain paragraph", "markdown", "notes")

        assert len(memories) == 1
        assert memories[0].tags == ["imported", "markdown"]


class TestMisc:

    @pytest.mark.asyncio
    async def test_unsupported_format(self, importer):
        with pytest.raises(ValidationError):
            await importer.import_from_format("x", "yaml", "api")

    @pytest.mark.asyncio
    async def test_conversation_context(self, importer):
        await importer.import_chat(_conversation(3))
        await importer.import_chat(_conversation(2, conversation_id="other"))

        context = await importer.get_conversation_context("c1")

        assert [m.metadata["messageIndex"] for m in context] == [0, 1, 2]

    def test_merge_tags_is_order_preserving_union(self):
        assert merge_tags(["b", "a"], ["a", "c"], None) == ["b", "a", "c"]
