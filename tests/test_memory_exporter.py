"""
Tests for MemoryExporter output formats.
"""

import copy
import json
from datetime import datetime, timedelta, timezone

import pytest

from valora.core.exceptions import ValidationError
from valora.core.memory_model import Memory
from valora.storage.memory_exporter import ExportFormat, MemoryExporter


BASE = datetime(2024, 5, 4, 8, 0, tzinfo=timezone.utc)


def _chat_memory(index, participant, content, conversation_id="c1", total=3, ts=None):
    return Memory(
        id=f"00000000-0000-4000-8000-00000000000{index}",
        content=content,
        source="chatgpt",
        timestamp=ts or BASE + timedelta(minutes=index),
        tags=["chat", "conversation"],
        metadata={
            "conversationId": conversation_id,
            "participant": participant,
            "messageIndex": index,
            "totalMessages": total,
        },
        content_type="chat",
        conversation_id=conversation_id,
        participant=participant,
    )


@pytest.fixture
def conversation():
    return [
        _chat_memory(0, "user", "How do I sign webhooks?"),
        _chat_memory(1, "assistant", "Use HMAC-SHA256."),
        _chat_memory(2, "user", "Thanks!"),
    ]


class TestMarkdown:

    def test_is_default(self, exporter, conversation):
        assert exporter.format_memories(conversation) == exporter.to_markdown(conversation)
        assert exporter.format_memories(conversation, None) == exporter.to_markdown(conversation)

    def test_block_layout(self, exporter, sample_memory):
        output = exporter.format_memories([sample_memory], ExportFormat.MARKDOWN)

        assert output == (
            "---\n"
            "**Source:** manual\n"
            "**Timestamp:** 2024-01-01T12:00:00.000Z\n"
            "\n"
            "Remember to validate the schema before upload\n"
            "---\n"
        )

    def test_chat_fields(self, exporter, conversation):
        output = exporter.to_markdown(conversation[:1])

        assert "**Participant:** user" in output
        assert "**Conversation:** c1" in output


class TestText:

    def test_blocks_are_separated(self, exporter, conversation):
        output = exporter.format_memories(conversation, "text")

        assert output.count("-" * 40) == 2
        assert "Source: chatgpt" in output
        assert "Participant: assistant" in output
        assert "Conversation: c1" in output
        assert "Use HMAC-SHA256." in output


class TestJson:

    def test_is_pretty_printed_wire_form(self, exporter, conversation):
        output = exporter.format_memories(conversation, "json")
        data = json.loads(output)

        assert output.startswith("[\n  {")
        assert [d["content"] for d in data] == [m.content for m in conversation]
        assert data[0]["conversationId"] == "c1"
        assert data[0]["metadata"]["messageIndex"] == 0
        assert data[0]["timestamp"] == "2024-05-04T08:00:00.000Z"


class TestConversation:

    def test_transcript(self, exporter, conversation):
        output = exporter.format_memories(conversation, "conversation")

        assert output == (
            "Conversation: c1\n"
            + "=" * 50 + "\n\n"
            "user:\nHow do I sign webhooks?\n\n"
            "assistant:\nUse HMAC-SHA256.\n\n"
            "user:\nThanks!\n\n"
        )

    def test_orders_by_message_index(self, exporter, conversation):
        # Same wall-clock timestamp for every turn, shuffled input
        shuffled = [
            _chat_memory(2, "user", "third", ts=BASE),
            _chat_memory(0, "user", "first", ts=BASE),
            _chat_memory(1, "assistant", "second", ts=BASE),
        ]

        output = exporter.to_conversation(shuffled)

        assert output.index("first") < output.index("second") < output.index("third")

    def test_groups_by_conversation(self, exporter, conversation):
        other = _chat_memory(0, "user", "elsewhere", conversation_id="c2", total=1)
        loose = Memory(id="loose", content="a note", source="manual")

        output = exporter.to_conversation(conversation + [other, loose])

        assert "Conversation: c1" in output
        assert "Conversation: c2" in output
        assert "Conversation: unknown" in output
        assert "Unknown:\na note" in output


class TestContract:

    @pytest.mark.parametrize("fmt", [f.value for f in ExportFormat])
    def test_idempotent(self, exporter, conversation, fmt):
        assert exporter.format_memories(conversation, fmt) == exporter.format_memories(conversation, fmt)

    @pytest.mark.parametrize("fmt", [f.value for f in ExportFormat])
    def test_does_not_mutate_input(self, exporter, conversation, fmt):
        before = copy.deepcopy(conversation)
        exporter.format_memories(list(reversed(conversation)), fmt)
        assert conversation == before

    def test_empty_input(self, exporter):
        assert exporter.format_memories([], "json") == "[]"
        assert exporter.format_memories([], "markdown") == ""

    def test_unknown_format(self, exporter, conversation):
        with pytest.raises(ValidationError):
            exporter.format_memories(conversation, "pdf")
