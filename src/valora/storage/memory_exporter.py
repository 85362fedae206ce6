"""
Memory Exporter
===============
Renders already-fetched memories into text formats.

Only ``json`` output round-trips through ``ChatImportService``; the other
formats are for reading or for pasting into another chat tool, and drop
metadata, version and inferred tags.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from valora.core.exceptions import ValidationError
from valora.core.memory_model import Memory, format_timestamp


class ExportFormat(str, Enum):
    MARKDOWN = "markdown"
    TEXT = "text"
    JSON = "json"
    CONVERSATION = "conversation"


TEXT_SEPARATOR = "\n" + "-" * 40 + "\n"
CONVERSATION_RULE = "=" * 50


def _conversation_order(memory: Memory):
    index = memory.message_index
    if index is None:
        return (1, 0, memory.timestamp)
    return (0, index, memory.timestamp)


class MemoryExporter:
    """Pure formatter: no storage access, inputs are never mutated."""

    def format_memories(
        self,
        memories: Sequence[Memory],
        format: Optional[Union[ExportFormat, str]] = None,
    ) -> str:
        """
        Render memories in the requested format (markdown by default).

        Raises:
            ValidationError: Unknown format name
        """
        try:
            export_format = ExportFormat(format or ExportFormat.MARKDOWN)
        except ValueError:
            raise ValidationError("format", f"Unsupported format: {format}", format)

        if export_format is ExportFormat.TEXT:
            return self.to_text(memories)
        if export_format is ExportFormat.JSON:
            return self.to_json(memories)
        if export_format is ExportFormat.CONVERSATION:
            return self.to_conversation(memories)
        return self.to_markdown(memories)

    def to_markdown(self, memories: Sequence[Memory]) -> str:
        blocks = []
        for m in memories:
            lines = [
                "---",
                f"**Source:** {m.source}",
                f"**Timestamp:** {format_timestamp(m.timestamp)}",
            ]
            if m.participant:
                lines.append(f"**Participant:** {m.participant}")
            if m.conversation_id:
                lines.append(f"**Conversation:** {m.conversation_id}")
            blocks.append("\n".join(lines) + f"\n\n{m.content}\n---\n")
        return "\n".join(blocks)

    def to_text(self, memories: Sequence[Memory]) -> str:
        blocks = []
        for m in memories:
            lines = [
                f"Source: {m.source}",
                f"Timestamp: {format_timestamp(m.timestamp)}",
            ]
            if m.participant:
                lines.append(f"Participant: {m.participant}")
            if m.conversation_id:
                lines.append(f"Conversation: {m.conversation_id}")
            blocks.append("\n".join(lines) + f"\n\n{m.content}\n")
        return TEXT_SEPARATOR.join(blocks)

    def to_json(self, memories: Sequence[Memory]) -> str:
        return json.dumps([m.to_dict() for m in memories], indent=2, ensure_ascii=False)

    def to_conversation(self, memories: Sequence[Memory]) -> str:
        """
        Transcript grouped by conversation, each group in message order.

        Memories without a conversation id are grouped under ``unknown``.
        """
        groups: Dict[str, List[Memory]] = {}
        for memory in memories:
            groups.setdefault(memory.conversation_id or "unknown", []).append(memory)

        texts = []
        for conversation_id, group in groups.items():
            text = f"Conversation: {conversation_id}\n{CONVERSATION_RULE}\n\n"
            for memory in sorted(group, key=_conversation_order):
                text += f"{memory.participant or 'Unknown'}:\n{memory.content}\n\n"
            texts.append(text)

        return f"\n{CONVERSATION_RULE}\n\n".join(texts)


__all__ = ["MemoryExporter", "ExportFormat"]
