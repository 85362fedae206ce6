"""
Chat Format Parser
==================
Turns copy/pasted chat transcripts into a normalized ``ChatImportRequest``.

Two parsing tiers exist in Valora and they fail differently:

- This module is the free-text tier. It is a total function: any string,
  including empty, whitespace-only or garbage input, yields a valid request
  (possibly with zero messages). Do not add code paths here that raise on
  unexpected input; callers rely on pasted text never being rejected.
- The structured JSON tier lives in ``valora.storage.memory_importer`` and
  raises ``ParseError`` on corrupt input.

Message timestamps are wall-clock times taken when a turn starts during the
scan. Pasted transcripts rarely carry per-message times, so these are an
approximation; ``messageIndex`` is the authoritative order.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Pattern, Tuple, Union

from loguru import logger

from valora.core.memory_model import ChatImportRequest, ChatMessage, utc_now


class ChatFormat(str, Enum):
    CHATGPT = "chatgpt"
    CLAUDE = "claude"
    GENERIC = "generic"


DATE_LINE = re.compile(r"^(\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2})")


@dataclass(frozen=True)
class ChatVocabulary:
    """Marker vocabulary and labels for one transcript dialect."""

    user_marker: Pattern[str]
    assistant_marker: Pattern[str]
    source: str
    tags: Tuple[str, ...]
    context: str
    # Markerless turns alternate user/assistant instead of inheriting the last speaker
    alternate_turns: bool = False


VOCABULARIES = {
    ChatFormat.CHATGPT: ChatVocabulary(
        user_marker=re.compile(r"^(you said:|you:)", re.IGNORECASE),
        assistant_marker=re.compile(r"^(assistant:|gpt:)", re.IGNORECASE),
        source="chatgpt",
        tags=("chatgpt", "conversation", "ai-chat"),
        context="ChatGPT conversation imported via copy/paste",
    ),
    ChatFormat.CLAUDE: ChatVocabulary(
        user_marker=re.compile(r"^(human:|you:)", re.IGNORECASE),
        assistant_marker=re.compile(r"^(assistant:|claude:)", re.IGNORECASE),
        source="claude",
        tags=("claude", "conversation", "ai-chat"),
        context="Claude conversation imported via copy/paste",
    ),
    ChatFormat.GENERIC: ChatVocabulary(
        user_marker=re.compile(r"^(you|user|human):", re.IGNORECASE),
        assistant_marker=re.compile(r"^(assistant|ai|bot|gpt|claude):", re.IGNORECASE),
        source="generic-chat",
        tags=("chat", "conversation", "imported"),
        context="Generic chat conversation imported via copy/paste",
        alternate_turns=True,
    ),
}

_CHATGPT_HINT = re.compile(r"GPT:", re.IGNORECASE)
_CLAUDE_HINT = re.compile(r"Claude:", re.IGNORECASE)


class _TurnScanner:
    """Accumulates lines into turns for a single parse call."""

    def __init__(self, vocabulary: ChatVocabulary):
        self.vocabulary = vocabulary
        self.messages: List[ChatMessage] = []
        self.buffer = ""
        self.participant = ""
        self.started_at = utc_now()
        self.user_turn = True
        # A marker line opens a turn even when nothing follows the marker
        self.turn_open = False

    def flush(self) -> None:
        content = self.buffer.strip()
        if content:
            self.messages.append(
                ChatMessage(
                    participant=self.participant or "unknown",
                    content=content,
                    timestamp=self.started_at,
                )
            )
        self.buffer = ""
        self.turn_open = False

    def start(self, participant: str, remainder: str) -> None:
        self.flush()
        self.participant = participant
        self.buffer = remainder.strip()
        self.turn_open = True
        self.started_at = utc_now()
        if self.vocabulary.alternate_turns:
            self.user_turn = participant != "user"

    def feed(self, raw_line: str) -> None:
        line = raw_line.strip()
        if not line or DATE_LINE.match(line):
            return

        match = self.vocabulary.user_marker.match(line)
        if match:
            self.start("user", line[match.end():])
            return
        match = self.vocabulary.assistant_marker.match(line)
        if match:
            self.start("assistant", line[match.end():])
            return

        if self.turn_open:
            self.buffer = f"{self.buffer}\n{line}" if self.buffer else line
            return

        if self.vocabulary.alternate_turns:
            self.participant = "user" if self.user_turn else "assistant"
            self.user_turn = not self.user_turn
        else:
            self.participant = self.participant or "unknown"
        self.buffer = line
        self.turn_open = True
        self.started_at = utc_now()


class ChatParser:
    """
    Marker-based parser for pasted ChatGPT, Claude and generic transcripts.

    Example:
        >>> request = ChatParser.parse("You said: Hi\\nAssistant: Hello!")
        >>> [(m.participant, m.content) for m in request.messages]
        [('user', 'Hi'), ('assistant', 'Hello!')]
    """

    @staticmethod
    def detect_format(text: str) -> ChatFormat:
        if "You said:" in text or _CHATGPT_HINT.search(text):
            return ChatFormat.CHATGPT
        if _CLAUDE_HINT.search(text) or "Human:" in text:
            return ChatFormat.CLAUDE
        return ChatFormat.GENERIC

    @classmethod
    def parse(
        cls,
        text: Optional[str],
        format: Optional[Union[ChatFormat, str]] = None,
        conversation_id: Optional[str] = None,
    ) -> ChatImportRequest:
        """
        Parse a transcript into a normalized conversation.

        Args:
            text: Raw pasted text. ``None`` is treated as empty.
            format: ``chatgpt``, ``claude`` or ``generic``. When omitted, or
                not a known format name, the dialect is auto-detected.
            conversation_id: Identifier to stamp on the result; a fresh
                UUID is generated when omitted.

        Returns:
            ChatImportRequest whose messages follow the original line order.
        """
        if not isinstance(text, str):
            text = "" if text is None else str(text)

        chat_format = cls._resolve_format(text, format)
        vocabulary = VOCABULARIES[chat_format]

        scanner = _TurnScanner(vocabulary)
        for line in text.split("\n"):
            scanner.feed(line)
        scanner.flush()

        logger.debug(
            f"[ChatParser] Parsed {len(scanner.messages)} messages as {chat_format.value}"
        )

        return ChatImportRequest(
            conversation_id=conversation_id or str(uuid.uuid4()),
            messages=scanner.messages,
            source=vocabulary.source,
            tags=list(vocabulary.tags),
            context=vocabulary.context,
        )

    @classmethod
    def parse_chatgpt(cls, text: str, conversation_id: Optional[str] = None) -> ChatImportRequest:
        return cls.parse(text, ChatFormat.CHATGPT, conversation_id)

    @classmethod
    def parse_claude(cls, text: str, conversation_id: Optional[str] = None) -> ChatImportRequest:
        return cls.parse(text, ChatFormat.CLAUDE, conversation_id)

    @classmethod
    def parse_generic(cls, text: str, conversation_id: Optional[str] = None) -> ChatImportRequest:
        return cls.parse(text, ChatFormat.GENERIC, conversation_id)

    @classmethod
    def _resolve_format(
        cls, text: str, format: Optional[Union[ChatFormat, str]]
    ) -> ChatFormat:
        if isinstance(format, ChatFormat):
            return format
        if isinstance(format, str):
            try:
                return ChatFormat(format.lower())
            except ValueError:
                logger.debug(f"[ChatParser] Unknown format {format!r}, auto-detecting")
        return cls.detect_format(text)


__all__ = ["ChatParser", "ChatFormat", "ChatVocabulary", "VOCABULARIES"]
