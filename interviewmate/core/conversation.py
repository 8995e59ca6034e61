"""Conversation memory types: partition keys, transcript entries and chat turns."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import quote
from uuid import uuid4

USER_PREFIX = "User: "
AI_PREFIX = "AI: "

_ENTRY_SEPARATOR = "|"
_ENTRY_ID_RE = re.compile(r"^[0-9a-f]{32}$")


@dataclass(frozen=True)
class ConversationKey:
    """Identity of one memory partition: (conversation, user, model).

    Built per request from the caller identity and the route parameter.
    A key with any empty field is invalid; store operations on it no-op.
    """

    conversation_id: str
    user_id: str
    model_name: str

    @property
    def is_valid(self) -> bool:
        return all(
            isinstance(part, str) and part.strip()
            for part in (self.conversation_id, self.user_id, self.model_name)
        )

    def storage_key(self) -> str:
        """Derive the sorted-set key. Parts are quoted so ':' in ids cannot collide."""
        parts = (self.conversation_id, self.model_name, self.user_id)
        return "transcript:" + ":".join(quote(p, safe="") for p in parts)


@dataclass(frozen=True)
class TranscriptEntry:
    """One immutable line of the transcript, stored as a sorted-set member."""

    entry_id: str
    text: str
    score: float = 0.0

    @classmethod
    def new(cls, text: str, score: float = 0.0) -> "TranscriptEntry":
        return cls(entry_id=uuid4().hex, text=text, score=score)

    def encode(self) -> str:
        # The id keeps identical lines from collapsing into one member
        return f"{self.entry_id}{_ENTRY_SEPARATOR}{self.text}"

    @classmethod
    def decode(cls, member: str | bytes, score: float = 0.0) -> "TranscriptEntry":
        if isinstance(member, bytes):
            member = member.decode("utf-8")
        entry_id, sep, text = member.partition(_ENTRY_SEPARATOR)
        if sep and _ENTRY_ID_RE.match(entry_id):
            return cls(entry_id=entry_id, text=text, score=score)
        # Members written without an id decode whole
        return cls(entry_id="", text=member, score=score)


@dataclass(frozen=True)
class ChatTurn:
    """A parsed transcript line."""

    kind: Literal["user", "assistant"]
    content: str

    @classmethod
    def user(cls, content: str) -> "ChatTurn":
        return cls(kind="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatTurn":
        return cls(kind="assistant", content=content)


@dataclass(frozen=True)
class SimilarityMatch:
    """A semantic index hit. Used for enrichment only, never written back."""

    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


def format_user_line(text: str) -> str:
    return f"{USER_PREFIX}{text}\n"


def format_ai_line(text: str) -> str:
    return f"{AI_PREFIX}{text}\n"


def parse_entry(text: str) -> ChatTurn | None:
    """
    Parse one transcript entry into a chat turn.

    The whole entry is the turn body, so multi-line prompts and replies
    survive intact. "User: " entries become user turns and "AI: " entries
    assistant turns. Blank entries, AI entries with no content and entries
    with any other prefix (e.g. seeded "Human: " examples) give None.

    Args:
        text: TranscriptEntry.text

    Returns:
        The turn, or None when the entry carries no usable turn
    """
    text = text.rstrip("\r\n")
    if not text.strip():
        return None
    if text.startswith(USER_PREFIX):
        return ChatTurn.user(text[len(USER_PREFIX):].strip())
    if text.startswith(AI_PREFIX):
        content = text[len(AI_PREFIX):].strip()
        return ChatTurn.assistant(content) if content else None
    return None


def entries_to_turns(entries: Iterable[TranscriptEntry]) -> list[ChatTurn]:
    """Parse entries in transcript order, dropping those without a turn."""
    turns: list[ChatTurn] = []
    for entry in entries:
        turn = parse_entry(entry.text)
        if turn is not None:
            turns.append(turn)
    return turns
