"""Conversation and message records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

DEFAULT_TITLE = "New Conversation"
# Stand-in text the transport emits before the transcription pipeline has finished.
TRANSCRIPT_PLACEHOLDER = "…"
PROVISIONAL_TITLE_MAX_CHARS = 50


def _new_id() -> str:
    return uuid.uuid4().hex


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: str) -> MessageRole:
        """Map a stored role string to a role; unknown values become SYSTEM."""
        try:
            return cls(value)
        except ValueError:
            return cls.SYSTEM


@dataclass(eq=False)
class Message:
    """A single transcript entry owned by one Conversation."""

    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    audio: bytes | None = None
    id: str = field(default_factory=_new_id)
    conversation: Conversation | None = field(default=None, repr=False)


@dataclass(eq=False)
class Conversation:
    """
    A conversation and its transcript.

    ``messages`` keeps insertion order. Corrections rewrite content in place,
    so readers that need chronology use ``sorted_messages()``.
    """

    title: str = DEFAULT_TITLE
    timestamp: datetime = field(default_factory=datetime.now)
    summary: str | None = None
    title_generated: bool = False
    messages: list[Message] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def add_message(
        self,
        role: MessageRole,
        content: str,
        *,
        timestamp: datetime | None = None,
        audio: bytes | None = None,
    ) -> Message:
        """Append a message and attach it to this conversation."""
        msg = Message(
            role=role,
            content=content,
            timestamp=timestamp or datetime.now(),
            audio=audio,
            conversation=self,
        )
        self.messages.append(msg)
        return msg

    def sorted_messages(self) -> list[Message]:
        """Messages ordered by ascending timestamp (stable for ties)."""
        return sorted(self.messages, key=lambda m: m.timestamp)

    @property
    def has_default_title(self) -> bool:
        return self.title == DEFAULT_TITLE
