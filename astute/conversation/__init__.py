"""Conversation records and their durable store."""

from astute.conversation.models import (
    DEFAULT_TITLE,
    TRANSCRIPT_PLACEHOLDER,
    Conversation,
    Message,
    MessageRole,
)
from astute.conversation.store import ConversationStore

__all__ = [
    "DEFAULT_TITLE",
    "TRANSCRIPT_PLACEHOLDER",
    "Conversation",
    "ConversationStore",
    "Message",
    "MessageRole",
]
