"""Exactly-once summary and title extraction after a session ends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Sequence

from astute.errors import PersistenceError
from astute.logging import get_logger

if TYPE_CHECKING:
    from astute.conversation.models import Conversation, Message
    from astute.conversation.store import ConversationStore

logger = get_logger(__name__)


class SummaryService(Protocol):
    async def summarize(self, messages: Sequence[Message]) -> str: ...


class TitleService(Protocol):
    async def generate_title(self, messages: Sequence[Message]) -> str: ...


@dataclass
class MemoryResult:
    summary_generated: bool = False
    title_generated: bool = False
    saved: bool = False


class MemoryGenerator:
    """
    Fills in ``summary`` and the final ``title`` of a conversation.

    Each field is attempted only while it is still unset, so repeated runs are
    idempotent and a failed field is retried the next time a session ends.
    The two attempts are independent; a failure in one never skips the other.
    """

    def __init__(
        self,
        store: ConversationStore,
        summarizer: SummaryService,
        title_generator: TitleService,
        *,
        summary_min_messages: int = 2,
    ) -> None:
        self.store = store
        self.summarizer = summarizer
        self.title_generator = title_generator
        self.summary_min_messages = summary_min_messages

    async def generate(self, conversation: Conversation) -> MemoryResult:
        result = MemoryResult()
        # Snapshot before awaiting so messages appended meanwhile don't change what we send.
        messages = conversation.sorted_messages()

        if conversation.summary is None and len(messages) >= self.summary_min_messages:
            try:
                summary = await self.summarizer.summarize(messages)
            except Exception as e:
                logger.warning(
                    "Summarization failed",
                    conversation_id=conversation.id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            else:
                # Write-once: another run may have filled it while we were waiting.
                if conversation.summary is None:
                    conversation.summary = summary
                    result.summary_generated = True

        if not conversation.title_generated and messages:
            try:
                title = await self.title_generator.generate_title(messages)
            except Exception as e:
                logger.warning(
                    "Title generation failed",
                    conversation_id=conversation.id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            else:
                if not conversation.title_generated:
                    conversation.title = title
                    conversation.title_generated = True
                    result.title_generated = True

        try:
            self.store.save()
            result.saved = True
        except PersistenceError as e:
            logger.warning("Memory save failed", conversation_id=conversation.id, error=str(e))

        logger.info(
            "Memory generation done",
            conversation_id=conversation.id,
            message_count=len(messages),
            summary_generated=result.summary_generated,
            title_generated=result.title_generated,
            saved=result.saved,
        )
        return result
