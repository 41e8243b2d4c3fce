"""Project live session events onto one conversation's durable transcript."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from astute.conversation.models import (
    PROVISIONAL_TITLE_MAX_CHARS,
    TRANSCRIPT_PLACEHOLDER,
    Conversation,
    Message,
    MessageRole,
)
from astute.errors import PersistenceError
from astute.logging import get_logger
from astute.session.events import (
    SESSION_EVENT_ASSISTANT_FINAL,
    SESSION_EVENT_ERROR,
    SESSION_EVENT_USER_CORRECTION,
    SESSION_EVENT_USER_FINAL,
    SessionEventPayload,
)

if TYPE_CHECKING:
    from astute.conversation.store import ConversationStore

logger = get_logger(__name__)


class ReconcilerState(str, Enum):
    NO_PENDING_USER = "no_pending_user"
    PENDING_USER = "pending_user"


class EventReconciler:
    """
    Turns session callbacks into transcript mutations for a single conversation.

    The most recent user message is held in a dedicated slot rather than
    looked up as "the last message": the transport may finalize the
    assistant's reply before the transcription of the user's utterance, so a
    correction can arrive after an assistant message has been appended.
    Assistant messages therefore never clear the slot; only a newer user
    utterance or ``reset()`` does.
    """

    def __init__(
        self,
        conversation: Conversation,
        store: ConversationStore,
        *,
        provisional_title_max_chars: int = PROVISIONAL_TITLE_MAX_CHARS,
        on_error: Callable[[Any], None] | None = None,
    ) -> None:
        self.conversation = conversation
        self.store = store
        self.provisional_title_max_chars = provisional_title_max_chars
        self._on_error = on_error
        self.pending_user: Message | None = None
        self.last_error: Any | None = None
        # Message the current provisional title was derived from.
        self._title_source: Message | None = None

    @property
    def state(self) -> ReconcilerState:
        if self.pending_user is None:
            return ReconcilerState.NO_PENDING_USER
        return ReconcilerState.PENDING_USER

    def on_user_final(self, text: str) -> None:
        if not text:
            return
        msg = self.conversation.add_message(MessageRole.USER, text)
        self.store.insert_message(msg)
        self.pending_user = msg
        self._update_provisional_title(text, msg, correcting=False)
        logger.debug(
            "User message recorded",
            conversation_id=self.conversation.id,
            message_id=msg.id,
            content_len=len(text),
        )
        self._flush()

    def on_assistant_final(self, text: str) -> None:
        if not text:
            return
        msg = self.conversation.add_message(MessageRole.ASSISTANT, text)
        self.store.insert_message(msg)
        logger.debug(
            "Assistant message recorded",
            conversation_id=self.conversation.id,
            message_id=msg.id,
            content_len=len(text),
        )
        self._flush()

    def on_user_correction(self, text: str) -> None:
        msg = self.pending_user
        if msg is None or not text:
            return
        msg.content = text
        self._update_provisional_title(text, msg, correcting=True)
        logger.debug(
            "User message corrected",
            conversation_id=self.conversation.id,
            message_id=msg.id,
            content_len=len(text),
        )
        self._flush()

    def on_error(self, error: Any) -> None:
        self.last_error = error
        logger.warning(
            "Session error",
            conversation_id=self.conversation.id,
            error_type=type(error).__name__,
            error=str(error),
        )
        if self._on_error is not None:
            self._on_error(error)

    def handle_event(self, event: SessionEventPayload) -> None:
        """Dispatch a typed session event payload."""
        event_type = event.get("type")
        if event_type == SESSION_EVENT_USER_FINAL:
            self.on_user_final(event.get("text", ""))
        elif event_type == SESSION_EVENT_ASSISTANT_FINAL:
            self.on_assistant_final(event.get("text", ""))
        elif event_type == SESSION_EVENT_USER_CORRECTION:
            self.on_user_correction(event.get("text", ""))
        elif event_type == SESSION_EVENT_ERROR:
            self.on_error(event.get("error"))
        else:
            logger.warning("Ignoring unknown session event", event_type=event_type)

    def reset(self) -> None:
        """Forget the pending user message (session ended)."""
        self.pending_user = None
        self._title_source = None

    def _update_provisional_title(self, text: str, source: Message, *, correcting: bool) -> None:
        conversation = self.conversation
        if conversation.title_generated or text == TRANSCRIPT_PLACEHOLDER:
            return
        if correcting:
            eligible = (
                conversation.has_default_title
                or conversation.title == TRANSCRIPT_PLACEHOLDER
                or self._title_source is source
            )
        else:
            eligible = conversation.has_default_title
        if not eligible:
            return
        conversation.title = text[: self.provisional_title_max_chars]
        self._title_source = source

    def _flush(self) -> None:
        try:
            self.store.save()
        except PersistenceError as e:
            # In-memory state stays authoritative until a later save succeeds.
            if self.conversation.id in e.failed_ids:
                logger.warning(
                    "Conversation save failed",
                    conversation_id=self.conversation.id,
                    error=str(e),
                )
            else:
                logger.warning("Store save failed", failed_ids=e.failed_ids, error=str(e))
