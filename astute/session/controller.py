"""Coordinate one conversation's live session, transcript, and memory lifecycle."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from astute.errors import PermissionDeniedError, SessionError
from astute.logging import get_logger
from astute.session.reconciler import EventReconciler

if TYPE_CHECKING:
    from astute.conversation.models import Conversation
    from astute.conversation.store import ConversationStore
    from astute.memory.context import ContextInjector
    from astute.memory.coordinator import MemoryCoordinator
    from astute.memory.generator import MemoryGenerator
    from astute.session.base import VoiceSession

logger = get_logger(__name__)


class ConversationController:
    """
    Owns the EventReconciler for the active session of one conversation.

    All transcript mutations run on the event loop this controller lives on.
    The session only holds a plain reference to the reconciler; the
    controller keeps it alive until ``close()``.
    """

    def __init__(
        self,
        conversation: Conversation,
        store: ConversationStore,
        session: VoiceSession,
        *,
        injector: ContextInjector,
        baseline_instructions: str,
        memory: MemoryGenerator,
        coordinator: MemoryCoordinator,
        provisional_title_max_chars: int = 50,
        memory_wait_timeout: float = 10.0,
    ) -> None:
        self.conversation = conversation
        self.store = store
        self.session = session
        self.injector = injector
        self.baseline_instructions = baseline_instructions
        self.memory = memory
        self.coordinator = coordinator
        self.memory_wait_timeout = memory_wait_timeout
        self.is_recording = False
        self.error_message: str | None = None
        self._starting = False
        self.reconciler = EventReconciler(
            conversation,
            store,
            provisional_title_max_chars=provisional_title_max_chars,
            on_error=self._on_session_error,
        )
        session.delegate = self.reconciler

    @property
    def status(self) -> str:
        if self.session.is_responding:
            return "responding"
        if self.session.is_user_speaking:
            return "hearing"
        if self.is_recording:
            return "listening"
        return "ready"

    def _on_session_error(self, error: Any) -> None:
        self.error_message = str(error) or type(error).__name__

    def inject_context(self) -> str:
        """Build instructions from stored history and apply them to the session."""
        others = [
            c for c in self.store.fetch_all_sorted_by_recency()
            if c.id != self.conversation.id
        ]
        instructions = self.injector.build_instructions(
            self.baseline_instructions,
            self.conversation.sorted_messages(),
            others,
        )
        self.session.update_instructions(instructions)
        return instructions

    async def start(self) -> None:
        """
        Acquire the microphone and connect.

        A call made while another start is still in progress returns at once.

        Raises:
            PermissionDeniedError: microphone access refused (not retried).
            SessionError: the session failed to connect.
        """
        if self._starting:
            return
        self._starting = True
        try:
            await self._start()
        finally:
            self._starting = False

    async def _start(self) -> None:
        granted = await self.session.request_permission()
        if not granted:
            self.error_message = "Microphone access was denied."
            raise PermissionDeniedError(self.error_message)

        # A previous session's memory work may still be writing this conversation.
        await self.coordinator.wait_idle(self.conversation.id, timeout=self.memory_wait_timeout)

        # Instructions must be in place before start() so the initial handshake carries them.
        self.inject_context()
        try:
            await self.session.start()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_message = str(e) or "Failed to connect."
            logger.warning(
                "Session start failed",
                conversation_id=self.conversation.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise SessionError(self.error_message) from e

        self.error_message = None
        self.is_recording = True
        logger.info("Session started", conversation_id=self.conversation.id)

    def stop(self) -> None:
        self.is_recording = False
        self.session.stop()

    async def toggle_recording(self) -> None:
        if self.is_recording:
            self.stop()
        else:
            await self.start()

    async def send_text(self, text: str) -> None:
        """Send typed text; connects first-time sends once the text is queued."""
        text = text.strip()
        if not text:
            return
        if self.session.is_connected:
            self.session.send_text(text)
            return
        # The session queues it until connected and reports it back as a user message.
        self.session.send_text(text)
        await self.start()

    def close(self) -> asyncio.Task[Any]:
        """
        End the session and schedule memory generation in the background.

        If an earlier run for this conversation is still going, a follow-up run
        is queued behind it and that task is returned. Later navigation does
        not cancel the returned task.
        """
        self.stop()
        self.reconciler.reset()
        conversation = self.conversation
        return self.coordinator.start_background(
            conversation.id,
            lambda: self.memory.generate(conversation),
        )
