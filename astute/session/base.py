"""Live session abstraction the core drives but does not implement."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol


class SessionDelegate(Protocol):
    """Callbacks a live session emits. Invoked on the event loop, at most once per event."""

    def on_user_final(self, text: str) -> None: ...

    def on_assistant_final(self, text: str) -> None: ...

    def on_user_correction(self, text: str) -> None: ...

    def on_error(self, error: Any) -> None: ...


class VoiceSession(ABC):
    """
    Opaque voice/text connection to a realtime assistant.

    Implementations own audio capture and the network transport. They hold
    only a reference to their delegate; the ConversationController keeps the
    delegate alive for the lifetime of the session.
    """

    delegate: SessionDelegate | None = None

    @abstractmethod
    async def request_permission(self) -> bool:
        """Ask for microphone access. Returns False when refused."""

    @abstractmethod
    def update_instructions(self, instructions: str) -> None:
        """Set the instructions sent with the initial session handshake."""

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin streaming. Raises on connection failure."""

    @abstractmethod
    def stop(self) -> None:
        """Tear down network and audio resources."""

    @abstractmethod
    def send_text(self, text: str) -> None:
        """
        Send a typed message.

        Text sent before the session is connected is queued and delivered
        once it connects. Either way the session reports it back through
        ``delegate.on_user_final`` so it is persisted like speech.
        """

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @property
    def is_user_speaking(self) -> bool:
        return False

    @property
    def is_responding(self) -> bool:
        return False
