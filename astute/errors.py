"""Error kinds raised across the session and memory core.

Only ``PermissionDeniedError`` and ``SessionError`` are meant to reach the
user. ``PersistenceError`` and ``GenerationError`` are logged where they are
caught and retried on the next natural trigger (next mutation, next session end).
"""

from __future__ import annotations


class AstuteError(Exception):
    """Base class for all astute errors."""


class PermissionDeniedError(AstuteError):
    """Microphone access was refused."""

    def __init__(self, message: str = "Microphone access was denied.") -> None:
        super().__init__(message)


class SessionError(AstuteError):
    """The live session failed to connect or broke while running."""


class PersistenceError(AstuteError):
    """Writing conversations to the store failed."""

    def __init__(self, message: str, *, failed_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.failed_ids = list(failed_ids or [])


class GenerationError(AstuteError):
    """A summary or title request to the text-generation service failed."""
