"""Coordinate background memory generation per conversation."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from astute.logging import get_logger

logger = get_logger(__name__)


class MemoryCoordinator:
    """Tracks in-flight memory tasks and per-conversation locks."""

    def __init__(self) -> None:
        self.in_progress: set[str] = set()
        self.tasks: dict[str, asyncio.Task[Any]] = {}
        self.locks: dict[str, asyncio.Lock] = {}
        # Follow-up work requested while a run was in flight; latest request wins.
        self.pending: dict[str, Callable[[], Awaitable[Any]]] = {}

    def get_lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self.locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self.locks[conversation_id] = lock
        return lock

    def prune_lock(self, conversation_id: str, lock: asyncio.Lock) -> None:
        """Drop lock entry if no longer in use; batch-clean when dict grows large."""
        if not lock.locked():
            self.locks.pop(conversation_id, None)
        if len(self.locks) > 100:
            stale = [k for k, v in self.locks.items() if not v.locked()]
            for key in stale:
                del self.locks[key]

    def is_running(self, conversation_id: str) -> bool:
        return conversation_id in self.in_progress

    def start_background(
        self,
        conversation_id: str,
        work: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task[Any]:
        """
        Run memory work for a conversation in the background.

        Runs for the same conversation are serialized. A request made while a
        run is in flight is queued as a single follow-up run of the same task,
        so every session end is covered; the in-flight task is returned.

        The task is not tied to the session that scheduled it and keeps
        running after the session is closed.
        """
        if conversation_id in self.in_progress:
            self.pending[conversation_id] = work
            logger.debug("Memory generation queued behind running task", conversation_id=conversation_id)
            return self.tasks[conversation_id]

        lock = self.get_lock(conversation_id)
        self.in_progress.add(conversation_id)

        async def _runner() -> None:
            next_work: Callable[[], Awaitable[Any]] | None = work
            try:
                while next_work is not None:
                    async with lock:
                        try:
                            await next_work()
                        except Exception:
                            logger.exception(
                                "Background memory generation failed",
                                conversation_id=conversation_id,
                            )
                    next_work = self.pending.pop(conversation_id, None)
            finally:
                self.pending.pop(conversation_id, None)
                self.in_progress.discard(conversation_id)
                self.prune_lock(conversation_id, lock)
                self.tasks.pop(conversation_id, None)

        task = asyncio.create_task(_runner())
        self.tasks[conversation_id] = task
        return task

    async def wait_idle(self, conversation_id: str, timeout: float | None = None) -> bool:
        """Wait for in-flight work (including a queued follow-up). Returns False on timeout."""
        task = self.tasks.get(conversation_id)
        if task is None or task.done():
            return True
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out waiting for memory generation",
                conversation_id=conversation_id,
                timeout=timeout,
            )
            return False
        return True

    async def drain(self) -> None:
        """Wait for every in-flight task (used on shutdown)."""
        tasks = [t for t in self.tasks.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
