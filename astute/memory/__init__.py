"""Conversation memory: context injection and post-session generation."""

from astute.memory.context import ContextInjector
from astute.memory.coordinator import MemoryCoordinator
from astute.memory.generator import MemoryGenerator, MemoryResult
from astute.memory.services import Summarizer, TitleGenerator

__all__ = [
    "ContextInjector",
    "MemoryCoordinator",
    "MemoryGenerator",
    "MemoryResult",
    "Summarizer",
    "TitleGenerator",
]
