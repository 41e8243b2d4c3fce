"""LLM-backed summary and title generation."""

from __future__ import annotations

from typing import Sequence

from astute.conversation.models import Message
from astute.errors import GenerationError
from astute.logging import get_logger
from astute.memory.context import format_transcript_lines
from astute.providers.base import LLMProvider, LLMResponse

logger = get_logger(__name__)

_SUMMARY_SYSTEM_PROMPT = (
    "You summarize conversations between a user and an AI assistant so the assistant "
    "can remember them later. Write 2-4 sentences covering the topics discussed, "
    "decisions made, and any facts the user shared about themselves. "
    "Reply with the summary only."
)

_TITLE_SYSTEM_PROMPT = (
    "You write short titles for conversations between a user and an AI assistant. "
    "Reply with a title of at most six words. No quotes, no trailing punctuation."
)


def _transcript_prompt(messages: Sequence[Message], heading: str) -> str:
    lines = format_transcript_lines(messages, with_timestamps=True)
    if not lines:
        raise GenerationError("conversation has no content to process")
    return f"## {heading}\n" + "\n".join(lines)


def _response_text(response: LLMResponse, what: str) -> str:
    if response.is_error:
        raise GenerationError(f"{what} request failed: {response.content or '(empty)'}")
    text = (response.content or "").strip()
    if not text:
        raise GenerationError(f"{what} request returned no content")
    return text


class Summarizer:
    """Produces a conversation summary for cross-conversation memory."""

    def __init__(self, provider: LLMProvider, model: str | None = None, max_tokens: int = 512):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens

    async def summarize(self, messages: Sequence[Message]) -> str:
        prompt = _transcript_prompt(messages, "Conversation to Summarize")
        response = await self.provider.chat(
            messages=[
                {"role": "system", "content": _SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0.3,
        )
        return _response_text(response, "Summary")


class TitleGenerator:
    """Produces a short display title for a conversation."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        max_chars: int = 60,
        max_tokens: int = 32,
    ):
        self.provider = provider
        self.model = model
        self.max_chars = max_chars
        self.max_tokens = max_tokens

    @staticmethod
    def normalize_title(raw: str, max_chars: int) -> str:
        """First line, without wrapping quotes or a trailing period, capped at *max_chars*."""
        title = raw.strip().splitlines()[0].strip() if raw.strip() else ""
        if title.lower().startswith("title:"):
            title = title[len("title:"):].strip()
        title = title.strip("\"'“”‘’`").strip()
        title = title.rstrip(".").strip()
        return title[:max_chars].rstrip()

    async def generate_title(self, messages: Sequence[Message]) -> str:
        prompt = _transcript_prompt(messages, "Conversation to Title")
        response = await self.provider.chat(
            messages=[
                {"role": "system", "content": _TITLE_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0.3,
        )
        title = self.normalize_title(_response_text(response, "Title"), self.max_chars)
        if not title:
            raise GenerationError("Title request returned only punctuation")
        return title
