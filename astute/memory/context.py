"""Build session-start instructions from the baseline and prior conversation state."""

from __future__ import annotations

from typing import Iterable, Sequence

from astute.conversation.models import Conversation, Message

SECTION_SEPARATOR = "\n\n---\n\n"


def format_transcript_lines(messages: Iterable[Message], *, with_timestamps: bool = False) -> list[str]:
    """Render messages as ``ROLE: content`` lines, skipping empty content."""
    lines: list[str] = []
    for m in messages:
        if not m.content:
            continue
        prefix = f"[{m.timestamp:%Y-%m-%d %H:%M}] " if with_timestamps else ""
        lines.append(f"{prefix}{m.role.value.upper()}: {m.content}")
    return lines


class ContextInjector:
    """
    Assembles the instruction text handed to a session before it starts.

    Output is a pure function of the arguments: no clock reads, no I/O.
    The result must be applied to the session before ``start()`` so the
    initial handshake already carries it.
    """

    _CHARS_PER_TOKEN = 4
    _DEFAULT_MAX_CONTEXT_TOKENS = 6000
    _DEFAULT_MAX_PAST_CONVERSATIONS = 10

    def __init__(
        self,
        max_context_tokens: int | None = None,
        max_past_conversations: int | None = None,
    ):
        self.max_context_tokens = max_context_tokens or self._DEFAULT_MAX_CONTEXT_TOKENS
        self.max_past_conversations = (
            max_past_conversations
            if max_past_conversations is not None
            else self._DEFAULT_MAX_PAST_CONVERSATIONS
        )

    @classmethod
    def _estimate_tokens(cls, text: str) -> int:
        return max(1, len(text) // cls._CHARS_PER_TOKEN) if text else 0

    def build_instructions(
        self,
        baseline: str,
        current_messages: Sequence[Message],
        other_conversations: Sequence[Conversation],
    ) -> str:
        """
        Merge baseline, current transcript, and past-conversation digests.

        Args:
            baseline: Fixed assistant instructions.
            current_messages: Transcript of the resumed conversation, already
                sorted by ascending timestamp.
            other_conversations: Other conversations, most recent first.

        Returns:
            Instruction text; equals the stripped baseline when there is no history.
        """
        parts = [baseline.strip()]

        transcript = self._build_transcript_section(current_messages)
        if transcript:
            parts.append(transcript)

        past = self._build_past_section(other_conversations)
        if past:
            parts.append(past)

        return SECTION_SEPARATOR.join(p for p in parts if p)

    def _build_transcript_section(self, messages: Sequence[Message]) -> str:
        lines = format_transcript_lines(messages)
        if not lines:
            return ""

        kept: list[str] = []
        total = 0
        for line in reversed(lines):
            cost = self._estimate_tokens(line)
            if kept and total + cost > self.max_context_tokens:
                break
            kept.append(line)
            total += cost
        kept.reverse()

        omitted = len(lines) - len(kept)
        if omitted:
            kept.insert(0, f"({omitted} earlier messages omitted)")

        return (
            "# Current Conversation\n\n"
            "This is the conversation so far. Continue it naturally without repeating earlier answers.\n\n"
            + "\n".join(kept)
        )

    def _build_past_section(self, conversations: Sequence[Conversation]) -> str:
        digests: list[str] = []
        for conversation in conversations:
            if len(digests) >= self.max_past_conversations:
                break
            summary = (conversation.summary or "").strip()
            if not summary:
                continue
            digests.append(f"## {conversation.title} ({conversation.timestamp:%Y-%m-%d})\n{summary}")
        if not digests:
            return ""
        return (
            "# Past Conversations\n\n"
            "Summaries of earlier conversations with this user. Refer to them when relevant.\n\n"
            + "\n\n".join(digests)
        )
