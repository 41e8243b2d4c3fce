"""Configuration schema using Pydantic."""

from __future__ import annotations

import os
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_ENV_REF_RE = re.compile(r"^\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?$")

DEFAULT_BASELINE_INSTRUCTIONS = (
    "You are a helpful and friendly AI assistant. You respond naturally via voice "
    "and text. Keep your responses concise but engaging."
)


def _resolve_env(value: str) -> str:
    """Resolve ``$VAR`` / ``${VAR}`` references; return *value* unchanged if unset."""
    if not value:
        return value
    m = _ENV_REF_RE.match(value.strip())
    if not m:
        return value
    return os.environ.get(m.group(1), value)


class Base(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResilienceConfig(Base):
    """Timeout / retry / circuit-breaker settings for LLM calls."""

    timeout: int = 120  # seconds per request
    max_retries: int = 3
    circuit_breaker_threshold: int = 5  # consecutive failures before opening; 0 disables
    circuit_breaker_cooldown: int = 60  # seconds


class ProviderConfig(Base):
    """Text-generation provider used for summaries and titles."""

    api_key: str = ""
    api_base: str | None = None
    model: str = "openai/gpt-4o-mini"
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)

    @property
    def resolved_api_key(self) -> str:
        return _resolve_env(self.api_key)


class MemoryConfig(Base):
    """Post-session memory generation."""

    summary_min_messages: int = 2
    title_max_chars: int = 60
    provisional_title_max_chars: int = 50
    max_tokens: int = 512
    wait_timeout: float = 10.0  # seconds a new session waits for in-flight memory work


class ContextConfig(Base):
    """Session-start instruction building."""

    baseline_instructions: str = DEFAULT_BASELINE_INSTRUCTIONS
    max_context_tokens: int = 6000
    max_past_conversations: int = 10


class Config(Base):
    """Root configuration for astute."""

    workspace: str = "~/.astute"
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)

    @property
    def workspace_path(self) -> Path:
        return Path(self.workspace).expanduser()
