"""Wire configuration into providers, memory services, and session controllers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from astute.memory.context import ContextInjector
from astute.memory.generator import MemoryGenerator
from astute.memory.services import Summarizer, TitleGenerator
from astute.providers.base import LLMProvider
from astute.providers.litellm_provider import LiteLLMProvider
from astute.session.controller import ConversationController

if TYPE_CHECKING:
    from astute.config.schema import Config
    from astute.conversation.models import Conversation
    from astute.conversation.store import ConversationStore
    from astute.memory.coordinator import MemoryCoordinator
    from astute.session.base import VoiceSession


def make_provider(config: Config) -> LiteLLMProvider:
    p = config.provider
    return LiteLLMProvider(
        api_key=p.resolved_api_key or None,
        api_base=p.api_base,
        default_model=p.model,
        resilience_config=p.resilience,
    )


def make_injector(config: Config) -> ContextInjector:
    return ContextInjector(
        max_context_tokens=config.context.max_context_tokens,
        max_past_conversations=config.context.max_past_conversations,
    )


def make_memory_generator(
    config: Config,
    store: ConversationStore,
    provider: LLMProvider | None = None,
) -> MemoryGenerator:
    provider = provider or make_provider(config)
    model = config.provider.model
    return MemoryGenerator(
        store,
        Summarizer(provider, model=model, max_tokens=config.memory.max_tokens),
        TitleGenerator(provider, model=model, max_chars=config.memory.title_max_chars),
        summary_min_messages=config.memory.summary_min_messages,
    )


def open_conversation(
    config: Config,
    store: ConversationStore,
    session: VoiceSession,
    conversation: Conversation,
    coordinator: MemoryCoordinator,
    provider: LLMProvider | None = None,
) -> ConversationController:
    """Create the controller that owns *session* for *conversation*."""
    store.insert(conversation)
    return ConversationController(
        conversation,
        store,
        session,
        injector=make_injector(config),
        baseline_instructions=config.context.baseline_instructions,
        memory=make_memory_generator(config, store, provider),
        coordinator=coordinator,
        provisional_title_max_chars=config.memory.provisional_title_max_chars,
        memory_wait_timeout=config.memory.wait_timeout,
    )
