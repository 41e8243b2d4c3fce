"""LLM provider abstraction module."""

from astute.providers.base import LLMProvider, LLMResponse
from astute.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider"]
