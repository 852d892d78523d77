"""
Conversational model boundary.

- providers.py: OpenAI-compatible providers and the registry keyed by provider id
- service.py: per-user history, system prompt and provider choice
"""

from .providers import ChatCompletionsProvider, ProviderError, build_provider_registry
from .service import LlmService

__all__ = [
    "ChatCompletionsProvider",
    "LlmService",
    "ProviderError",
    "build_provider_registry",
]
