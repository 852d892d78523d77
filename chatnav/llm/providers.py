"""
LLM Providers

Every supported provider speaks the OpenAI Chat Completions API, so a single
ChatCompletionsProvider class (backed by the `openai` SDK) covers all of them. The
registry maps a short provider id to a configured instance.

Environment:
    <ID>_API_KEY   Credential for the provider (required to use it)
    <ID>_BASE_URL  Override of the provider's API endpoint
    <ID>_MODEL     Override of the provider's default model

    where <ID> is the upper-cased provider id, e.g. GROQ_API_KEY.
"""

import os
from typing import Any, Mapping

from openai import AsyncOpenAI

# id -> (display name, default base url, default model)
PROVIDER_DEFAULTS: dict[str, tuple[str, str, str]] = {
    "openai": ("OpenAI", "https://api.openai.com/v1", "gpt-4o"),
    "google": ("Google AI", "https://generativelanguage.googleapis.com/v1beta/openai", "gemini-2.0-flash"),
    "groq": ("Groq", "https://api.groq.com/openai/v1", "llama-3.3-70b-versatile"),
    "claude": ("Claude", "https://api.anthropic.com/v1", "claude-3-7-sonnet-latest"),
    "openrouter": ("OpenRouter", "https://openrouter.ai/api/v1", "deepseek/deepseek-r1:free"),
}


class ProviderError(Exception):
    """
    Raised when a provider cannot be used.

    This includes:
    - Unknown provider ids
    - Providers without an API key
    """
    pass


class ChatCompletionsProvider:
    """
    A conversational model reachable through an OpenAI-compatible endpoint.

    The client is created on first use, so building the registry never needs
    network access or credentials.
    """

    def __init__(
        self,
        id: str,
        name: str,
        model: str,
        base_url: str,
        api_key: str | None = None,
    ):
        self.id = id
        self.name = name
        self.model = model
        self.base_url = base_url
        self.api_key = api_key
        self._client: AsyncOpenAI | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> AsyncOpenAI:
        if not self.api_key:
            raise ProviderError(
                f"API key not configured for provider: {self.name}. "
                f"Please set the {self.id.upper()}_API_KEY environment variable."
            )
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def complete(self, messages: list[dict[str, Any]]) -> str:
        """
        Generate the assistant's next message.

        Args:
            messages: Conversation in Chat Completions format ({"role", "content"} dicts)

        Returns:
            The generated text ("" if the provider returned no content)

        Raises:
            ProviderError: If the provider has no API key
            openai.OpenAIError: If the API call fails
        """
        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=messages,
        )
        return response.choices[0].message.content or ""


def build_provider_registry(environ: Mapping[str, str] | None = None) -> dict[str, ChatCompletionsProvider]:
    """Creates one provider per known id, applying environment overrides."""
    env = os.environ if environ is None else environ
    registry = {}
    for provider_id, (name, base_url, model) in PROVIDER_DEFAULTS.items():
        key = provider_id.upper()
        registry[provider_id] = ChatCompletionsProvider(
            id=provider_id,
            name=name,
            model=env.get(f"{key}_MODEL") or model,
            base_url=env.get(f"{key}_BASE_URL") or base_url,
            api_key=env.get(f"{key}_API_KEY"),
        )
    return registry
