"""
Conversation service: per-user history, settings and provider selection.

Each user has their own system prompt, provider choice and bounded conversation
history. The provider is looked up in the registry on every call, so switching
providers only affects the user who asked for it.
"""

from typing import Any, Mapping

import openai
import pydantic
import structlog

from ..config import LlmConfig
from ..types import SummarizationRequest
from .providers import ChatCompletionsProvider, ProviderError, build_provider_registry

logger = structlog.stdlib.get_logger(component=__name__)


class UserSettings(pydantic.BaseModel):
    system_prompt: str
    provider: str


class OperationResult(pydantic.BaseModel):
    """Outcome of a settings change, with the text to show the user."""
    success: bool
    message: str


class LlmService:
    def __init__(
        self,
        config: LlmConfig | None = None,
        providers: Mapping[str, ChatCompletionsProvider] | None = None,
    ):
        self.config = config or LlmConfig()
        self.providers = dict(providers) if providers is not None else build_provider_registry()
        self.conversations: dict[str, list[dict[str, Any]]] = {}
        self.user_settings: dict[str, UserSettings] = {}

    def get_user_settings(self, user_id: str) -> UserSettings:
        if user_id not in self.user_settings:
            self.user_settings[user_id] = UserSettings(
                system_prompt=self.config.default_system_prompt,
                provider=self.config.default_provider,
            )
        return self.user_settings[user_id]

    def get_current_provider(self, user_id: str) -> ChatCompletionsProvider:
        provider_id = self.get_user_settings(user_id).provider
        if provider_id not in self.providers:
            raise ProviderError(f"Unknown provider: {provider_id}")
        return self.providers[provider_id]

    def available_providers(self) -> list[ChatCompletionsProvider]:
        return list(self.providers.values())

    def switch_provider(self, user_id: str, provider_id: str) -> OperationResult:
        provider = self.providers.get(provider_id)
        if provider is None:
            return OperationResult(
                success=False,
                message=f"Unknown provider: {provider_id}. Available providers: {', '.join(self.providers)}",
            )
        if not provider.is_configured:
            return OperationResult(
                success=False,
                message=(
                    f"API key not configured for provider: {provider.name}. "
                    f"Please set the {provider_id.upper()}_API_KEY environment variable."
                ),
            )
        settings = self.get_user_settings(user_id)
        self.user_settings[user_id] = settings.model_copy(update={"provider": provider_id})
        logger.info("switch_provider", user_id=user_id, provider=provider_id)
        return OperationResult(success=True, message=f"Switched to {provider.name} using model: {provider.model}")

    def update_system_prompt(self, user_id: str, prompt: str) -> OperationResult:
        settings = self.get_user_settings(user_id)
        self.user_settings[user_id] = settings.model_copy(update={"system_prompt": prompt})
        return OperationResult(success=True, message="System prompt updated.")

    def get_history(self, user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        history = self.conversations.get(user_id, [])
        return history[-limit:] if limit else list(history)

    def update_history(self, user_id: str, role: str, content: str) -> None:
        history = self.conversations.setdefault(user_id, [])
        history.append({"role": role, "content": content})
        # user + assistant turns
        max_length = self.config.max_history_length * 2
        if len(history) > max_length:
            del history[: len(history) - max_length]

    def clear_history(self, user_id: str) -> OperationResult:
        self.conversations.pop(user_id, None)
        return OperationResult(success=True, message="Conversation history cleared.")

    def _prepare_messages(self, user_id: str) -> list[dict[str, Any]]:
        settings = self.get_user_settings(user_id)
        messages = [{"role": "system", "content": settings.system_prompt or self.config.default_system_prompt}]
        messages.extend(self.get_history(user_id, self.config.max_history_length))
        return messages

    async def get_response(self, user_id: str, text: str) -> str:
        """
        Continue the user's conversation with `text` and return the model's answer.

        Provider failures are answered with an apology that includes the error. The
        user turn stays in the history; the apology is not recorded.
        """
        self.update_history(user_id, "user", text)
        try:
            provider = self.get_current_provider(user_id)
            logger.info("llm_request", user_id=user_id, provider=provider.id, model=provider.model)
            answer = await provider.complete(self._prepare_messages(user_id))
        except (ProviderError, openai.OpenAIError) as e:
            logger.warning("llm_request_failed", user_id=user_id, exc_info=e)
            return f"Sorry, I encountered an error while processing your request. Error details: {e}"
        self.update_history(user_id, "assistant", answer)
        return answer

    async def summarize(self, user_id: str, request: SummarizationRequest) -> str:
        """
        Summarize a webpage for the user.

        The full page text is sent once; only a short marker and the summary are kept
        in the history, so follow-up questions can refer to the summary.
        """
        settings = self.get_user_settings(user_id)
        messages = [
            {"role": "system", "content": settings.system_prompt},
            {"role": "user", "content": request.prompt},
        ]
        try:
            provider = self.get_current_provider(user_id)
            logger.info("llm_summarize", user_id=user_id, provider=provider.id, title=request.title)
            summary = await provider.complete(messages)
        except (ProviderError, openai.OpenAIError) as e:
            logger.warning("llm_summarize_failed", user_id=user_id, exc_info=e)
            return f"Sorry, I encountered an error summarizing this webpage: {e}"
        self.update_history(user_id, "user", f"Summarize the webpage: {request.title}")
        self.update_history(user_id, "assistant", summary)
        return summary
