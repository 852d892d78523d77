"""
Message Service

Routes every inbound message to the component that should answer it:

1. Utility commands (`!help`, `!clear`, `!ping`, `!provider`, `!system`) are
   answered directly.
2. Everything else is offered to the web search handler. If it yields anything,
   the message was a navigation command; summarization requests it yields are
   resolved through the LLM service.
3. Messages the search handler leaves alone go to the conversational model.

Every inbound message gets at least one reply, even when something unexpected
goes wrong.
"""

from typing import AsyncIterator

import structlog

from .adapters.adapter import Adapter
from .config import AppConfig
from .llm.service import LlmService
from .tools.tool import Tool
from .types import InboundMessage, SummarizationRequest

logger = structlog.stdlib.get_logger(component=__name__)

FALLBACK_REPLY = "Sorry, I encountered an error while processing your message."
UTILITY_COMMANDS = ("help", "clear", "ping", "provider", "system")


class MessageService:
    def __init__(
        self,
        adapter: Adapter | None,
        search_handler: Tool,
        llm_service: LlmService,
        config: AppConfig | None = None,
    ):
        self.adapter = adapter
        self.search_handler = search_handler
        self.llm_service = llm_service
        self.config = config or AppConfig()
        if self.adapter is not None:
            self.adapter.set_message_handler(self.stream_replies)

    @property
    def prefix(self) -> str:
        return self.config.browser.command_prefix

    async def initialize(self) -> None:
        logger.info("initializing_message_service")
        if self.adapter is not None:
            await self.adapter.initialize()

    async def close(self) -> None:
        if self.adapter is not None:
            await self.adapter.close()

    async def handle_message(self, sender: str, text: str) -> list[str]:
        """All replies to one message, in delivery order."""
        return [reply async for reply in self.stream_replies(sender, text)]

    async def stream_replies(self, sender: str, text: str) -> AsyncIterator[str]:
        """
        Yields the replies to one message as soon as each is ready.

        Progress notices ("Searching for ...") come out before the slow operation
        they announce finishes.
        """
        logger.info("received_message", sender=sender, text=text)
        try:
            if self.config.prefix_commands and text.startswith(self.prefix):
                reply = self.handle_utility_command(sender, text[len(self.prefix):])
                if reply is not None:
                    yield reply
                    return

            handled = False
            async for message in self.search_handler.process(InboundMessage(sender=sender, text=text)):
                handled = True
                if isinstance(message, SummarizationRequest):
                    yield await self.llm_service.summarize(sender, message)
                else:
                    yield message.text
            if handled:
                return

            yield await self.llm_service.get_response(sender, text)
        except Exception:
            logger.exception("error_handling_message", sender=sender)
            yield FALLBACK_REPLY

    def handle_utility_command(self, sender: str, command: str) -> str | None:
        """
        Answers a utility command (text after the prefix).

        Returns:
            The reply, or None when the command is not a utility command.
        """
        parts = command.strip().split()
        if not parts or parts[0].lower() not in UTILITY_COMMANDS:
            return None
        name, args = parts[0].lower(), parts[1:]

        if name == "help":
            return self.help_text()
        if name == "clear":
            return self.llm_service.clear_history(sender).message
        if name == "ping":
            return "Pong! Bot is responsive."
        if name == "provider":
            return self.handle_provider_command(sender, args)
        prompt = " ".join(args).strip()
        if not prompt:
            settings = self.llm_service.get_user_settings(sender)
            return f'Current system prompt: "{settings.system_prompt}"'
        return self.llm_service.update_system_prompt(sender, prompt).message

    def handle_provider_command(self, sender: str, args: list[str]) -> str:
        if not args:
            provider = self.llm_service.get_current_provider(sender)
            return f"Current provider: {provider.name} (Model: {provider.model})"

        sub_command = args[0].lower()
        if sub_command == "list":
            lines = ["Available providers:"]
            for provider in self.llm_service.available_providers():
                status = "✅" if provider.is_configured else "❌"
                lines.append(f"- {provider.id}: {provider.name} ({provider.model}) {status}")
            lines.append("")
            lines.append(f'Use "{self.prefix}provider set <id>" to switch providers.')
            return "\n".join(lines)

        if sub_command == "set":
            if len(args) < 2:
                return f'Please specify a provider ID. Use "{self.prefix}provider list" to see available providers.'
            return self.llm_service.switch_provider(sender, args[1].lower()).message

        return f"Unknown subcommand: {sub_command}. Available options are: list, set"

    def help_text(self) -> str:
        p = self.prefix
        return "\n".join(
            [
                "Available commands:",
                f"{p}help - Show this help message",
                f"{p}clear - Clear conversation history",
                f"{p}ping - Check if bot is responsive",
                f"{p}provider - Show current LLM provider",
                f"{p}provider list - List available providers",
                f"{p}provider set <name> - Switch to a different provider",
                f"{p}system <prompt> - Set system prompt",
                "",
                self.search_handler.instruction(),
            ]
        )
