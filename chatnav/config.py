"""
Configuration objects for chatnav.

All settings are chz classes, so they can be constructed directly in code, overridden
from the command line, or loaded from the environment with AppConfig.from_env().

Environment variables read by from_env():
    DEFAULT_PROVIDER        LLM provider used for new users (default: openai)
    SEARCH_RESULTS_LIMIT    Organic results kept per search (default: 5)
    CONTENT_SUMMARY_LENGTH  Characters of page text shown per view (default: 1000)
    COMMAND_PREFIX          Prefix of chat commands (default: !)
"""

import os

import chz

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Be concise and friendly in your responses."


@chz.chz(typecheck=True)
class BrowserConfig:
    search_results_limit: int = chz.field(doc="Organic search results kept per search", default=5)
    content_summary_length: int = chz.field(
        doc="Characters of page text shown per view, and per `more` chunk", default=1000
    )
    max_links: int = chz.field(doc="Links stored per page", default=15)
    display_links: int = chz.field(doc="Links listed in the page view", default=10)
    command_prefix: str = chz.field(doc="Prefix that marks a chat command", default="!")


@chz.chz(typecheck=True)
class LlmConfig:
    default_provider: str = chz.field(doc="Provider id used for new users", default="openai")
    max_history_length: int = chz.field(
        doc="Messages of conversation history kept per user (system prompt excluded)", default=10
    )
    default_system_prompt: str = chz.field(
        doc="System prompt for users who have not set their own", default=DEFAULT_SYSTEM_PROMPT
    )


@chz.chz(typecheck=True)
class AppConfig:
    browser: BrowserConfig = chz.field(doc="Search and browsing settings", default_factory=BrowserConfig)
    llm: LlmConfig = chz.field(doc="Conversational model settings", default_factory=LlmConfig)
    prefix_commands: bool = chz.field(
        doc="Whether utility commands (help, ping, ...) require the command prefix", default=True
    )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        browser = BrowserConfig(
            search_results_limit=int(env.get("SEARCH_RESULTS_LIMIT", "5")),
            content_summary_length=int(env.get("CONTENT_SUMMARY_LENGTH", "1000")),
            command_prefix=env.get("COMMAND_PREFIX", "!"),
        )
        llm = LlmConfig(default_provider=env.get("DEFAULT_PROVIDER", "openai"))
        return cls(browser=browser, llm=llm)
