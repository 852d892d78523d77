"""
Search Command Handler

This module implements the SearchCommandHandler, the navigation state machine that
lets a chat user search the web and read pages through short commands.

Core Functionality:
-------------------
1. search <query>: Search the web and list numbered results
2. open <n>:       Open result n and show the page with numbered links
3. link <n>:       Follow link n of the current page
4. more:           Show the next chunk of the current page
5. back:           Return to the result list (re-running the search)
6. summarize:      Ask the conversational model to summarize the current page
7. exit:           Leave browse mode

State Management:
-----------------
Each user has a SessionState (chat or browse mode, last action, query, current URL,
result id) stored in a Repository keyed by sender id. Search results and the page
being read live in the WebSearchService. State only changes after the operation it
records has succeeded, so a failed command leaves the user where they were.

While a user is in browse mode, bare `back`, `more`, `exit` and `link N` work without
the command prefix and any other text starts a new search.

Concurrency:
------------
Messages from the same user are processed one at a time (UserLocks), so a command
always sees the state left by the previous one. Different users never wait on each
other.
"""

import contextvars
import dataclasses
import functools
from typing import AsyncIterator, Callable, ParamSpec

import structlog

from ...config import BrowserConfig
from ...types import InboundMessage, OutboundMessage, Reply, SummarizationRequest
from ..tool import Tool
from .backend import BackendError
from .page_contents import render_webpage_content
from .search_results import render_search_results
from .session import InMemoryRepository, LastAction, Mode, Repository, SessionState, UserLocks
from .web_search_service import ToolUsageError, WebSearchService

logger = structlog.stdlib.get_logger(component=__name__)

CallParams = ParamSpec("CallParams")

# Name of the command being handled (for reply authorship)
_live_command_name = contextvars.ContextVar[str]("_live_command_name")

BROWSE_SHORTHANDS = ("back", "more", "exit")
SEARCH_TEXT_PREFIX = "search "
LINK_TEXT_PREFIX = "link "

SUMMARY_PROMPT = (
    "Please provide a concise summary of the following webpage content. "
    "Focus on the main points and key information:"
)


@dataclasses.dataclass(frozen=True)
class Command:
    """A parsed user command: `name` is lowercase, `args` are the whitespace-split rest."""
    name: str
    args: tuple[str, ...] = ()

    @property
    def rest(self) -> str:
        return " ".join(self.args).strip()


def command_the_user_can_send(
    fn: Callable[CallParams, AsyncIterator[OutboundMessage]],
) -> Callable[CallParams, AsyncIterator[OutboundMessage]]:
    """Records the running command name so replies are authored as `search.<command>`."""

    @functools.wraps(fn)
    async def inner(*args: CallParams.args, **kwargs: CallParams.kwargs) -> AsyncIterator[OutboundMessage]:
        token = _live_command_name.set(fn.__name__.lstrip("_"))
        try:
            async for m in fn(*args, **kwargs):
                yield m
        finally:
            _live_command_name.reset(token)

    return inner


def handle_errors(
    error_prefix: str,
) -> Callable[
    [Callable[CallParams, AsyncIterator[OutboundMessage]]],
    Callable[CallParams, AsyncIterator[OutboundMessage]],
]:
    """
    Turns ToolUsageError / BackendError raised by a command into a reply.

    The reply reads `{error_prefix}: {error}`. Anything else propagates.
    """

    def decorator(
        func: Callable[CallParams, AsyncIterator[OutboundMessage]],
    ) -> Callable[CallParams, AsyncIterator[OutboundMessage]]:
        @functools.wraps(func)
        async def inner(*args: CallParams.args, **kwargs: CallParams.kwargs) -> AsyncIterator[OutboundMessage]:
            handler = args[0]
            assert isinstance(handler, SearchCommandHandler)
            try:
                async for msg in func(*args, **kwargs):
                    yield msg
            except (ToolUsageError, BackendError) as e:
                logger.warning("command_failed", command=func.__name__, error=str(e))
                yield handler.make_reply(f"{error_prefix}: {e}")

        return inner

    return decorator


class SearchCommandHandler(Tool):
    """
    Chat-command front end for web search and guided browsing.

    Args:
        service: WebSearchService holding search results and pages per user
        config: Browser settings (command prefix, links shown per page)
        sessions: Repository of SessionState per user (in-memory by default)
        locks: Per-user locks serializing command processing
    """

    def __init__(
        self,
        service: WebSearchService,
        config: BrowserConfig | None = None,
        sessions: Repository[SessionState] | None = None,
        locks: UserLocks | None = None,
    ) -> None:
        self.service = service
        self.config = config or service.config
        self.sessions: Repository[SessionState] = sessions if sessions is not None else InMemoryRepository()
        self.locks = locks if locks is not None else UserLocks()

    @classmethod
    def get_tool_name(cls) -> str:
        return "search"

    @property
    def name(self) -> str:
        return self.get_tool_name()

    @property
    def prefix(self) -> str:
        return self.config.command_prefix

    def instruction(self) -> str:
        p = self.prefix
        return "\n".join(
            [
                "Web search commands:",
                f"{p}search <query> - Search the web",
                f"{p}open <number> - Open a search result",
                f"{p}link <number> - Follow a link on the current page",
                f"{p}more - Show more of the current page",
                f"{p}back - Return to the search results",
                f"{p}summarize - Summarize the current page",
                f"{p}exit - Leave search mode",
            ]
        )

    def make_reply(self, text: str) -> Reply:
        """Reply authored as `search.<command>`; must be called while a command runs."""
        command = _live_command_name.get(None)
        author = f"{self.name}.{command}" if command else self.name
        return Reply(text=text, author=author)

    def get_session(self, user_id: str) -> SessionState:
        return self.sessions.get(user_id) or SessionState()

    def parse_command(self, session: SessionState, text: str) -> Command | None:
        """
        Decides what a message means for a user in the given session.

        Returns:
            The command to run, or None if the message is not for this handler.
        """
        if text.startswith(self.prefix):
            parts = text[len(self.prefix):].strip().split()
            if not parts:
                return Command(name="")
            return Command(name=parts[0].lower(), args=tuple(parts[1:]))

        stripped = text.strip()
        lowered = stripped.lower()
        if session.mode == Mode.BROWSE:
            if lowered in BROWSE_SHORTHANDS:
                return Command(name=lowered)
            if lowered.startswith(LINK_TEXT_PREFIX):
                return Command(name="link", args=tuple(stripped[len(LINK_TEXT_PREFIX):].split()))
            return Command(name="search", args=tuple(stripped.split()))

        if text.lower().startswith(SEARCH_TEXT_PREFIX):
            return Command(name="search", args=tuple(text[len(SEARCH_TEXT_PREFIX):].split()))

        return None

    async def _process(self, message: InboundMessage) -> AsyncIterator[OutboundMessage]:
        user_id = message.sender
        async with self.locks.lock(user_id):
            command = self.parse_command(self.get_session(user_id), message.text)
            if command is None:
                return
            logger.info("command", user_id=user_id, command=command.name, args=list(command.args))
            async for m in self._dispatch(user_id, command):
                yield m

    async def handle_inbound_text(self, sender: str, text: str) -> list[OutboundMessage] | None:
        """
        Runs a message through the handler and collects the outbound messages.

        Returns:
            The messages in order (the last one is the main reply), or None when
            the text should go to the conversational model instead.
        """
        messages = [m async for m in self.process(InboundMessage(sender=sender, text=text))]
        return messages or None

    async def _dispatch(self, user_id: str, command: Command) -> AsyncIterator[OutboundMessage]:
        handlers = {
            "search": lambda: self._search(user_id, command.rest),
            "open": lambda: self._open(user_id, command.args[0] if command.args else ""),
            "back": lambda: self._back(user_id),
            "link": lambda: self._link(user_id, command.args[0] if command.args else ""),
            "more": lambda: self._more(user_id),
            "summarize": lambda: self._summarize(user_id),
            "exit": lambda: self._exit(user_id),
        }
        if command.name not in handlers:
            async for m in self._unknown(command.name):
                yield m
            return
        async for m in handlers[command.name]():
            yield m

    @command_the_user_can_send
    async def _unknown(self, name: str) -> AsyncIterator[OutboundMessage]:
        yield self.make_reply(f"Unknown command: {name}. Type {self.prefix}help for available commands.")

    @command_the_user_can_send
    @handle_errors("Sorry, I encountered an error while searching")
    async def _search(self, user_id: str, query: str) -> AsyncIterator[OutboundMessage]:
        if not query:
            yield self.make_reply(
                f"Please provide a search query. For example: {self.prefix}search climate change"
            )
            return

        yield self.make_reply(f'🔍 Searching for: "{query}"...')
        results = await self.service.search(query, user_id)
        self.sessions.set(
            user_id,
            SessionState(mode=Mode.BROWSE, last_action=LastAction.SEARCH, query=query),
        )
        yield self.make_reply(render_search_results(results, prefix=self.prefix))

    @command_the_user_can_send
    @handle_errors("Sorry, I encountered an error opening that page")
    async def _open(self, user_id: str, arg: str) -> AsyncIterator[OutboundMessage]:
        try:
            result_id = int(arg)
        except ValueError:
            yield self.make_reply(
                f"Please specify a valid result number to open. For example: {self.prefix}open 2"
            )
            return

        result = self.service.get_search_result_by_id(user_id, result_id)
        if result is None:
            yield self.make_reply("Sorry, I couldn't find that search result. Please try searching again.")
            return

        yield self.make_reply(f'📄 Opening: "{result.title}"...')
        page = await self.service.browse(result.link, user_id)
        session = self.get_session(user_id)
        self.sessions.set(
            user_id,
            session.model_copy(
                update={
                    "mode": Mode.BROWSE,
                    "last_action": LastAction.OPEN,
                    "current_url": result.link,
                    "result_id": result_id,
                }
            ),
        )
        yield self.make_reply(
            render_webpage_content(page, prefix=self.prefix, display_links=self.config.display_links)
        )

    @command_the_user_can_send
    async def _back(self, user_id: str) -> AsyncIterator[OutboundMessage]:
        session = self.sessions.get(user_id)
        if session is None:
            self.sessions.set(user_id, SessionState())
            yield self.make_reply("There's no previous state to go back to.")
            return

        if session.last_action == LastAction.SEARCH:
            yield self.make_reply("You're already at the search results.")
            return

        if session.query:
            async for m in self._search(user_id, session.query):
                yield m
            return

        self.sessions.set(user_id, SessionState())
        yield self.make_reply("No search results available. Please try a new search.")

    @command_the_user_can_send
    @handle_errors("Sorry, I couldn't follow that link")
    async def _link(self, user_id: str, arg: str) -> AsyncIterator[OutboundMessage]:
        try:
            link_id = int(arg)
        except ValueError:
            yield self.make_reply(
                f"Please specify a valid link number to follow. For example: {self.prefix}link 2"
            )
            return

        yield self.make_reply(f"🔗 Following link #{link_id}...")
        page = await self.service.follow_link(user_id, link_id)
        session = self.get_session(user_id)
        self.sessions.set(
            user_id,
            session.model_copy(
                update={"mode": Mode.BROWSE, "last_action": LastAction.LINK, "current_url": page.url}
            ),
        )
        yield self.make_reply(
            render_webpage_content(page, prefix=self.prefix, display_links=self.config.display_links)
        )

    @command_the_user_can_send
    @handle_errors("Sorry, I encountered an error getting more content")
    async def _more(self, user_id: str) -> AsyncIterator[OutboundMessage]:
        chunk = self.service.get_more_content(user_id) if self.service.get_page(user_id) else ""
        if not chunk:
            yield self.make_reply("Sorry, there's no more content available for this page.")
            return
        yield self.make_reply(
            f"*More Content:*\n\n{chunk}\n\n(Type *{self.prefix}more* again for additional content)"
        )

    @command_the_user_can_send
    async def _summarize(self, user_id: str) -> AsyncIterator[OutboundMessage]:
        session = self.get_session(user_id)
        if session.mode != Mode.BROWSE or not session.current_url:
            yield self.make_reply("Please open a webpage first before using the summarize command.")
            return

        yield self.make_reply("📝 Generating summary of current webpage...")
        page = self.service.get_page(user_id)
        if page is None:
            yield self.make_reply("Sorry, I couldn't retrieve the current webpage content.")
            return

        content = page.full_text or page.text
        yield SummarizationRequest(
            title=page.title,
            content=content,
            prompt=f"{SUMMARY_PROMPT}\n\nTitle: {page.title}\n\nContent: {content}",
            author=f"{self.name}.summarize",
        )

    @command_the_user_can_send
    async def _exit(self, user_id: str) -> AsyncIterator[OutboundMessage]:
        self.sessions.delete(user_id)
        yield self.make_reply("Exited search mode. Back to normal chat.")
