import asyncio

import pytest
from conftest import FakeSearchBackend

from chatnav.config import BrowserConfig
from chatnav.tools.web_browser.backend import BackendConfigurationError, BackendError
from chatnav.tools.web_browser.page_contents import FetchResult
from chatnav.tools.web_browser.search_command_handler import Command, SearchCommandHandler
from chatnav.tools.web_browser.session import LastAction, Mode, SessionState
from chatnav.tools.web_browser.web_search_service import WebSearchService
from chatnav.types import Reply, SummarizationRequest

USER = "15551234567"


async def send(handler, text, user=USER):
    return await handler.handle_inbound_text(user, text)


def texts(messages):
    return [m.text for m in messages if isinstance(m, Reply)]


def test_parse_command_prefix():
    handler_session = SessionState()
    handler = SearchCommandHandler(WebSearchService(FakeSearchBackend(), None))
    assert handler.parse_command(handler_session, "!Search  climate   change") == Command(
        name="search", args=("climate", "change")
    )
    assert handler.parse_command(handler_session, "!open 3") == Command(name="open", args=("3",))
    assert handler.parse_command(handler_session, "Search cats") == Command(name="search", args=("cats",))
    assert handler.parse_command(handler_session, "hello there") is None
    assert handler.parse_command(handler_session, "back") is None


def test_parse_command_browse_mode_shorthands():
    handler = SearchCommandHandler(WebSearchService(FakeSearchBackend(), None))
    browsing = SessionState(mode=Mode.BROWSE, last_action=LastAction.SEARCH, query="q")
    assert handler.parse_command(browsing, " BACK ") == Command(name="back")
    assert handler.parse_command(browsing, "more") == Command(name="more")
    assert handler.parse_command(browsing, "Exit") == Command(name="exit")
    assert handler.parse_command(browsing, "link 4") == Command(name="link", args=("4",))
    assert handler.parse_command(browsing, "penguins in antarctica") == Command(
        name="search", args=("penguins", "in", "antarctica")
    )


def test_parse_command_custom_prefix():
    config = BrowserConfig(command_prefix="/")
    handler = SearchCommandHandler(WebSearchService(FakeSearchBackend(), None, config=config))
    assert handler.parse_command(SessionState(), "/more") == Command(name="more")
    assert handler.parse_command(SessionState(), "!more") is None


@pytest.mark.asyncio
async def test_unhandled_text_returns_none(handler):
    assert await send(handler, "hello, how are you?") is None
    assert handler.sessions.get(USER) is None


@pytest.mark.asyncio
async def test_search(handler, search_backend):
    messages = await send(handler, "!search climate change")
    replies = texts(messages)
    assert replies[0] == '🔍 Searching for: "climate change"...'
    assert "*5.* Result 5" in replies[-1]
    assert "*6.*" not in replies[-1]
    assert search_backend.queries == ["climate change"]
    assert handler.sessions.get(USER) == SessionState(
        mode=Mode.BROWSE, last_action=LastAction.SEARCH, query="climate change"
    )
    assert all(m.recipient == USER for m in messages)
    assert all(m.author == "search.search" for m in messages)


@pytest.mark.asyncio
async def test_search_without_query(handler, search_backend):
    replies = texts(await send(handler, "!search   "))
    assert replies == ["Please provide a search query. For example: !search climate change"]
    assert search_backend.queries == []
    assert handler.sessions.get(USER) is None


@pytest.mark.asyncio
async def test_search_by_plain_text(handler, search_backend):
    await send(handler, "search electric cars")
    assert search_backend.queries == ["electric cars"]


@pytest.mark.asyncio
async def test_search_failure_keeps_state(handler, search_backend):
    await send(handler, "!search first")
    before = handler.sessions.get(USER)
    search_backend.error = RuntimeError("boom")
    replies = texts(await send(handler, "!search second"))
    assert replies[-1] == "Sorry, I encountered an error while searching: Failed to search the web: boom"
    assert handler.sessions.get(USER) == before


@pytest.mark.asyncio
async def test_search_missing_credential(handler, search_backend):
    search_backend.error = BackendConfigurationError(
        "Serper API key is not configured. Please set the SERPER_API_KEY environment variable."
    )
    replies = texts(await send(handler, "!search q"))
    assert replies[-1] == (
        "Sorry, I encountered an error while searching: "
        "Serper API key is not configured. Please set the SERPER_API_KEY environment variable."
    )


@pytest.mark.asyncio
async def test_open_result(handler, fetcher):
    await send(handler, "!search climate change")
    replies = texts(await send(handler, "!open 3"))
    assert replies[0] == '📄 Opening: "Result 3"...'
    assert replies[-1].startswith("*📄 Page https://site3.example/article*")
    assert "*2.* Second link" in replies[-1]
    assert fetcher.urls == ["https://site3.example/article"]
    assert handler.sessions.get(USER) == SessionState(
        mode=Mode.BROWSE,
        last_action=LastAction.OPEN,
        query="climate change",
        current_url="https://site3.example/article",
        result_id=3,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text, expected",
    [
        ("!open abc", "Please specify a valid result number to open. For example: !open 2"),
        ("!open", "Please specify a valid result number to open. For example: !open 2"),
        ("!open 6", "Sorry, I couldn't find that search result. Please try searching again."),
        ("!open 0", "Sorry, I couldn't find that search result. Please try searching again."),
    ],
)
async def test_open_invalid_keeps_state(handler, fetcher, text, expected):
    await send(handler, "!search climate change")
    before = handler.sessions.get(USER)
    assert texts(await send(handler, text)) == [expected]
    assert handler.sessions.get(USER) == before
    assert fetcher.urls == []


@pytest.mark.asyncio
async def test_open_before_search(handler):
    replies = texts(await send(handler, "!open 1"))
    assert replies == ["Sorry, I couldn't find that search result. Please try searching again."]
    assert handler.sessions.get(USER) is None


@pytest.mark.asyncio
async def test_open_fetch_failure_keeps_state(handler, fetcher):
    await send(handler, "!search climate change")
    before = handler.sessions.get(USER)
    fetcher.error = BackendError("HTTP 500 while fetching https://site1.example/article")
    replies = texts(await send(handler, "!open 1"))
    assert replies[-1] == (
        "Sorry, I encountered an error opening that page: "
        "Failed to browse the webpage: HTTP 500 while fetching https://site1.example/article"
    )
    assert handler.sessions.get(USER) == before


@pytest.mark.asyncio
async def test_climate_change_scenario(handler, search_backend, fetcher):
    replies = texts(await send(handler, "!search climate change"))
    for i in range(1, 6):
        assert f"Type *!open {i}* to read more" in replies[-1]

    await send(handler, "!open 3")

    replies = texts(await send(handler, "link 2"))
    assert replies[0] == "🔗 Following link #2..."
    state = handler.sessions.get(USER)
    assert state.current_url == "https://site3.example/article/b"
    assert state.last_action == LastAction.LINK
    assert state.result_id == 3
    assert state.query == "climate change"

    replies = texts(await send(handler, "back"))
    assert replies[0] == '🔍 Searching for: "climate change"...'
    assert replies[-1].startswith("*📊 Search Results*")
    assert search_backend.queries == ["climate change", "climate change"]
    assert handler.sessions.get(USER).last_action == LastAction.SEARCH

    assert texts(await send(handler, "back")) == ["You're already at the search results."]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text, expected",
    [
        ("!link two", "Please specify a valid link number to follow. For example: !link 2"),
        ("!link 9", "Sorry, I couldn't follow that link: Invalid link number. Please use a number between 1 and 3"),
    ],
)
async def test_link_invalid_keeps_state(handler, text, expected):
    await send(handler, "!search climate change")
    await send(handler, "!open 1")
    before = handler.sessions.get(USER)
    assert texts(await send(handler, text))[-1] == expected
    assert handler.sessions.get(USER) == before


@pytest.mark.asyncio
async def test_link_without_page(handler):
    replies = texts(await send(handler, "!link 1"))
    assert replies == ["🔗 Following link #1...", "Sorry, I couldn't follow that link: No current webpage content available"]


@pytest.mark.asyncio
async def test_back_without_session(handler):
    assert texts(await send(handler, "!back")) == ["There's no previous state to go back to."]
    assert handler.sessions.get(USER) == SessionState()


@pytest.mark.asyncio
async def test_exit_then_back(handler):
    await send(handler, "!search climate change")
    await send(handler, "!open 2")
    assert texts(await send(handler, "exit")) == ["Exited search mode. Back to normal chat."]
    assert USER not in handler.sessions
    assert handler.get_session(USER) == SessionState()
    assert texts(await send(handler, "!back")) == ["There's no previous state to go back to."]
    assert handler.sessions.get(USER) == SessionState()


@pytest.mark.asyncio
async def test_chat_mode_after_exit(handler):
    await send(handler, "!search climate change")
    await send(handler, "!exit")
    assert await send(handler, "more") is None


@pytest.mark.asyncio
async def test_more_content(fetcher, search_backend):
    config = BrowserConfig(content_summary_length=1000)
    handler = SearchCommandHandler(WebSearchService(search_backend, fetcher, config=config))
    fetcher.pages["https://site1.example/article"] = FetchResult(
        url="https://site1.example/article", title="Long read", plaintext="z" * 2500
    )
    await send(handler, "!search long reads")
    await send(handler, "!open 1")

    first = texts(await send(handler, "more"))
    assert first == [f"*More Content:*\n\n{'z' * 1000}\n\n(Type *!more* again for additional content)"]
    second = texts(await send(handler, "!more"))
    assert second == [f"*More Content:*\n\n{'z' * 500}\n\n(Type *!more* again for additional content)"]
    for _ in range(2):
        assert texts(await send(handler, "more")) == ["Sorry, there's no more content available for this page."]


@pytest.mark.asyncio
async def test_more_without_page(handler):
    assert texts(await send(handler, "!more")) == ["Sorry, there's no more content available for this page."]


@pytest.mark.asyncio
async def test_summarize_requires_page(handler):
    await send(handler, "!search climate change")
    assert texts(await send(handler, "!summarize")) == [
        "Please open a webpage first before using the summarize command."
    ]


@pytest.mark.asyncio
async def test_summarize_yields_request(handler):
    await send(handler, "!search climate change")
    await send(handler, "!open 1")
    messages = await send(handler, "!summarize")
    assert texts(messages) == ["📝 Generating summary of current webpage..."]
    request = messages[-1]
    assert isinstance(request, SummarizationRequest)
    assert request.recipient == USER
    assert request.title == "Page https://site1.example/article"
    assert request.content == "Body of https://site1.example/article"
    assert request.prompt.endswith("Content: Body of https://site1.example/article")


@pytest.mark.asyncio
async def test_unknown_command(handler):
    await send(handler, "!search climate change")
    before = handler.sessions.get(USER)
    assert texts(await send(handler, "!dance")) == ["Unknown command: dance. Type !help for available commands."]
    assert handler.sessions.get(USER) == before


@pytest.mark.asyncio
async def test_free_text_in_browse_mode_is_a_new_search(handler, search_backend):
    await send(handler, "!search climate change")
    await send(handler, "penguins")
    assert search_backend.queries == ["climate change", "penguins"]
    assert handler.sessions.get(USER).query == "penguins"


@pytest.mark.asyncio
async def test_users_are_independent(handler):
    await send(handler, "!search climate change", user="alice")
    assert await send(handler, "more", user="bob") is None
    assert handler.sessions.get("bob") is None
    assert handler.sessions.get("alice").mode == Mode.BROWSE


@pytest.mark.asyncio
async def test_same_user_messages_are_serialized(handler):
    search, opened = await asyncio.gather(
        send(handler, "!search climate change"),
        send(handler, "!open 1"),
    )
    assert texts(search)[-1].startswith("*📊 Search Results*")
    assert texts(opened)[0] == '📄 Opening: "Result 1"...'
    assert handler.sessions.get(USER).last_action == LastAction.OPEN
