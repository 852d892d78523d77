import math

import pytest
from conftest import FakeFetcher, FakeSearchBackend, make_fetch_result

from chatnav.config import BrowserConfig
from chatnav.tools.web_browser.backend import BackendConfigurationError, BackendError
from chatnav.tools.web_browser.page_contents import FetchResult
from chatnav.tools.web_browser.web_search_service import ToolUsageError, WebSearchService

USER = "user-1"


@pytest.mark.asyncio
async def test_search_stores_limited_results(service, search_backend):
    results = await service.search("climate change", USER)
    assert search_backend.queries == ["climate change"]
    assert [r.id for r in results.organic] == [1, 2, 3, 4, 5]
    assert service.get_search_result_by_id(USER, 5).title == "Result 5"
    assert service.get_search_result_by_id(USER, 6) is None
    assert service.get_search_result_by_id("someone-else", 1) is None


@pytest.mark.asyncio
async def test_search_drops_current_page(service):
    await service.search("first", USER)
    await service.browse("https://site1.example/article", USER)
    service.get_more_content(USER)
    await service.search("second", USER)
    assert service.get_page(USER) is None
    assert service.contexts.get(USER).cursor is None


@pytest.mark.asyncio
async def test_search_missing_credential_is_not_wrapped():
    error = BackendConfigurationError("Serper API key is not configured.")
    service = WebSearchService(FakeSearchBackend(error=error), FakeFetcher())
    with pytest.raises(BackendConfigurationError) as excinfo:
        await service.search("q", USER)
    assert excinfo.value is error


@pytest.mark.asyncio
async def test_search_failure_is_wrapped_and_keeps_previous_results(service, search_backend):
    await service.search("first", USER)
    search_backend.error = RuntimeError("boom")
    with pytest.raises(BackendError, match="Failed to search the web: boom"):
        await service.search("second", USER)
    assert service.contexts.get(USER).search_results.query == "first"


@pytest.mark.asyncio
async def test_browse_stores_page(service, fetcher):
    page = await service.browse("https://site1.example/article", USER)
    assert fetcher.urls == ["https://site1.example/article"]
    assert page.title == "Page https://site1.example/article"
    assert [link.text for link in page.links] == ["First link", "Second link", "Third link"]
    assert service.get_page(USER) == page


@pytest.mark.asyncio
async def test_browse_failure_is_wrapped(service, fetcher):
    fetcher.error = BackendError("HTTP 404 while fetching https://gone.example")
    with pytest.raises(BackendError, match="Failed to browse the webpage: HTTP 404"):
        await service.browse("https://gone.example", USER)
    assert service.get_page(USER) is None


@pytest.mark.asyncio
async def test_follow_link_without_page(service):
    with pytest.raises(ToolUsageError, match="No current webpage content available"):
        await service.follow_link(USER, 1)


@pytest.mark.asyncio
async def test_follow_link_on_page_without_links(service, fetcher):
    fetcher.pages["https://empty.example"] = make_fetch_result("https://empty.example", links=[])
    await service.browse("https://empty.example", USER)
    with pytest.raises(ToolUsageError, match="No links available on this page"):
        await service.follow_link(USER, 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("link_id", [0, 4, -1])
async def test_follow_link_out_of_range(service, link_id):
    await service.browse("https://site1.example/article", USER)
    with pytest.raises(ToolUsageError, match="Invalid link number. Please use a number between 1 and 3"):
        await service.follow_link(USER, link_id)
    assert service.get_page(USER).url == "https://site1.example/article"


@pytest.mark.asyncio
async def test_follow_link_browses_target(service, fetcher):
    await service.browse("https://site1.example/article", USER)
    page = await service.follow_link(USER, 2)
    assert page.url == "https://site1.example/article/b"
    assert fetcher.urls[-1] == "https://site1.example/article/b"
    assert service.get_page(USER).url == "https://site1.example/article/b"


def test_more_content_without_page(service):
    with pytest.raises(ToolUsageError):
        service.get_more_content(USER)


@pytest.mark.asyncio
@pytest.mark.parametrize("length", [2500, 3000, 1000, 400])
async def test_more_content_chunks(length):
    url = "https://long.example"
    fetcher = FakeFetcher(pages={url: FetchResult(url=url, title="Long", plaintext="x" * length)})
    service = WebSearchService(FakeSearchBackend(), fetcher, config=BrowserConfig(content_summary_length=1000))
    page = await service.browse(url, USER)
    assert len(page.full_text) == length

    chunks = []
    while chunk := service.get_more_content(USER):
        chunks.append(chunk)
    assert len(chunks) == max(0, math.ceil((length - 1000) / 1000))
    assert "".join(chunks) == page.full_text[1000:]
    assert service.get_more_content(USER) == ""
    assert service.get_more_content(USER) == ""


@pytest.mark.asyncio
async def test_new_page_restarts_pagination(service, fetcher):
    url = "https://long.example"
    fetcher.pages[url] = FetchResult(url=url, title="Long", plaintext="".join(f"{i:05d}" for i in range(1000)))
    await service.browse(url, USER)
    first = service.get_more_content(USER)
    await service.browse(url, USER)
    assert service.get_more_content(USER) == first


@pytest.mark.asyncio
async def test_clear_user_content(service):
    await service.search("q", USER)
    await service.browse("https://site1.example/article", USER)
    service.clear_user_content(USER)
    assert service.get_page(USER) is None
    assert service.get_search_result_by_id(USER, 1) is None
