import asyncio

import pytest

from chatnav.config import BrowserConfig
from chatnav.tools.web_browser.page_contents import FetchResult
from chatnav.tools.web_browser.search_command_handler import SearchCommandHandler
from chatnav.tools.web_browser.web_search_service import WebSearchService

SERPER_RESPONSE = {
    "organic": [
        {
            "title": f"Result {i}",
            "link": f"https://site{i}.example/article",
            "snippet": f"Snippet for result {i}",
            "position": i,
        }
        for i in range(1, 9)
    ],
    "knowledgeGraph": {
        "title": "Climate change",
        "type": "Topic",
        "description": "Long-term shifts in temperatures and weather patterns.",
        "attributes": {"Cause": "Greenhouse gases"},
    },
    "answerBox": {"title": "Climate change", "answer": "Global warming and its effects."},
    "peopleAlsoAsk": [{"question": f"Question {i}?", "answer": f"Answer {i}"} for i in range(1, 5)],
}


def article_html(title: str, links: list[tuple[str, str]], body: str = "") -> str:
    anchors = "".join(f'<li><a href="{href}">{text}</a></li>' for href, text in links)
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body><article><p>{body}</p></article><ul>{anchors}</ul></body></html>"
    )


def make_fetch_result(url: str, text: str | None = None, links: list[tuple[str, str]] | None = None) -> FetchResult:
    """A successfully extracted page whose article is a single paragraph."""
    base = url.rstrip("/")
    if links is None:
        links = [(f"{base}/a", "First link"), (f"{base}/b", "Second link"), (f"{base}/c", "Third link")]
    text = text if text is not None else f"Body of {url}"
    return FetchResult(
        url=url,
        title=f"Page {url}",
        html=article_html(f"Page {url}", links, text),
        content_html=f"<div><p>{text}</p></div>",
        plaintext=text,
    )


class FakeSearchBackend:
    def __init__(self, response: dict | None = None, error: Exception | None = None):
        self.response = SERPER_RESPONSE if response is None else response
        self.error = error
        self.queries: list[str] = []

    async def search(self, query, session):
        self.queries.append(query)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.response


class FakeFetcher:
    def __init__(self, pages: dict[str, FetchResult] | None = None, error: Exception | None = None):
        self.pages = pages or {}
        self.error = error
        self.urls: list[str] = []

    async def fetch(self, url, session):
        self.urls.append(url)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.pages.get(url) or make_fetch_result(url)


@pytest.fixture
def browser_config():
    return BrowserConfig()


@pytest.fixture
def search_backend():
    return FakeSearchBackend()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def service(search_backend, fetcher, browser_config):
    return WebSearchService(search_backend, fetcher, config=browser_config)


@pytest.fixture
def handler(service, browser_config):
    return SearchCommandHandler(service, config=browser_config)
