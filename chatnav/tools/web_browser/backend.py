"""
Backend Abstraction for the Web Browser Tool

This module defines the pluggable components that talk to the outside world:

1. SearchBackend.search() - Query a search engine and return its raw JSON
2. PageFetcher.fetch()    - Retrieve a web page and run readability over it

Concrete implementations:
- SerperBackend: Uses the Serper Google Search API (https://serper.dev)
- ReadabilityFetcher: Plain HTTP GET + readability-lxml article extraction

API Keys:
---------
SerperBackend requires an API key, passed as `api_key` or set via the
SERPER_API_KEY environment variable. The key is looked up at call time, so a
missing key fails the search that needed it, not the process start.

Error Handling:
---------------
- BackendError is raised for transport failures (HTTP errors, timeouts, bad JSON)
- BackendConfigurationError is raised when a provider credential is missing
- Readability failures are NOT errors: the fetcher degrades to the raw title and
  text of the page so the user still gets something to read
- Nothing here retries; a retry is the user repeating the command

Integration:
------------
WebSearchService receives a SearchBackend and a PageFetcher at initialization and
uses them for all web operations. This allows switching providers, and lets tests
substitute in-process fakes.
"""

import asyncio
import logging
import os
from abc import abstractmethod
from typing import Any

import chz
from aiohttp import ClientError, ClientSession, ClientTimeout
from readability import Document

from .page_contents import FetchResult, document_title, html_plaintext, parse_document

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
READABILITY_NO_TITLE = "[no-title]"


class BackendError(Exception):
    """
    Raised when a backend operation fails.

    This includes:
    - Network errors
    - Non-success HTTP responses
    - Invalid responses
    - Timeouts
    """
    pass


class BackendConfigurationError(BackendError):
    """Raised when a backend is missing a required credential."""
    pass


def maybe_truncate(text: str, num_chars: int = 1024) -> str:
    """
    Truncate text to a maximum length, adding ellipsis if truncated.

    Used to limit error message lengths when reporting back to the user.
    """
    if len(text) > num_chars:
        text = text[: (num_chars - 3)] + "..."
    return text


@chz.chz(typecheck=True)
class SearchBackend:
    """
    Abstract base class for web search backends.

    Attributes:
        source: Human-readable description of the backend (e.g., "Serper Google Search API")
    """
    source: str = chz.field(doc="Description of the backend source")

    @abstractmethod
    async def search(self, query: str, session: ClientSession) -> dict[str, Any]:
        """
        Perform a web search and return the provider's raw response.

        The response may contain any of `organic`, `knowledgeGraph`, `answerBox`
        and `peopleAlsoAsk`; absent sections are simply missing.

        Raises:
            BackendConfigurationError: If the backend has no credential
            BackendError: If the search fails
        """
        pass


@chz.chz(typecheck=True)
class SerperBackend(SearchBackend):
    """
    Backend implementation using the Serper Google Search API.

    Configuration:
        Set SERPER_API_KEY environment variable or pass api_key parameter

    API Endpoints:
        - POST /search: Google web results (organic, knowledge graph, answer box, ...)
    """

    source: str = chz.field(doc="Description of the backend source", default="Serper Google Search API")
    api_key: str | None = chz.field(
        doc="Serper API key. Uses SERPER_API_KEY environment variable if not provided.",
        default=None,
    )
    timeout: float = chz.field(doc="Request timeout in seconds", default=15.0)

    BASE_URL: str = "https://google.serper.dev"

    def _get_api_key(self) -> str:
        """
        Retrieve the Serper API key from instance variable or environment.

        Raises:
            BackendConfigurationError: If no API key is configured
        """
        key = self.api_key or os.environ.get("SERPER_API_KEY")
        if not key:
            raise BackendConfigurationError(
                "Serper API key is not configured. Please set the SERPER_API_KEY environment variable."
            )
        return key

    async def _post(self, session: ClientSession, endpoint: str, payload: dict) -> dict:
        headers = {"X-API-KEY": self._get_api_key(), "Content-Type": "application/json"}
        async with session.post(
            f"{self.BASE_URL}{endpoint}",
            json=payload,
            headers=headers,
            timeout=ClientTimeout(total=self.timeout),
        ) as resp:
            if resp.status != 200:
                raise BackendError(
                    f"{self.__class__.__name__} error {resp.status}: {maybe_truncate(await resp.text())}"
                )
            return await resp.json()

    async def search(self, query: str, session: ClientSession) -> dict[str, Any]:
        logger.info("Searching web for: %r", query)
        return await self._post(session, "/search", {"q": query})


@chz.chz(typecheck=True)
class PageFetcher:
    """
    Abstract base class for page fetchers.

    A fetcher downloads a URL and extracts the readable article from it. Only
    transport failures are errors; extraction failures degrade the FetchResult.
    """
    source: str = chz.field(doc="Description of the fetcher", default="web")

    @abstractmethod
    async def fetch(self, url: str, session: ClientSession) -> FetchResult:
        """
        Fetch a web page and extract its article.

        Raises:
            BackendError: If the page could not be retrieved
        """
        pass


def readability_extract(url: str, html: str) -> FetchResult:
    """
    Runs readability over a page, falling back to the raw title and text when it fails.

    Args:
        url: URL the HTML came from (used to absolutize links in the article)
        html: Raw page HTML

    Returns:
        FetchResult with `content_html` set on success, or `content_html=None` and
        `error_message` set when only minimal fields could be recovered.
    """
    try:
        doc = Document(html, url=url)
        title = doc.title()
        content_html = doc.summary(html_partial=True)
        return FetchResult(
            url=url,
            title=None if title == READABILITY_NO_TITLE else title,
            html=html,
            content_html=content_html,
            plaintext=html_plaintext(content_html),
        )
    except Exception as e:
        logger.warning("Readability failed for %s, using raw page text", url, exc_info=e)
        try:
            title = document_title(parse_document(html)) or None
            plaintext = html_plaintext(html)
        except Exception:
            logger.warning("Could not parse raw page %s", url)
            title, plaintext = None, None
        return FetchResult(
            url=url,
            title=title,
            html=html,
            plaintext=plaintext,
            error_message=maybe_truncate(str(e)),
        )


@chz.chz(typecheck=True)
class ReadabilityFetcher(PageFetcher):
    """
    Fetcher that downloads pages directly and extracts them with readability-lxml.

    Features:
        - Browser-like request headers
        - Per-request timeout
        - Graceful degradation when the article cannot be extracted
    """

    source: str = chz.field(doc="Description of the fetcher", default="web")
    user_agent: str = chz.field(doc="User-Agent header sent with every request", default=DEFAULT_USER_AGENT)
    timeout: float = chz.field(doc="Request timeout in seconds", default=15.0)

    async def fetch(self, url: str, session: ClientSession) -> FetchResult:
        logger.info("Browsing webpage: %s", url)
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml",
            "Accept-Language": "en-US,en;q=0.9",
        }
        try:
            async with session.get(
                url, headers=headers, timeout=ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status >= 400:
                    raise BackendError(f"HTTP {resp.status} while fetching {maybe_truncate(url)}")
                html = await resp.text(errors="replace")
        except (ClientError, asyncio.TimeoutError, ValueError) as e:
            raise BackendError(f"Error fetching URL `{maybe_truncate(url)}`: {maybe_truncate(str(e))}") from e
        return readability_extract(url, html)
