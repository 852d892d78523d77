"""
Web search and browsing operations over per-user caches.

WebSearchService owns the BrowsingContext of every user (latest search results,
current page and pagination cursor) and talks to the outside world through the
injected SearchBackend and PageFetcher. It knows nothing about chat commands; the
SearchCommandHandler drives it.
"""

import structlog
from aiohttp import ClientSession

from ...config import BrowserConfig
from .backend import BackendConfigurationError, BackendError, PageFetcher, SearchBackend, maybe_truncate
from .page_contents import WebpageContent, build_webpage_content
from .search_results import OrganicResult, SearchResultSet, format_search_results
from .session import BrowsingContext, InMemoryRepository, Repository

logger = structlog.stdlib.get_logger(component=__name__)


class ToolUsageError(Exception):
    """
    Raised when a navigation command cannot be applied to the user's current state.

    Examples:
    - Following a link before any page was opened
    - Following a link on a page without links
    - A link number outside the page's link list

    These errors are caught by the command handler and returned to the user as a reply.
    """
    pass


class WebSearchService:
    def __init__(
        self,
        search_backend: SearchBackend,
        fetcher: PageFetcher,
        config: BrowserConfig | None = None,
        contexts: Repository[BrowsingContext] | None = None,
    ) -> None:
        self.search_backend = search_backend
        self.fetcher = fetcher
        self.config = config or BrowserConfig()
        self.contexts: Repository[BrowsingContext] = contexts if contexts is not None else InMemoryRepository()

    def _context(self, user_id: str) -> BrowsingContext:
        return self.contexts.get(user_id) or BrowsingContext()

    async def search(self, query: str, user_id: str) -> SearchResultSet:
        """
        Search the web and store the results for the user.

        The user's previous result set is replaced, and their current page and
        pagination cursor are dropped.

        Raises:
            BackendConfigurationError: If the search provider has no credential
            BackendError: If the search fails for any other reason
        """
        logger.info("web_search", query=query, user_id=user_id)
        try:
            async with ClientSession() as session:
                raw = await self.search_backend.search(query, session=session)
        except BackendConfigurationError:
            raise
        except Exception as e:
            logger.warning("web_search_failed", query=query, user_id=user_id, exc_info=e)
            raise BackendError(f"Failed to search the web: {maybe_truncate(str(e))}") from e

        results = format_search_results(raw, limit=self.config.search_results_limit, query=query)
        self.contexts.set(user_id, BrowsingContext(search_results=results))
        logger.info("web_search_done", user_id=user_id, results=len(results.organic))
        return results

    def get_search_result_by_id(self, user_id: str, result_id: int) -> OrganicResult | None:
        results = self._context(user_id).search_results
        if results is None:
            return None
        return results.get(result_id)

    async def browse(self, url: str, user_id: str) -> WebpageContent:
        """
        Fetch a page and make it the user's current page.

        Extraction problems degrade the page instead of failing; only transport
        failures raise.

        Raises:
            BackendError: If the page could not be fetched
        """
        logger.info("browse", url=url, user_id=user_id)
        try:
            async with ClientSession() as session:
                fetch = await self.fetcher.fetch(url, session=session)
        except Exception as e:
            logger.warning("browse_failed", url=url, user_id=user_id, exc_info=e)
            raise BackendError(f"Failed to browse the webpage: {maybe_truncate(str(e))}") from e

        page = build_webpage_content(
            fetch,
            summary_length=self.config.content_summary_length,
            max_links=self.config.max_links,
        )
        self.contexts.set(user_id, self._context(user_id).with_page(page))
        logger.info("browse_done", url=url, user_id=user_id, links=len(page.links), degraded=page.degraded)
        return page

    async def follow_link(self, user_id: str, link_id: int) -> WebpageContent:
        """
        Browse to the `link_id`-th (1-based) link of the user's current page.

        Raises:
            ToolUsageError: If there is no page, the page has no links, or `link_id` is out of range
            BackendError: If the linked page could not be fetched
        """
        page = self._context(user_id).page
        if page is None:
            raise ToolUsageError("No current webpage content available")
        if not page.links:
            raise ToolUsageError("No links available on this page")
        if link_id < 1 or link_id > len(page.links):
            raise ToolUsageError(f"Invalid link number. Please use a number between 1 and {len(page.links)}")

        link = page.links[link_id - 1]
        logger.info("follow_link", user_id=user_id, link_id=link_id, url=link.url)
        return await self.browse(link.url, user_id)

    def get_more_content(self, user_id: str) -> str:
        """
        Next chunk of the current page's full text.

        The first call starts where the initial page view stopped; every call
        advances by one chunk. Returns "" once the text is exhausted.

        Raises:
            ToolUsageError: If the user has no current page
        """
        context = self._context(user_id)
        if context.page is None:
            raise ToolUsageError("No current webpage content available")

        chunk_size = self.config.content_summary_length
        cursor = context.cursor if context.cursor is not None else chunk_size
        full_text = context.page.full_text
        if cursor >= len(full_text):
            return ""

        chunk = full_text[cursor:cursor + chunk_size]
        self.contexts.set(user_id, context.model_copy(update={"cursor": cursor + chunk_size}))
        return chunk

    def get_page(self, user_id: str) -> WebpageContent | None:
        return self._context(user_id).page

    def clear_user_content(self, user_id: str) -> None:
        logger.info("clear_user_content", user_id=user_id)
        self.contexts.delete(user_id)
