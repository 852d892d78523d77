"""
Web Browser Tool Module for chatnav

This module lets chat users search the web and read pages through short commands,
keeping track of where each user is between messages.

Architecture:
-------------
1. SearchCommandHandler (search_command_handler.py):
   - Parses `!search`, `!open`, `!link`, `!more`, `!back`, `!summarize`, `!exit`
   - Keeps the per-user SessionState (chat or browse mode, current position)
   - Renders results and pages as chat messages

2. WebSearchService (web_search_service.py):
   - Holds each user's search results, current page and pagination cursor
   - Calls the search backend and page fetcher

3. Backend (backend.py):
   - SerperBackend: Google results through the Serper API
   - ReadabilityFetcher: HTTP fetch + readability article extraction

4. PageContents (page_contents.py) and SearchResults (search_results.py):
   - Turn fetched pages and raw search JSON into bounded, numbered views

Example Session:
----------------
1. User: !search climate change
   Bot:  numbered results, `Type *!open 1* to read more`
2. User: !open 3
   Bot:  page summary with numbered links
3. User: link 2   (no prefix needed in browse mode)
   Bot:  the linked page
4. User: back
   Bot:  the result list again
"""

from .backend import ReadabilityFetcher, SerperBackend
from .search_command_handler import SearchCommandHandler
from .web_search_service import WebSearchService

__all__ = [
    "SearchCommandHandler",
    "WebSearchService",
    "SerperBackend",
    "ReadabilityFetcher",
]
