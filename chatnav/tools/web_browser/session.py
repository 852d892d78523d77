"""
Per-user navigation state.

Everything the navigation core remembers about a user lives in a Repository keyed by
the sender id. The in-memory implementation is the only one shipped; state is lost on
restart.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
from abc import ABC, abstractmethod
from typing import AsyncIterator, Generic, TypeVar

import pydantic

from .page_contents import WebpageContent
from .search_results import SearchResultSet

T = TypeVar("T")


class Mode(str, enum.Enum):
    CHAT = "chat"
    BROWSE = "browse"


class LastAction(str, enum.Enum):
    NONE = "none"
    SEARCH = "search"
    OPEN = "open"
    LINK = "link"


class SessionState(pydantic.BaseModel):
    """
    Where a user currently is. `SessionState()` is plain chat mode.

    Attributes:
        mode: `browse` while a search or page is active, `chat` otherwise
        last_action: The last successful navigation command
        query: Query of the current result list
        current_url: URL of the page being viewed
        result_id: Search result the current page was opened from
    """
    mode: Mode = Mode.CHAT
    last_action: LastAction = LastAction.NONE
    query: str | None = None
    current_url: str | None = None
    result_id: int | None = None


class BrowsingContext(pydantic.BaseModel):
    """Search results and page view cached for one user."""
    search_results: SearchResultSet | None = None
    page: WebpageContent | None = None
    cursor: int | None = None

    def with_page(self, page: WebpageContent | None) -> "BrowsingContext":
        # A new page always restarts pagination
        return self.model_copy(update={"page": page, "cursor": None})


class Repository(ABC, Generic[T]):
    """Key/value store for per-user state."""

    @abstractmethod
    def get(self, key: str) -> T | None:
        pass

    @abstractmethod
    def set(self, key: str, value: T) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryRepository(Repository[T]):
    def __init__(self) -> None:
        self._items: dict[str, T] = {}

    def get(self, key: str) -> T | None:
        return self._items.get(key)

    def set(self, key: str, value: T) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class UserLocks:
    """
    One asyncio.Lock per user.

    Commands from the same user run one after the other; commands from different
    users never wait on each other. A user's lock is dropped once nobody holds or
    waits for it, so the map only holds users with a command in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def get(self, user_id: str) -> asyncio.Lock:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    @contextlib.asynccontextmanager
    async def lock(self, user_id: str) -> AsyncIterator[None]:
        lock = self.get(user_id)
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if not self._users[user_id]:
                del self._users[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)
