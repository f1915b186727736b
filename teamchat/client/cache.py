# teamchat/client/cache.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]

CONVERSATIONS_KEY: QueryKey = ("conversations",)
USERS_KEY: QueryKey = ("users",)


def messages_key(conversation_id: str) -> QueryKey:
    return ("messages", conversation_id)


class QueryState(str, Enum):
    LOADING = "loading"
    READY = "ready"


@dataclass
class CacheEntry:
    state: QueryState = QueryState.LOADING
    data: Any = None


class QueryCache:
    """Read-through cache of server reads, keyed by query key.

    Mutations never patch entries; they invalidate them and the next read
    goes back to the server. A load that fails leaves the entry loading
    with no data; nothing retries it, but the next read calls the loader
    again.
    """

    def __init__(self):
        self._entries: Dict[QueryKey, CacheEntry] = {}

    async def fetch(self, key: QueryKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        entry = self._entries.get(key)
        if entry and entry.state == QueryState.READY:
            return entry.data

        entry = self._entries.setdefault(key, CacheEntry())
        try:
            data = await loader()
        except Exception as e:
            logger.error(f"Loading {key} failed: {e}")
            return None
        entry.state = QueryState.READY
        entry.data = data
        return data

    async def refetch(self, key: QueryKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        self.invalidate(key)
        return await self.fetch(key, loader)

    def invalidate(self, *keys: QueryKey) -> None:
        for key in keys:
            if self._entries.pop(key, None) is not None:
                logger.debug(f"Invalidated {key}")

    def peek(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        return entry.data if entry else None

    def state(self, key: QueryKey) -> Optional[QueryState]:
        entry = self._entries.get(key)
        return entry.state if entry else None
