from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import monotonic
from typing import Callable, Optional

from .aws import SUPPORTED_CATEGORIES, ResourceProvider

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 5 * 60


def cache_key(category: str) -> str:
    return f"{category}-resources"


@dataclass(frozen=True)
class CacheEntry:
    payload: tuple
    fetched_at: float
    generation: int = 0


class ResourceCache:
    """Process-lifetime store of listings, shared by every view.

    Expired entries are pruned when read; nothing sweeps in the background.
    Each key also carries a fetch generation so a slow, superseded fetch
    cannot overwrite the result of a newer one.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._generations: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at > self.ttl_seconds:
            logger.debug("Cache entry %s expired", key)
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Optional[list]:
        entry = self._live_entry(key)
        if entry is None:
            return None
        return list(entry.payload)

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def age(self, key: str) -> Optional[float]:
        entry = self._live_entry(key)
        if entry is None:
            return None
        return self._clock() - entry.fetched_at

    def begin(self, key: str) -> int:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        return generation

    def put(self, key: str, payload: list, generation: Optional[int] = None) -> bool:
        if generation is not None and generation < self._generations.get(key, 0):
            logger.debug(
                "Discarding stale result for %s (generation %s < %s)",
                key,
                generation,
                self._generations[key],
            )
            return False
        self._entries[key] = CacheEntry(
            payload=tuple(payload),
            fetched_at=self._clock(),
            generation=generation or self._generations.get(key, 0),
        )
        return True

    def clear_all(self) -> None:
        self._entries.clear()


@dataclass(frozen=True)
class FetchState:
    data: list = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
    from_cache: bool = False
    age: Optional[float] = None
    exception: Optional[BaseException] = None


def error_message(exc: BaseException) -> str:
    return str(exc) or "Unknown error occurred"


class ResourceFetcher:
    def __init__(
        self,
        cache: ResourceCache,
        provider: ResourceProvider,
        on_change: Optional[Callable[[FetchState], None]] = None,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.on_change = on_change
        self.category: Optional[str] = None
        self.state = FetchState()
        self._request_id = 0

    def _publish(self, request_id: int, state: FetchState) -> FetchState:
        if request_id != self._request_id:
            return state
        self.state = state
        if self.on_change is not None:
            self.on_change(state)
        return state

    async def get_or_fetch(self, category: str) -> FetchState:
        self.category = category
        self._request_id += 1
        request_id = self._request_id
        if category not in SUPPORTED_CATEGORIES:
            return self._publish(request_id, FetchState())

        key = cache_key(category)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached data for %s", category)
            return self._publish(
                request_id,
                FetchState(data=cached, from_cache=True, age=self.cache.age(key)),
            )
        return await self._fetch(request_id, category)

    async def refresh(self, category: Optional[str] = None) -> FetchState:
        if category is not None:
            self.category = category
        self._request_id += 1
        request_id = self._request_id
        if self.category not in SUPPORTED_CATEGORIES:
            return self._publish(request_id, FetchState())
        return await self._fetch(request_id, self.category)

    def clear_all(self) -> None:
        self.cache.clear_all()

    async def _fetch(self, request_id: int, category: str) -> FetchState:
        key = cache_key(category)
        generation = self.cache.begin(key)
        self._publish(request_id, FetchState(loading=True))
        logger.debug("Fetching %s through %s backend", category, self.provider.name)
        try:
            records = await self.provider.list_category(category)
        except Exception as exc:
            logger.debug("Fetching %s failed: %s", category, exc)
            return self._publish(
                request_id,
                FetchState(error=error_message(exc), exception=exc),
            )
        records = list(records)
        logger.debug("Received %d %s records", len(records), category)
        self.cache.put(key, records, generation=generation)
        return self._publish(request_id, FetchState(data=records, age=0.0))
