"""Resolution Cache Implementation.

Bounded in-memory cache for resolved display values:
- Size bound with oldest-inserted-first eviction
- Lazy TTL expiry on read
- Tag-based invalidation
- At most one in-flight computation per key (``get_or_set``)
"""

import time

import asyncio
import typing as t
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pydantic import Field
from pydantic_settings import SettingsConfigDict

from clinicore.config import Config, Settings
from clinicore.depends import depends
from clinicore.logger import Logger as LoggerAdapter

logger = depends.get_sync(LoggerAdapter)

_MISSING: t.Final = object()


class ResolutionCacheSettings(Settings):
    """Resolution cache configuration settings."""

    model_config = SettingsConfigDict(env_prefix="CLINICORE_RESOLUTION_CACHE_")

    max_size: int = Field(default=1000, ge=1, description="Maximum number of entries")
    ttl: float = Field(default=86400.0, gt=0, description="Entry lifetime in seconds")


@dataclass
class CacheEntry:
    key: str
    value: t.Any
    inserted_at: float
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Point-in-time cache statistics."""

    size: int
    max_size: int
    pending_count: int
    expired_count: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class ResolutionCache:
    """Key to resolved-value cache with in-flight deduplication.

    Eviction follows insertion order only: reading an entry does not protect
    it. Entry and pending maps are only mutated between awaits, so no lock is
    needed on a single event loop.
    """

    def __init__(
        self,
        settings: ResolutionCacheSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or depends.get_sync(Config).get(ResolutionCacheSettings)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future[t.Any]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_size(self) -> int:
        return self.settings.max_size

    def __len__(self) -> int:
        return len(self._entries)

    def _lookup(self, key: str) -> t.Any:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return _MISSING
        if entry.expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return _MISSING
        self._hits += 1
        return entry.value

    def get(self, key: str) -> t.Any | None:
        """Cached value, or ``None`` when absent or expired."""
        value = self._lookup(key)
        return None if value is _MISSING else value

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.expired(self._clock()):
            del self._entries[key]
            return False
        return True

    def set(
        self,
        key: str,
        value: t.Any,
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> None:
        now = self._clock()
        # re-inserting moves the key to the back of the eviction order
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            expires_at=now + (ttl if ttl is not None else self.settings.ttl),
            tags=frozenset(tags),
        )
        self._evict()

    def _evict(self) -> None:
        while len(self._entries) > self.settings.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            self._evictions += 1
            logger.debug(f"Evicted resolution cache entry: {oldest}")

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        """Drop every entry carrying any of ``tags``; returns the count."""
        wanted = frozenset(tags)
        doomed = [key for key, entry in self._entries.items() if entry.tags & wanted]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} resolution cache entries")
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
        self._pending.clear()

    async def get_or_set(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[t.Any]],
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> t.Any:
        """Cached value, or the result of a single shared ``compute_fn`` call.

        Concurrent callers for the same key await the first caller's
        computation; all of them get its value or its exception.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        pending = self._pending.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[t.Any] = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            value = await compute_fn()
            self.set(key, value, ttl, tags)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as e:
            future.set_exception(e)
            # mark as retrieved for the no-waiter case
            future.exception()
            raise
        else:
            future.set_result(value)
            return value
        finally:
            if self._pending.get(key) is future:
                del self._pending[key]

    def get_stats(self) -> CacheStats:
        now = self._clock()
        return CacheStats(
            size=len(self._entries),
            max_size=self.settings.max_size,
            pending_count=len(self._pending),
            expired_count=sum(1 for entry in self._entries.values() if entry.expired(now)),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )
