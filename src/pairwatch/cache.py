"""In-memory caches shared by the provider adapters.

ResponseCache is a short-TTL keyed store that shields providers from
duplicate calls within one tick window, whichever widget issued them.
Entries are written once and age out; every write sweeps expired ones,
so keys that are never read again do not accumulate. Readers need no lock;
concurrent misses for the same key share a single in-flight request.

IdentifierCache maps (provider, chain, address) to a provider catalog id.
Addresses are immutable identities, so entries never expire for the
lifetime of the cache object. Both are injected into adapters rather than
held as module globals, giving every test a fresh instance.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pairwatch.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def cache_key(namespace: str, endpoint: str, *params: object) -> str:
    """Build a ``{namespace}:{endpoint}:{p1}:{p2}...`` cache key.

    The namespace prefix keeps identical endpoint shapes from different
    adapters apart. Callers normalise address case before building keys.
    """
    parts = [namespace, endpoint, *(str(p) for p in params)]
    return ":".join(parts)


class ResponseCache:
    """Short-TTL response cache with in-flight request coalescing.

    Args:
        ttl_seconds: How long a successful response stays fresh.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._inflight: dict[str, asyncio.Task] = {}  # type: ignore[type-arg]

    def get(self, key: str) -> Any | None:
        """Return a fresh cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        """Store value; expired entries are dropped on every write."""
        removed = self.purge_expired()
        if removed:
            logger.debug("response_cache_purged", removed=removed, remaining=len(self._entries))
        self._entries[key] = (value, self._clock() + self._ttl)

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for key, fetching it on a miss.

        Failures propagate to every waiter and are never cached.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("response_cache_hit", key=key)
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fill(key, fetch))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._finish(k, t))
        # shield: one cancelled caller must not cancel the shared request
        return await asyncio.shield(task)

    async def _fill(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        value = await fetch()
        self.set(key, value)
        return value

    def _finish(self, key: str, task: asyncio.Task) -> None:  # type: ignore[type-arg]
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark retrieved when every waiter was cancelled
            task.exception()

    def purge_expired(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class IdentifierCache:
    """Session-lifetime map of token address to provider catalog id."""

    def __init__(self) -> None:
        self._ids: dict[tuple[str, str, str], str] = {}

    @staticmethod
    def _key(provider: str, chain: str, address: str) -> tuple[str, str, str]:
        return (provider, chain.lower(), address.lower())

    def get(self, provider: str, chain: str, address: str) -> str | None:
        return self._ids.get(self._key(provider, chain, address))

    def set(self, provider: str, chain: str, address: str, catalog_id: str) -> None:
        self._ids[self._key(provider, chain, address)] = catalog_id

    def __len__(self) -> int:
        return len(self._ids)
