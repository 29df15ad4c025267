"""
Remote cache - keyed stale-while-revalidate cache over backend fetches.

- Within a key's freshness window the cached entry is served as `fresh`.
- Past it, the entry is served immediately as `stale` and a background
  revalidation is issued; subscribers hear about every status transition.
- Concurrent fetches of one key share a single in-flight call.
- Every issued request carries a per-key sequence number; a response older
  than the last one applied for that key is discarded.
- Transient failures are retried with exponential backoff; client and content
  errors are not.
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from prepmap.engines.cache.policy import CachePolicies, CachePolicy, RetryPolicy
from prepmap.kernel.errors import RoadmapError, TransientNetworkError
from prepmap.kernel.events.event_bus import EventBus
from prepmap.kernel.events.event_types import CacheStatusChanged
from prepmap.logging_config import get_logger

logger = get_logger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of one key's cache state."""

    key: str
    data: Any
    status: CacheStatus
    last_fetched_at: Optional[datetime]
    error: Optional[RoadmapError] = None
    sequence: int = 0

    @property
    def has_data(self) -> bool:
        return self.last_fetched_at is not None


async def call_with_retry(
    operation: Fetcher,
    retry: RetryPolicy,
    sleep: Sleeper = asyncio.sleep,
    label: str = "",
) -> Any:
    """Run `operation`, retrying TransientNetworkError with exponential backoff."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except TransientNetworkError as exc:
            exc.attempts = attempt
            if attempt >= retry.max_attempts:
                logger.warning(
                    "Transient failure; retries exhausted",
                    extra={"operation": label, "attempts": attempt, "error": exc.message},
                )
                raise
            delay = retry.delay_for(attempt)
            logger.warning(
                "Transient failure; retrying",
                extra={"operation": label, "attempt": attempt, "delay_s": delay, "error": exc.message},
            )
            await sleep(delay)


class RemoteCache:
    """
    Per-key cache of backend data with declared freshness and retry policies.

    Usage:
        cache = RemoteCache(CachePolicies.from_settings(settings), event_bus=bus)
        entry = await cache.fetch("roadmap/backend/mid", load_roadmap)
        entry.status  # fresh | stale | error
    """

    def __init__(
        self,
        policies: Optional[CachePolicies] = None,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.policies = policies or CachePolicies()
        self._events = event_bus
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._issued: Dict[str, int] = {}
        self._applied: Dict[str, int] = {}
        self._background: Set[asyncio.Task] = set()

    # Reads

    async def fetch(self, key: str, fetcher: Fetcher, *, force: bool = False) -> CacheEntry:
        """
        Return the entry for `key`, loading it through `fetcher` when needed.

        Args:
            key: Cache key (its prefix selects the policy)
            fetcher: Coroutine factory performing one backend call
            force: Issue a new request even if one is in flight (explicit refetch)

        Raises:
            RoadmapError: only when no cached data can be served
        """
        policy = self.policies.for_key(key)
        entry = self._entries.get(key)

        if not force and not policy.is_read_through and entry is not None and entry.has_data:
            if entry.status == CacheStatus.FRESH and self._within_window(entry, policy):
                return entry
            if entry.status == CacheStatus.FRESH:
                entry = self._set_status(key, CacheStatus.STALE)
            self._revalidate(key, fetcher, policy)
            return entry

        task = self._start(key, fetcher, policy, force=force)
        # Shield so a cancelled consumer never cancels the shared call
        return await asyncio.shield(task)

    def peek(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def entries(self) -> List[CacheEntry]:
        return list(self._entries.values())

    def is_inflight(self, key: str) -> bool:
        return key in self._inflight

    # Writes

    async def mutate(self, sender: Fetcher, label: str = "mutation") -> Any:
        """Send a mutation. Never cached or coalesced; retried on transient failure."""
        return await call_with_retry(sender, self.policies.mutation_retry, self._sleep, label)

    def invalidate(self, prefix: Optional[str] = None) -> int:
        """Drop cached entries whose key starts with `prefix` (all when None)."""
        keys = [k for k in self._entries if prefix is None or k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.info("Cache invalidated", extra={"prefix": prefix or "*", "count": len(keys)})
        return len(keys)

    async def drain(self) -> None:
        """Wait until every background revalidation has settled."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Internals

    def _within_window(self, entry: CacheEntry, policy: CachePolicy) -> bool:
        if policy.freshness_window is None or entry.last_fetched_at is None:
            return False
        return self._clock() - entry.last_fetched_at < policy.freshness_window

    def _start(self, key: str, fetcher: Fetcher, policy: CachePolicy, force: bool) -> asyncio.Task:
        if not force and key in self._inflight:
            return self._inflight[key]

        sequence = self._issued.get(key, 0) + 1
        self._issued[key] = sequence
        task = asyncio.create_task(self._load(key, fetcher, policy, sequence))
        self._inflight[key] = task

        def _done(t: asyncio.Task) -> None:
            if self._inflight.get(key) is t:
                del self._inflight[key]
            if not t.cancelled():
                # Mark the outcome as retrieved; awaiting callers still receive it
                t.exception()

        task.add_done_callback(_done)
        return task

    def _revalidate(self, key: str, fetcher: Fetcher, policy: CachePolicy) -> None:
        if key in self._inflight:
            return
        task = self._start(key, fetcher, policy, force=False)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.debug("Background revalidation issued", extra={"cache_key": key})

    async def _load(self, key: str, fetcher: Fetcher, policy: CachePolicy, sequence: int) -> CacheEntry:
        try:
            data = await call_with_retry(fetcher, policy.retry, self._sleep, key)
        except RoadmapError as exc:
            return self._apply_failure(key, sequence, exc)
        return self._apply_success(key, sequence, data)

    def _superseded(self, key: str, sequence: int) -> bool:
        return sequence < self._applied.get(key, 0)

    def _apply_success(self, key: str, sequence: int, data: Any) -> CacheEntry:
        current = self._entries.get(key)
        if self._superseded(key, sequence) and current is not None:
            logger.debug(
                "Discarded out-of-order response",
                extra={"cache_key": key, "sequence": sequence, "applied": self._applied[key]},
            )
            return current

        self._applied[key] = max(self._applied.get(key, 0), sequence)
        entry = CacheEntry(
            key=key,
            data=data,
            status=CacheStatus.FRESH,
            last_fetched_at=self._clock(),
            sequence=sequence,
        )
        self._entries[key] = entry
        previous_status = current.status if current is not None else None
        if previous_status != CacheStatus.FRESH or current.data is not data:
            self._publish(key, previous_status, CacheStatus.FRESH)
        return entry

    def _apply_failure(self, key: str, sequence: int, exc: RoadmapError) -> CacheEntry:
        current = self._entries.get(key)
        if self._superseded(key, sequence) and current is not None and current.has_data:
            logger.debug("Discarded out-of-order failure", extra={"cache_key": key, "sequence": sequence})
            return current

        self._applied[key] = max(self._applied.get(key, 0), sequence)
        if current is not None and current.has_data:
            entry = replace(current, status=CacheStatus.ERROR, error=exc, sequence=sequence)
        else:
            entry = CacheEntry(
                key=key,
                data=None,
                status=CacheStatus.ERROR,
                last_fetched_at=None,
                error=exc,
                sequence=sequence,
            )
        self._entries[key] = entry
        previous_status = current.status if current is not None else None
        if previous_status != CacheStatus.ERROR:
            self._publish(key, previous_status, CacheStatus.ERROR)
        logger.warning(
            "Cache fetch failed",
            extra={"cache_key": key, "error_code": exc.code, "error": exc.message},
        )
        raise exc

    def _set_status(self, key: str, status: CacheStatus) -> CacheEntry:
        current = self._entries[key]
        entry = replace(current, status=status)
        self._entries[key] = entry
        self._publish(key, current.status, status)
        return entry

    def _publish(self, key: str, previous: Optional[CacheStatus], status: CacheStatus) -> None:
        logger.debug(
            "Cache status changed",
            extra={"cache_key": key, "from_status": previous.value if previous else None, "to_status": status.value},
        )
        if self._events is not None:
            self._events.publish(
                CacheStatusChanged(
                    key=key,
                    previous_status=previous.value if previous else None,
                    status=status.value,
                )
            )
