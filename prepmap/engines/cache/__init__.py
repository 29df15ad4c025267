"""
Remote cache layer - stale-while-revalidate cache over the roadmap backend.

Parts:
- policy: freshness windows and retry policies per key class
- remote_cache: keyed cache with coalescing and per-key response ordering
- transport: httpx client for the backend contract
"""

from prepmap.engines.cache.policy import (
    CachePolicies,
    CachePolicy,
    KeyClass,
    RetryPolicy,
    progress_key,
    roadmap_key,
    roles_key,
)
from prepmap.engines.cache.remote_cache import CacheEntry, CacheStatus, RemoteCache, call_with_retry
from prepmap.engines.cache.transport import RoadmapApiClient

__all__ = [
    "CachePolicies",
    "CachePolicy",
    "KeyClass",
    "RetryPolicy",
    "progress_key",
    "roadmap_key",
    "roles_key",
    "CacheEntry",
    "CacheStatus",
    "RemoteCache",
    "call_with_retry",
    "RoadmapApiClient",
]
