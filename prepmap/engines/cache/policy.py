"""
Declared cache and retry policies, one per key class.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

from prepmap.config import Settings
from prepmap.kernel.models.content import Rank


class KeyClass(str, Enum):
    ROLES = "roles"
    ROADMAP = "roadmap"
    PROGRESS = "progress"


def roles_key() -> str:
    return KeyClass.ROLES.value


def roadmap_key(role_id: str, rank: Rank) -> str:
    """Compound (role, level) key, e.g. roadmap/backend/mid."""
    return f"{KeyClass.ROADMAP.value}/{role_id}/{rank.value}"


def progress_key(user_id: str) -> str:
    return f"{KeyClass.PROGRESS.value}/{user_id}"


def key_class(key: str) -> KeyClass:
    prefix = key.split("/", 1)[0]
    try:
        return KeyClass(prefix)
    except ValueError:
        return KeyClass.ROADMAP


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient failures. max_attempts counts the first try."""

    max_attempts: int = 3
    initial_backoff: float = 0.5
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self.initial_backoff * (self.multiplier ** (attempt - 1))


@dataclass(frozen=True)
class CachePolicy:
    """Freshness window (None = always read-through) plus retry policy."""

    freshness_window: Optional[timedelta] = timedelta(minutes=5)
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def is_read_through(self) -> bool:
        return self.freshness_window is None or self.freshness_window <= timedelta(0)


@dataclass(frozen=True)
class CachePolicies:
    """Policy table keyed by KeyClass, plus the retry policy for mutations."""

    roles: CachePolicy = field(default_factory=CachePolicy)
    roadmap: CachePolicy = field(default_factory=CachePolicy)
    progress: CachePolicy = field(default_factory=lambda: CachePolicy(freshness_window=None))
    mutation_retry: RetryPolicy = field(default_factory=RetryPolicy)

    def for_key(self, key: str) -> CachePolicy:
        return {
            KeyClass.ROLES: self.roles,
            KeyClass.ROADMAP: self.roadmap,
            KeyClass.PROGRESS: self.progress,
        }[key_class(key)]

    @classmethod
    def from_settings(cls, settings: Settings) -> "CachePolicies":
        retry = RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            initial_backoff=settings.retry_initial_backoff_seconds,
            multiplier=settings.retry_backoff_multiplier,
        )

        def window(seconds: float) -> Optional[timedelta]:
            return timedelta(seconds=seconds) if seconds > 0 else None

        return cls(
            roles=CachePolicy(freshness_window=window(settings.roles_freshness_seconds), retry=retry),
            roadmap=CachePolicy(freshness_window=window(settings.content_freshness_seconds), retry=retry),
            progress=CachePolicy(freshness_window=window(settings.progress_freshness_seconds), retry=retry),
            mutation_retry=retry,
        )
