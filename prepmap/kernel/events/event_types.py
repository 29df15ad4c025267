"""
Notification payloads published to subscribers (UI re-render hooks).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base event payload structure."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Cache events

class CacheStatusChanged(BaseEvent):
    """A cache key moved between fresh, stale and error."""

    key: str
    previous_status: Optional[str] = None
    status: str


# Progress events

class ProgressEvent(BaseEvent):
    """Progress mutation outcome for one (user, topic)."""

    user_id: str
    topic_id: str


class MutationCommitted(ProgressEvent):
    """Optimistic change was persisted."""

    completed_at: Optional[datetime] = None


class MutationReverted(ProgressEvent):
    """Optimistic change was rolled back after persistence failed or was cancelled."""

    error_code: str
    message: str = ""
