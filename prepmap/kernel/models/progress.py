"""
Progress record - the only entity with a write lifecycle.
"""

from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict


class ProgressRecord(BaseModel):
    """Per-user, per-topic completion marker."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    topic_id: str
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @classmethod
    def not_started(cls, user_id: str, topic_id: str) -> "ProgressRecord":
        """Implicit default for a topic the user never completed."""
        return cls(user_id=user_id, topic_id=topic_id, completed_at=None)


# topic_id -> record (never fails; returns the not-started default)
ProgressLookup = Callable[[str], ProgressRecord]
