"""
Notification infrastructure.

Lets the UI re-render on cache status transitions and mutation outcomes.
"""

from prepmap.kernel.events.event_bus import EventBus
from prepmap.kernel.events.event_types import (
    BaseEvent,
    CacheStatusChanged,
    MutationCommitted,
    MutationReverted,
    ProgressEvent,
)

__all__ = [
    "EventBus",
    "BaseEvent",
    "CacheStatusChanged",
    "MutationCommitted",
    "MutationReverted",
    "ProgressEvent",
]
