"""
Kernel data models.

Immutable content entities and the per-user progress record.
"""

from prepmap.kernel.models.content import (
    ContentSnapshot,
    Level,
    Rank,
    Resource,
    ResourceKind,
    Role,
    Topic,
    level_id_for,
)
from prepmap.kernel.models.progress import ProgressLookup, ProgressRecord

__all__ = [
    "ContentSnapshot",
    "Level",
    "Rank",
    "Resource",
    "ResourceKind",
    "Role",
    "Topic",
    "level_id_for",
    "ProgressLookup",
    "ProgressRecord",
]
