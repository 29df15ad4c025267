"""Progress engine - per-user completion state and aggregate metrics."""

from prepmap.engines.progress.progress_store import (
    PendingMutation,
    ProgressStore,
    completion_percentage,
)

__all__ = ["PendingMutation", "ProgressStore", "completion_percentage"]
