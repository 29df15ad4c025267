"""
Progress Store - per-user completion state with optimistic two-phase mutation.

Mutations apply to memory immediately and register a pending change. The
caller persists the change and then either commits it or reverts it to the
exact prior state. One pending change per (user, topic); no stacked undo.

Records are never deleted: un-completing sets completed_at to None.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from prepmap.kernel.errors import MutationInProgressError, PrerequisitesNotMetError, StaleRevertError
from prepmap.kernel.models.content import Topic
from prepmap.kernel.models.progress import ProgressLookup, ProgressRecord
from prepmap.logging_config import get_logger
from prepmap.pedagogy.dependency_resolver import DependencyResolver
from prepmap.schemas.view import LevelProgress

logger = get_logger(__name__)

_Key = Tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def completion_percentage(completed: int, total: int) -> int:
    """Completed share as an integer percentage, rounded half up; 100 only when all are done."""
    if total <= 0:
        return 0
    pct = (completed * 200 + total) // (2 * total)
    if completed < total:
        pct = min(pct, 99)
    return pct


@dataclass(frozen=True)
class PendingMutation:
    """An applied-but-unpersisted change and the state it replaced."""

    previous: Optional[ProgressRecord]
    applied: ProgressRecord


class ProgressStore:
    """
    In-memory owner of ProgressRecords. The only component that mutates them.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._records: Dict[_Key, ProgressRecord] = {}
        self._pending: Dict[_Key, PendingMutation] = {}
        self._versions: Dict[str, int] = {}
        # Stamp of the last local change per topic; orders local writes against server reads
        self._touched: Dict[_Key, int] = {}
        self._stamp = 0
        self._clock = clock or _utcnow

    # Reads

    def get_record(self, user_id: str, topic_id: str) -> ProgressRecord:
        """Stored record, or the not-started default. Never fails."""
        record = self._records.get((user_id, topic_id))
        return record if record is not None else ProgressRecord.not_started(user_id, topic_id)

    def peek_record(self, user_id: str, topic_id: str) -> Optional[ProgressRecord]:
        """Stored record or None when the user never completed the topic."""
        return self._records.get((user_id, topic_id))

    def lookup(self, user_id: str) -> ProgressLookup:
        return lambda topic_id: self.get_record(user_id, topic_id)

    def records_for(self, user_id: str) -> List[ProgressRecord]:
        return [r for (uid, _), r in self._records.items() if uid == user_id]

    def has_pending(self, user_id: str, topic_id: str) -> bool:
        return (user_id, topic_id) in self._pending

    def pending_for(self, user_id: str, topic_id: str) -> Optional[PendingMutation]:
        return self._pending.get((user_id, topic_id))

    def version(self, user_id: str) -> int:
        """Monotonic counter bumped on every change to the user's records."""
        return self._versions.get(user_id, 0)

    def checkpoint(self) -> int:
        """Marker to take before requesting server state; pass it back to hydrate()."""
        return self._stamp

    def compute_level_progress(self, user_id: str, level_id: str, topics: Iterable[Topic]) -> LevelProgress:
        """Pure aggregate over the topics of `level_id`."""
        level_topics = [t for t in topics if t.level_id == level_id]
        completed = sum(1 for t in level_topics if self.get_record(user_id, t.id).is_completed)
        total = len(level_topics)
        return LevelProgress(
            completion_pct=completion_percentage(completed, total),
            completed_count=completed,
            total_count=total,
        )

    # Optimistic mutations

    def mark_complete(
        self,
        user_id: str,
        topic_id: str,
        prerequisite_ids: Iterable[str] = (),
    ) -> ProgressRecord:
        """
        Complete a topic optimistically.

        Raises:
            MutationInProgressError: a change for this topic is awaiting persistence
            PrerequisitesNotMetError: a prerequisite is incomplete (topic locked)
        """
        key = (user_id, topic_id)
        self._ensure_not_pending(key)

        existing = self._records.get(key)
        if existing is not None and existing.is_completed:
            return existing

        missing = DependencyResolver.incomplete_prerequisites(prerequisite_ids, self.lookup(user_id))
        if missing:
            logger.warning(
                "Rejected completion of locked topic",
                extra={"user_id": user_id, "topic_id": topic_id, "missing": missing},
            )
            raise PrerequisitesNotMetError(topic_id, missing)

        record = ProgressRecord(user_id=user_id, topic_id=topic_id, completed_at=self._clock())
        self._apply(key, record, previous=existing)
        return record

    def mark_incomplete(self, user_id: str, topic_id: str) -> ProgressRecord:
        """Clear completion optimistically. No record is created for a never-started topic."""
        key = (user_id, topic_id)
        self._ensure_not_pending(key)

        existing = self._records.get(key)
        if existing is None:
            return ProgressRecord.not_started(user_id, topic_id)
        if not existing.is_completed:
            return existing

        record = existing.model_copy(update={"completed_at": None})
        self._apply(key, record, previous=existing)
        return record

    def reset_level(self, user_id: str, topics: Iterable[Topic]) -> List[PendingMutation]:
        """
        Un-complete every completed topic in `topics` as one batch of pending changes.

        Fails before touching anything if any affected topic already has a change in flight.
        """
        targets = [t.id for t in topics if self.get_record(user_id, t.id).is_completed]
        for topic_id in targets:
            self._ensure_not_pending((user_id, topic_id))
        for topic_id in targets:
            self.mark_incomplete(user_id, topic_id)
        return [self._pending[(user_id, tid)] for tid in targets]

    def commit(self, user_id: str, topic_id: str) -> ProgressRecord:
        """Persistence succeeded; the applied change becomes settled state."""
        pending = self._pending.pop((user_id, topic_id), None)
        if pending is None:
            logger.debug("Commit with no pending change", extra={"user_id": user_id, "topic_id": topic_id})
        else:
            self._touch((user_id, topic_id))
        return self.get_record(user_id, topic_id)

    def revert(self, user_id: str, topic_id: str, previous_state: Optional[ProgressRecord]) -> ProgressRecord:
        """
        Persistence failed; restore exactly `previous_state` (None = no record).

        Raises:
            StaleRevertError: nothing is pending for this topic, or `previous_state`
                is not the state the pending change replaced
        """
        key = (user_id, topic_id)
        pending = self._pending.get(key)
        if pending is None:
            raise StaleRevertError(f"No pending change to revert for topic '{topic_id}'")
        if pending.previous != previous_state:
            raise StaleRevertError(f"Revert state does not match the pending change for topic '{topic_id}'")

        del self._pending[key]
        if previous_state is None:
            self._records.pop(key, None)
        else:
            self._records[key] = previous_state
        self._touch(key)
        self._bump(user_id)
        logger.warning("Reverted optimistic progress change", extra={"user_id": user_id, "topic_id": topic_id})
        return self.get_record(user_id, topic_id)

    # Server state

    def hydrate(
        self,
        user_id: str,
        records: Iterable[ProgressRecord],
        as_of: Optional[int] = None,
    ) -> bool:
        """
        Replace the user's settled records with server state.

        Topics with a pending change keep their optimistic value. With `as_of`
        (a checkpoint() taken when the server state was requested), topics
        changed locally after that point keep their local value too, since the
        response predates them. Returns True when anything changed.
        """
        incoming = {r.topic_id: r for r in records if r.user_id == user_id}
        current = {tid: r for (uid, tid), r in self._records.items() if uid == user_id}

        def is_local(topic_id: str) -> bool:
            key = (user_id, topic_id)
            if key in self._pending:
                return True
            return as_of is not None and self._touched.get(key, 0) > as_of

        merged: Dict[str, ProgressRecord] = {}
        for topic_id, record in incoming.items():
            if not is_local(topic_id):
                merged[topic_id] = record
        for topic_id, record in current.items():
            if is_local(topic_id):
                merged[topic_id] = record

        if merged == current:
            return False
        for topic_id in current:
            del self._records[(user_id, topic_id)]
        for topic_id, record in merged.items():
            self._records[(user_id, topic_id)] = record
        self._bump(user_id)
        return True

    # Internals

    def _ensure_not_pending(self, key: _Key) -> None:
        if key in self._pending:
            raise MutationInProgressError(*key)

    def _apply(self, key: _Key, record: ProgressRecord, previous: Optional[ProgressRecord]) -> None:
        self._pending[key] = PendingMutation(previous=previous, applied=record)
        self._records[key] = record
        self._touch(key)
        self._bump(key[0])

    def _bump(self, user_id: str) -> None:
        self._versions[user_id] = self._versions.get(user_id, 0) + 1

    def _touch(self, key: _Key) -> None:
        self._stamp += 1
        self._touched[key] = self._stamp
