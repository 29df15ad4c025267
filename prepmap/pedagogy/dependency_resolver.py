"""
Dependency resolver - lock/unlock state for the topics of a level.

Only direct prerequisites are inspected. Transitive locking follows from the
rule that a locked topic can never be marked complete.
"""

from typing import Dict, Iterable, List, Optional, Set

from prepmap.kernel.models.content import Topic
from prepmap.kernel.models.progress import ProgressLookup
from prepmap.logging_config import get_logger

logger = get_logger(__name__)


class DependencyResolver:
    """Prerequisite checks over a level's topics."""

    @classmethod
    def known_prerequisites(cls, topic: Topic, known_ids: Set[str]) -> List[str]:
        """Prerequisite ids of `topic` that exist in `known_ids`; unknown ones are logged and dropped."""
        known: List[str] = []
        for prerequisite in sorted(topic.prerequisite_topic_ids):
            if prerequisite in known_ids:
                known.append(prerequisite)
            else:
                logger.warning(
                    "Topic references unknown prerequisite; treating as satisfied",
                    extra={"topic_id": topic.id, "prerequisite_id": prerequisite},
                )
        return known

    @classmethod
    def incomplete_prerequisites(
        cls,
        prerequisite_ids: Iterable[str],
        progress: ProgressLookup,
    ) -> List[str]:
        """Prerequisites whose record is absent or has no completion time."""
        return [pid for pid in prerequisite_ids if progress(pid).completed_at is None]

    @classmethod
    def is_locked(cls, prerequisite_ids: Iterable[str], progress: ProgressLookup) -> bool:
        return bool(cls.incomplete_prerequisites(prerequisite_ids, progress))

    @classmethod
    def resolve_locks(cls, topics: List[Topic], progress: ProgressLookup) -> Dict[str, bool]:
        """Map every topic id to its locked flag."""
        known_ids = {t.id for t in topics}
        return {
            topic.id: cls.is_locked(cls.known_prerequisites(topic, known_ids), progress)
            for topic in topics
        }

    @classmethod
    def next_topic(
        cls,
        topics: List[Topic],
        progress: ProgressLookup,
        locks: Optional[Dict[str, bool]] = None,
    ) -> Optional[Topic]:
        """First unlocked, incomplete topic in the given (topological) order."""
        locks = locks if locks is not None else cls.resolve_locks(topics, progress)
        for topic in topics:
            if not locks.get(topic.id, False) and progress(topic.id).completed_at is None:
                return topic
        return None
