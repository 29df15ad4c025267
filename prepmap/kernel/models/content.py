"""
Content model - roles, levels, topics and resources.

Entities are immutable and id-indexed. Nesting (role -> level -> topic ->
resource) is expressed through parent id references and derived on read.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_serializer


class Rank(str, Enum):
    """Seniority tier within a role."""

    JUNIOR = "junior"
    MID = "mid"
    SENIOR = "senior"

    @property
    def order(self) -> int:
        return _RANK_ORDER[self]

    @classmethod
    def ordered(cls) -> List["Rank"]:
        """All ranks, lowest first."""
        return sorted(cls, key=lambda r: r.order)


_RANK_ORDER = {Rank.JUNIOR: 0, Rank.MID: 1, Rank.SENIOR: 2}


class ResourceKind(str, Enum):
    """Kind of leaf content attached to a topic."""

    ARTICLE = "article"
    VIDEO = "video"
    TUTORIAL = "tutorial"
    DOCUMENTATION = "documentation"
    QUESTION = "question"


class Role(BaseModel):
    """A career track, e.g. frontend or backend."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    technologies: Tuple[str, ...] = ()


class Level(BaseModel):
    """One seniority tier of a role. Addressed by (role_id, rank)."""

    model_config = ConfigDict(frozen=True)

    id: str
    role_id: str
    rank: Rank
    title: str = ""
    estimated_hours: int = 0

    @property
    def key(self) -> Tuple[str, Rank]:
        return (self.role_id, self.rank)


class Topic(BaseModel):
    """A unit of learning content within a level."""

    model_config = ConfigDict(frozen=True)

    id: str
    level_id: str
    title: str
    description: str = ""
    order: int = 0
    estimated_minutes: int = 0
    prerequisite_topic_ids: FrozenSet[str] = frozenset()

    @field_serializer("prerequisite_topic_ids")
    def _serialize_prerequisites(self, value: FrozenSet[str]) -> List[str]:
        return sorted(value)


class Resource(BaseModel):
    """Descriptive leaf content (article, video, question...)."""

    model_config = ConfigDict(frozen=True)

    id: str
    topic_id: str
    kind: ResourceKind
    title: str = ""
    url: Optional[str] = None
    question_id: Optional[str] = None


def level_id_for(role_id: str, rank: Rank) -> str:
    """Compound level identifier used when the payload carries no level id."""
    return f"{role_id}/{rank.value}"


@dataclass(frozen=True, eq=False)
class ContentSnapshot:
    """
    Validated, immutable content for one fetch.

    Equality is identity: re-ingesting identical content hands back the same
    snapshot object, so consumers can memoize on `snapshot is previous`.
    """

    roles: Dict[str, Role]
    levels: Dict[str, Level]
    topics: Dict[str, Topic]
    resources: Dict[str, Resource]
    topic_order: Dict[str, Tuple[str, ...]]
    fingerprint: str
    _levels_by_key: Dict[Tuple[str, Rank], Level] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if not self._levels_by_key:
            self._levels_by_key.update({lvl.key: lvl for lvl in self.levels.values()})

    def level_for(self, role_id: str, rank: Rank) -> Optional[Level]:
        return self._levels_by_key.get((role_id, rank))

    def levels_for_role(self, role_id: str) -> List[Level]:
        levels = [lvl for lvl in self.levels.values() if lvl.role_id == role_id]
        return sorted(levels, key=lambda lvl: lvl.rank.order)

    def topics_for_level(self, level_id: str) -> List[Topic]:
        """Topics of a level in prerequisite (topological) order."""
        return [self.topics[tid] for tid in self.topic_order.get(level_id, ())]

    def resources_for_topic(self, topic_id: str) -> List[Resource]:
        return [r for r in self.resources.values() if r.topic_id == topic_id]

    def find_topic(self, topic_id: str) -> Optional[Topic]:
        return self.topics.get(topic_id)
