"""
View schemas returned by the query facade.

Views are derived on read and never persisted. They carry summaries of the
content entities rather than the entities themselves.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _View(BaseModel):
    model_config = ConfigDict(frozen=True)


class RoleSummary(_View):
    id: str
    name: str
    description: str = ""
    technologies: List[str] = []


class LevelSummary(_View):
    id: str
    role_id: str
    rank: str
    title: str = ""
    estimated_hours: int = 0


class TopicSummary(_View):
    id: str
    title: str
    description: str = ""
    order: int = 0
    estimated_minutes: int = 0
    prerequisite_topic_ids: List[str] = []


class ResourceSummary(_View):
    id: str
    kind: str
    title: str = ""
    url: Optional[str] = None
    question_id: Optional[str] = None


class LevelProgress(_View):
    """Aggregate completion for one level."""

    completion_pct: int = Field(ge=0, le=100)
    completed_count: int = Field(ge=0)
    total_count: int = Field(ge=0)


class TopicView(_View):
    topic: TopicSummary
    locked: bool
    completed: bool
    completed_at: Optional[datetime] = None


class RoadmapView(_View):
    """Lock- and progress-annotated roadmap for one (role, level)."""

    role: RoleSummary
    level: LevelSummary
    topics: List[TopicView]
    completion_pct: int = Field(ge=0, le=100)
    completed_count: int = 0
    total_count: int = 0
    next_topic_id: Optional[str] = None
    status: str = "fresh"


class TopicDetailView(_View):
    """One topic with its resources, addressed by (role, level, topic)."""

    role: RoleSummary
    level: LevelSummary
    topic: TopicSummary
    resources: List[ResourceSummary]
    locked: bool
    completed: bool
    completed_at: Optional[datetime] = None
    blocking_prerequisite_ids: List[str] = []
    status: str = "fresh"


class LevelOverview(_View):
    level: LevelSummary
    progress: LevelProgress


class RoleOverview(_View):
    """Per-level progress across every level a role offers."""

    role: RoleSummary
    levels: List[LevelOverview]


class ProgressUpdateResponse(_View):
    topic_id: str
    completed: bool
    completed_at: Optional[datetime] = None
