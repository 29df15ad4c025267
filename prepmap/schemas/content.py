"""
Raw content payload schemas (backend wire format).

The backend speaks camelCase; snake_case is accepted too so fixtures and admin
tooling can post either.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RawRole(_WireModel):
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    technologies: List[str] = []


class RawLevel(_WireModel):
    id: Optional[str] = None
    role_id: str = Field(min_length=1)
    rank: str
    title: str = ""
    estimated_hours: int = Field(default=0, ge=0)


class RawTopic(_WireModel):
    id: str = Field(min_length=1)
    level_id: str = Field(min_length=1)
    title: str
    description: str = ""
    order: int = 0
    estimated_minutes: int = Field(default=0, ge=0)
    prerequisite_topic_ids: List[str] = []


class RawResource(_WireModel):
    id: str = Field(min_length=1)
    topic_id: str = Field(min_length=1)
    kind: str
    title: str = ""
    url: Optional[str] = None
    question_id: Optional[str] = None


class RawContentPayload(_WireModel):
    """Normalized content payload. Every list may be empty."""

    roles: List[RawRole] = []
    levels: List[RawLevel] = []
    topics: List[RawTopic] = []
    resources: List[RawResource] = []
