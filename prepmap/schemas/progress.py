"""
Progress wire schemas: backend payloads and HTTP request bodies.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RawProgressRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    topic_id: str
    completed_at: Optional[datetime] = None


class RawProgressPayload(BaseModel):
    """Body of GET progress(userId)."""

    records: List[RawProgressRecord] = []


class ProgressUpdateRequest(BaseModel):
    """Body of PUT progress requests (backend and HTTP surface)."""

    completed: bool
