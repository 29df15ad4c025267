"""
Pydantic schemas for the backend contract and the views handed to the UI.
"""

from prepmap.schemas.common import ApiEnvelope, ApiErrorBody, ErrorResponse, HealthResponse
from prepmap.schemas.content import (
    RawContentPayload,
    RawLevel,
    RawResource,
    RawRole,
    RawTopic,
)
from prepmap.schemas.progress import (
    ProgressUpdateRequest,
    RawProgressPayload,
    RawProgressRecord,
)
from prepmap.schemas.view import (
    LevelOverview,
    LevelProgress,
    LevelSummary,
    ProgressUpdateResponse,
    ResourceSummary,
    RoadmapView,
    RoleOverview,
    RoleSummary,
    TopicDetailView,
    TopicSummary,
    TopicView,
)

__all__ = [
    "ApiEnvelope",
    "ApiErrorBody",
    "ErrorResponse",
    "HealthResponse",
    "RawContentPayload",
    "RawLevel",
    "RawResource",
    "RawRole",
    "RawTopic",
    "ProgressUpdateRequest",
    "RawProgressPayload",
    "RawProgressRecord",
    "LevelOverview",
    "LevelProgress",
    "LevelSummary",
    "ProgressUpdateResponse",
    "ResourceSummary",
    "RoadmapView",
    "RoleOverview",
    "RoleSummary",
    "TopicDetailView",
    "TopicSummary",
    "TopicView",
]
