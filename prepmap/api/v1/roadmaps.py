"""Roadmap and progress endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Query

from prepmap.api.deps import CurrentUser, Facade
from prepmap.schemas.progress import ProgressUpdateRequest
from prepmap.schemas.view import (
    LevelProgress,
    ProgressUpdateResponse,
    RoadmapView,
    RoleOverview,
    RoleSummary,
    TopicDetailView,
)

router = APIRouter()


@router.get("/roadmaps/roles", response_model=List[RoleSummary])
async def list_roles(facade: Facade, user: CurrentUser):
    """Roles available for interview preparation."""
    return await facade.get_roles()


@router.delete("/roadmaps/cache")
async def invalidate_cache(
    facade: Facade,
    user: CurrentUser,
    prefix: Optional[str] = Query(default=None, description="Cache key prefix, e.g. roadmap/backend"),
):
    """Drop cached entries so the next read refetches."""
    removed = facade.invalidate(prefix)
    return {"removed": removed, "prefix": prefix}


# Declared before /{role_id}/{level} so "overview" is not read as a level
@router.get("/roadmaps/{role_id}/overview", response_model=RoleOverview)
async def get_role_overview(role_id: str, facade: Facade, user: CurrentUser):
    """Completion across every level of a role."""
    return await facade.get_role_overview(user.user_id, role_id)


@router.get("/roadmaps/{role_id}/{level}", response_model=RoadmapView)
async def get_roadmap(role_id: str, level: str, facade: Facade, user: CurrentUser):
    """Lock- and progress-annotated roadmap for a role and level."""
    return await facade.get_roadmap_view(user.user_id, role_id, level)


@router.post("/roadmaps/{role_id}/{level}/refresh", response_model=RoadmapView)
async def refresh_roadmap(role_id: str, level: str, facade: Facade, user: CurrentUser):
    """Refetch a roadmap regardless of freshness."""
    return await facade.refresh(user.user_id, role_id, level)


@router.get("/roadmaps/{role_id}/{level}/progress", response_model=LevelProgress)
async def get_level_progress(role_id: str, level: str, facade: Facade, user: CurrentUser):
    return await facade.get_level_progress(user.user_id, role_id, level)


@router.delete("/roadmaps/{role_id}/{level}/progress", response_model=LevelProgress)
async def reset_level_progress(role_id: str, level: str, facade: Facade, user: CurrentUser):
    """Clear completion for every topic of a level."""
    return await facade.reset_level_progress(user.user_id, role_id, level)


@router.get("/roadmaps/{role_id}/{level}/topics/{topic_id}", response_model=TopicDetailView)
async def get_topic(role_id: str, level: str, topic_id: str, facade: Facade, user: CurrentUser):
    """Topic detail with resources and blocking prerequisites."""
    return await facade.get_topic_view(user.user_id, role_id, level, topic_id)


@router.put("/progress/{topic_id}", response_model=ProgressUpdateResponse)
async def update_progress(
    topic_id: str,
    body: ProgressUpdateRequest,
    facade: Facade,
    user: CurrentUser,
):
    """Mark a topic complete or incomplete for the caller."""
    if body.completed:
        record = await facade.complete_topic_request(user.user_id, topic_id)
    else:
        record = await facade.uncomplete_topic_request(user.user_id, topic_id)
    return ProgressUpdateResponse(
        topic_id=record.topic_id,
        completed=record.is_completed,
        completed_at=record.completed_at,
    )
