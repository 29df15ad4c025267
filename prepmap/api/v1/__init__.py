"""
API v1 routes.
"""

from fastapi import APIRouter

from prepmap.api.v1 import roadmaps

router = APIRouter()

router.include_router(roadmaps.router, tags=["Roadmaps"])
