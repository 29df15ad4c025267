"""
Pytest fixtures for prepmap tests.
"""

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from prepmap.engines.cache.policy import CachePolicies
from prepmap.engines.cache.remote_cache import RemoteCache
from prepmap.engines.progress.progress_store import ProgressStore
from prepmap.kernel.errors import ClientRequestError, RoadmapError
from prepmap.kernel.events.event_bus import EventBus
from prepmap.kernel.models.content import Rank
from prepmap.kernel.models.progress import ProgressRecord
from prepmap.orchestration.query_facade import QueryFacade

T0 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Replaces asyncio.sleep in retry loops; records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def make_payload(
    role_id: str = "backend",
    rank: str = "mid",
    topics: Optional[List[Dict[str, Any]]] = None,
    resources: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Backend-shaped (camelCase) roadmap payload for one role and level."""
    level_id = f"{role_id}-{rank}"
    if topics is None:
        topics = [
            {"id": "T1", "title": "HTTP basics", "order": 1, "estimatedMinutes": 30},
            {"id": "T2", "title": "REST design", "order": 2, "estimatedMinutes": 45,
             "prerequisiteTopicIds": ["T1"]},
        ]
    if resources is None:
        resources = [
            {"id": "R1", "topicId": "T1", "kind": "article", "title": "MDN HTTP",
             "url": "https://developer.mozilla.org/en-US/docs/Web/HTTP"},
            {"id": "Q1", "topicId": "T2", "kind": "question", "title": "Idempotency",
             "questionId": "q-101"},
        ]
    return {
        "roles": [
            {"id": role_id, "name": role_id.title(), "description": f"{role_id} track",
             "technologies": ["python", "postgres"]},
        ],
        "levels": [
            {"id": level_id, "roleId": role_id, "rank": rank, "title": f"{rank.title()} {role_id}",
             "estimatedHours": 40},
        ],
        "topics": [{"levelId": level_id, **t} for t in topics],
        "resources": resources,
    }


class FakeBackend:
    """
    In-memory stand-in for RoadmapApiClient.

    Failures are queued per operation; each queued exception is raised by one call.
    """

    def __init__(self):
        self.roadmaps: Dict[Tuple[str, str], Dict[str, Any]] = {
            ("backend", "mid"): make_payload(),
        }
        self.progress: Dict[str, Dict[str, Optional[datetime]]] = {}
        self.calls: Dict[str, int] = {"roles": 0, "roadmap": 0, "progress": 0, "put": 0}
        self.failures: Dict[str, List[RoadmapError]] = {"roles": [], "roadmap": [], "progress": [], "put": []}
        self.put_gate: Optional[asyncio.Event] = None
        self.progress_gate: Optional[asyncio.Event] = None

    def _maybe_fail(self, operation: str) -> None:
        self.calls[operation] += 1
        queued = self.failures[operation]
        if queued:
            raise queued.pop(0)

    async def get_roles(self) -> Dict[str, Any]:
        self._maybe_fail("roles")
        roles = []
        for payload in self.roadmaps.values():
            for role in payload["roles"]:
                if role not in roles:
                    roles.append(role)
        return {"roles": copy.deepcopy(roles)}

    async def get_roadmap(self, role_id: str, rank: Rank) -> Dict[str, Any]:
        self._maybe_fail("roadmap")
        payload = self.roadmaps.get((role_id, rank.value))
        if payload is None:
            raise ClientRequestError("Roadmap not found", status_code=404, upstream_code="NOT_FOUND")
        return copy.deepcopy(payload)

    async def get_progress(self, user_id: str) -> List[ProgressRecord]:
        self._maybe_fail("progress")
        records = [
            ProgressRecord(user_id=user_id, topic_id=topic_id, completed_at=completed_at)
            for topic_id, completed_at in self.progress.get(user_id, {}).items()
        ]
        # Server state is read before the gate; the response may arrive late
        if self.progress_gate is not None:
            await self.progress_gate.wait()
        return records

    async def put_progress(self, user_id: str, topic_id: str, completed: bool) -> None:
        if self.put_gate is not None:
            await self.put_gate.wait()
        self._maybe_fail("put")
        self.progress.setdefault(user_id, {})[topic_id] = T0 if completed else None

    async def aclose(self) -> None:
        return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def cache(clock: FakeClock, sleeps: RecordingSleep, event_bus: EventBus) -> RemoteCache:
    return RemoteCache(CachePolicies(), event_bus=event_bus, clock=clock, sleep=sleeps)


@pytest.fixture
def store(clock: FakeClock) -> ProgressStore:
    return ProgressStore(clock=clock)


@pytest.fixture
def facade(backend: FakeBackend, cache: RemoteCache, store: ProgressStore, event_bus: EventBus) -> QueryFacade:
    return QueryFacade(backend, cache=cache, store=store, event_bus=event_bus)


@pytest.fixture
def payload_factory():
    """Builds backend-shaped roadmap payloads (see make_payload)."""
    return make_payload
