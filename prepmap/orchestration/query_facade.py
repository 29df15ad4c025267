"""
Query facade - the single entry point the UI consumes.

Reads resolve a (role, level) or (role, level, topic) key into an immutable
view: content and progress come through the remote cache, locks through the
dependency resolver.

Mutations follow a fixed order: resolve locks -> reject if locked ->
optimistic update -> persist -> commit, or revert and re-raise.
"""

import asyncio
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Type

from prepmap.engines.cache.policy import KeyClass, key_class, progress_key, roadmap_key, roles_key
from prepmap.engines.cache.remote_cache import CacheEntry, CacheStatus, RemoteCache
from prepmap.engines.cache.transport import RoadmapApiClient
from prepmap.engines.content.ingest import ingest
from prepmap.engines.progress.progress_store import ProgressStore
from prepmap.kernel.errors import ClientRequestError, RoadmapNotFoundError, TopicNotFoundError
from prepmap.kernel.events.event_bus import EventBus
from prepmap.kernel.events.event_types import BaseEvent, MutationCommitted, MutationReverted
from prepmap.kernel.models.content import ContentSnapshot, Level, Rank, Resource, Role, Topic
from prepmap.kernel.models.progress import ProgressRecord
from prepmap.logging_config import correlation_id_var, get_logger
from prepmap.pedagogy.dependency_resolver import DependencyResolver
from prepmap.schemas.view import (
    LevelOverview,
    LevelProgress,
    LevelSummary,
    ResourceSummary,
    RoadmapView,
    RoleOverview,
    RoleSummary,
    TopicDetailView,
    TopicSummary,
    TopicView,
)

logger = get_logger(__name__)


@contextmanager
def _operation() -> Iterator[str]:
    """Give the current operation a correlation id unless the caller already set one."""
    current = correlation_id_var.get()
    if current is not None:
        yield current
        return
    token = correlation_id_var.set(uuid.uuid4().hex[:12])
    try:
        yield correlation_id_var.get() or ""
    finally:
        correlation_id_var.reset(token)


def _parse_rank(level_rank: str) -> Rank:
    try:
        return Rank(str(level_rank).lower())
    except ValueError:
        raise RoadmapNotFoundError(f"Unknown level '{level_rank}'") from None


def _role_summary(role: Role) -> RoleSummary:
    return RoleSummary(
        id=role.id,
        name=role.name,
        description=role.description,
        technologies=list(role.technologies),
    )


def _level_summary(level: Level) -> LevelSummary:
    return LevelSummary(
        id=level.id,
        role_id=level.role_id,
        rank=level.rank.value,
        title=level.title,
        estimated_hours=level.estimated_hours,
    )


def _topic_summary(topic: Topic) -> TopicSummary:
    return TopicSummary(
        id=topic.id,
        title=topic.title,
        description=topic.description,
        order=topic.order,
        estimated_minutes=topic.estimated_minutes,
        prerequisite_topic_ids=sorted(topic.prerequisite_topic_ids),
    )


def _resource_summary(resource: Resource) -> ResourceSummary:
    return ResourceSummary(
        id=resource.id,
        kind=resource.kind.value,
        title=resource.title,
        url=resource.url,
        question_id=resource.question_id,
    )


@dataclass(frozen=True)
class _LoadedRoadmap:
    snapshot: ContentSnapshot
    role: Role
    level: Level
    status: CacheStatus


@dataclass(frozen=True)
class _ProgressFetch:
    """Server progress plus the store checkpoint taken when it was requested."""

    records: List[ProgressRecord]
    as_of: int


class QueryFacade:
    """
    Composes content, progress and lock state for the UI.

    Usage:
        facade = QueryFacade(RoadmapApiClient(settings.api_base_url))
        view = await facade.get_roadmap_view("u1", "backend", "mid")
        await facade.complete_topic_request("u1", view.next_topic_id)
    """

    def __init__(
        self,
        client: RoadmapApiClient,
        cache: Optional[RemoteCache] = None,
        store: Optional[ProgressStore] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.client = client
        self.events = event_bus or EventBus()
        self.cache = cache or RemoteCache(event_bus=self.events)
        self.store = store or ProgressStore()
        self._hydrated: Dict[str, int] = {}
        self._views: Dict[Tuple[str, str, Rank], Tuple[ContentSnapshot, int, CacheStatus, RoadmapView]] = {}

    # Notifications

    def subscribe(
        self,
        callback: Callable[[BaseEvent], None],
        event_type: Optional[Type[BaseEvent]] = None,
    ) -> Callable[[], None]:
        """Re-render hook for cache status transitions and mutation outcomes."""
        return self.events.subscribe(callback, event_type)

    # Reads

    async def get_roles(self) -> List[RoleSummary]:
        with _operation():
            key = roles_key()

            async def load() -> ContentSnapshot:
                raw = await self.client.get_roles()
                return ingest(raw, previous=self._cached_snapshot(key))

            entry = await self.cache.fetch(key, load)
            roles = sorted(entry.data.roles.values(), key=lambda r: r.name)
            return [_role_summary(r) for r in roles]

    async def get_roadmap_view(self, user_id: str, role_id: str, level_rank: str) -> RoadmapView:
        """Lock- and progress-annotated view of one (role, level)."""
        with _operation():
            rank = _parse_rank(level_rank)
            try:
                loaded = await self._load_roadmap(role_id, rank)
                await self._sync_progress(user_id)
            except asyncio.CancelledError:
                logger.debug(
                    "View request withdrawn",
                    extra={"user_id": user_id, "role_id": role_id, "rank": rank.value},
                )
                raise
            return self._roadmap_view(user_id, loaded)

    async def get_topic_view(
        self,
        user_id: str,
        role_id: str,
        level_rank: str,
        topic_id: str,
    ) -> TopicDetailView:
        """One topic of a (role, level) with its resources and blocking prerequisites."""
        with _operation():
            loaded = await self._load_roadmap(role_id, _parse_rank(level_rank))
            await self._sync_progress(user_id)

            topic = loaded.snapshot.find_topic(topic_id)
            if topic is None or topic.level_id != loaded.level.id:
                raise TopicNotFoundError(
                    f"Topic '{topic_id}' is not part of {role_id}/{loaded.level.rank.value}"
                )

            level_topics = loaded.snapshot.topics_for_level(loaded.level.id)
            lookup = self.store.lookup(user_id)
            prerequisites = DependencyResolver.known_prerequisites(topic, {t.id for t in level_topics})
            blocking = DependencyResolver.incomplete_prerequisites(prerequisites, lookup)
            record = lookup(topic.id)
            return TopicDetailView(
                role=_role_summary(loaded.role),
                level=_level_summary(loaded.level),
                topic=_topic_summary(topic),
                resources=[_resource_summary(r) for r in loaded.snapshot.resources_for_topic(topic.id)],
                locked=bool(blocking),
                completed=record.is_completed,
                completed_at=record.completed_at,
                blocking_prerequisite_ids=blocking,
                status=loaded.status.value,
            )

    async def get_level_progress(self, user_id: str, role_id: str, level_rank: str) -> LevelProgress:
        with _operation():
            loaded = await self._load_roadmap(role_id, _parse_rank(level_rank))
            await self._sync_progress(user_id)
            topics = loaded.snapshot.topics_for_level(loaded.level.id)
            return self.store.compute_level_progress(user_id, loaded.level.id, topics)

    async def get_role_overview(self, user_id: str, role_id: str) -> RoleOverview:
        """Progress for every level the role offers; levels the backend lacks are omitted."""
        with _operation():

            async def load(rank: Rank) -> Optional[_LoadedRoadmap]:
                try:
                    return await self._load_roadmap(role_id, rank)
                except RoadmapNotFoundError:
                    return None

            results = await asyncio.gather(*(load(rank) for rank in Rank.ordered()))
            loaded = [r for r in results if r is not None]
            if not loaded:
                raise RoadmapNotFoundError(f"Role '{role_id}' has no roadmaps")
            await self._sync_progress(user_id)

            levels = [
                LevelOverview(
                    level=_level_summary(r.level),
                    progress=self.store.compute_level_progress(
                        user_id, r.level.id, r.snapshot.topics_for_level(r.level.id)
                    ),
                )
                for r in loaded
            ]
            return RoleOverview(role=_role_summary(loaded[0].role), levels=levels)

    async def refresh(self, user_id: str, role_id: str, level_rank: str) -> RoadmapView:
        """Explicit refetch of a roadmap, bypassing freshness and coalescing."""
        with _operation():
            loaded = await self._load_roadmap(role_id, _parse_rank(level_rank), force=True)
            await self._sync_progress(user_id)
            return self._roadmap_view(user_id, loaded)

    def invalidate(self, prefix: Optional[str] = None) -> int:
        self._views.clear()
        return self.cache.invalidate(prefix)

    # Mutations

    async def complete_topic_request(self, user_id: str, topic_id: str) -> ProgressRecord:
        """
        Mark a topic complete and persist it.

        Raises:
            TopicNotFoundError: topic is not part of any loaded roadmap
            PrerequisitesNotMetError: topic is locked
            MutationInProgressError: a change for this topic is still in flight
            RoadmapError: persistence failed (the optimistic change is reverted first)
        """
        with _operation():
            snapshot, topic = self._locate_topic(topic_id)
            await self._ensure_progress(user_id)

            level_topics = snapshot.topics_for_level(topic.level_id)
            prerequisites = DependencyResolver.known_prerequisites(topic, {t.id for t in level_topics})
            previous = self.store.peek_record(user_id, topic_id)
            record = self.store.mark_complete(user_id, topic_id, prerequisites)
            if not self.store.has_pending(user_id, topic_id):
                return record
            return await self._persist(user_id, topic_id, previous, completed=True)

    async def uncomplete_topic_request(self, user_id: str, topic_id: str) -> ProgressRecord:
        """Clear a topic's completion and persist it. Same commit/revert protocol."""
        with _operation():
            self._locate_topic(topic_id)
            await self._ensure_progress(user_id)

            previous = self.store.peek_record(user_id, topic_id)
            record = self.store.mark_incomplete(user_id, topic_id)
            if not self.store.has_pending(user_id, topic_id):
                return record
            return await self._persist(user_id, topic_id, previous, completed=False)

    async def reset_level_progress(self, user_id: str, role_id: str, level_rank: str) -> LevelProgress:
        """
        Un-complete every topic of a level. Records are kept with no completion time.

        Each topic is persisted independently; failed ones are reverted and the
        first failure is raised after all have settled.
        """
        with _operation():
            loaded = await self._load_roadmap(role_id, _parse_rank(level_rank))
            await self._sync_progress(user_id)
            topics = loaded.snapshot.topics_for_level(loaded.level.id)

            pending = self.store.reset_level(user_id, topics)
            results = await asyncio.gather(
                *(
                    self._persist(user_id, p.applied.topic_id, p.previous, completed=False)
                    for p in pending
                ),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise failures[0]
            return self.store.compute_level_progress(user_id, loaded.level.id, topics)

    # Internals

    def _cached_snapshot(self, key: str) -> Optional[ContentSnapshot]:
        entry = self.cache.peek(key)
        return entry.data if entry is not None and entry.has_data else None

    async def _load_roadmap(self, role_id: str, rank: Rank, force: bool = False) -> _LoadedRoadmap:
        key = roadmap_key(role_id, rank)

        async def load() -> ContentSnapshot:
            raw = await self.client.get_roadmap(role_id, rank)
            return ingest(raw, previous=self._cached_snapshot(key))

        try:
            entry = await self.cache.fetch(key, load, force=force)
        except ClientRequestError as exc:
            if exc.status_code == 404:
                raise RoadmapNotFoundError(f"No roadmap for {role_id}/{rank.value}") from exc
            raise

        snapshot: ContentSnapshot = entry.data
        role = snapshot.roles.get(role_id)
        level = snapshot.level_for(role_id, rank)
        if role is None or level is None:
            raise RoadmapNotFoundError(f"No roadmap for {role_id}/{rank.value}")
        return _LoadedRoadmap(snapshot=snapshot, role=role, level=level, status=entry.status)

    async def _sync_progress(self, user_id: str) -> None:
        async def load() -> _ProgressFetch:
            as_of = self.store.checkpoint()
            records = await self.client.get_progress(user_id)
            return _ProgressFetch(records=records, as_of=as_of)

        entry: CacheEntry = await self.cache.fetch(progress_key(user_id), load)
        if self._hydrated.get(user_id) == entry.sequence:
            return
        fetched: Optional[_ProgressFetch] = entry.data
        if fetched is None:
            self.store.hydrate(user_id, [])
        else:
            self.store.hydrate(user_id, fetched.records, as_of=fetched.as_of)
        self._hydrated[user_id] = entry.sequence

    async def _ensure_progress(self, user_id: str) -> None:
        if user_id not in self._hydrated:
            await self._sync_progress(user_id)

    def _locate_topic(self, topic_id: str) -> Tuple[ContentSnapshot, Topic]:
        for entry in self.cache.entries():
            if key_class(entry.key) != KeyClass.ROADMAP or not entry.has_data:
                continue
            topic = entry.data.find_topic(topic_id)
            if topic is not None:
                return entry.data, topic
        raise TopicNotFoundError(f"Topic '{topic_id}' is not part of any loaded roadmap")

    async def _persist(
        self,
        user_id: str,
        topic_id: str,
        previous: Optional[ProgressRecord],
        completed: bool,
    ) -> ProgressRecord:
        try:
            await self.cache.mutate(
                lambda: self.client.put_progress(user_id, topic_id, completed),
                label=f"{progress_key(user_id)}/{topic_id}",
            )
        except asyncio.CancelledError:
            self._revert(user_id, topic_id, previous, "CANCELLED", "Persistence cancelled")
            raise
        except Exception as exc:
            self._revert(user_id, topic_id, previous, getattr(exc, "code", type(exc).__name__), str(exc))
            raise

        record = self.store.commit(user_id, topic_id)
        self.events.publish(
            MutationCommitted(user_id=user_id, topic_id=topic_id, completed_at=record.completed_at)
        )
        logger.info(
            "Progress change committed",
            extra={"user_id": user_id, "topic_id": topic_id, "completed": completed},
        )
        return record

    def _revert(
        self,
        user_id: str,
        topic_id: str,
        previous: Optional[ProgressRecord],
        error_code: str,
        message: str,
    ) -> None:
        self.store.revert(user_id, topic_id, previous)
        self.events.publish(
            MutationReverted(user_id=user_id, topic_id=topic_id, error_code=error_code, message=message)
        )

    def _roadmap_view(self, user_id: str, loaded: _LoadedRoadmap) -> RoadmapView:
        memo_key = (user_id, loaded.role.id, loaded.level.rank)
        version = self.store.version(user_id)
        cached = self._views.get(memo_key)
        if cached is not None:
            snapshot, cached_version, status, view = cached
            if snapshot is loaded.snapshot and cached_version == version and status == loaded.status:
                return view

        topics = loaded.snapshot.topics_for_level(loaded.level.id)
        lookup = self.store.lookup(user_id)
        locks = DependencyResolver.resolve_locks(topics, lookup)
        progress = self.store.compute_level_progress(user_id, loaded.level.id, topics)
        next_topic = DependencyResolver.next_topic(topics, lookup, locks)

        topic_views = []
        for topic in topics:
            record = lookup(topic.id)
            topic_views.append(
                TopicView(
                    topic=_topic_summary(topic),
                    locked=locks[topic.id],
                    completed=record.is_completed,
                    completed_at=record.completed_at,
                )
            )

        view = RoadmapView(
            role=_role_summary(loaded.role),
            level=_level_summary(loaded.level),
            topics=topic_views,
            completion_pct=progress.completion_pct,
            completed_count=progress.completed_count,
            total_count=progress.total_count,
            next_topic_id=next_topic.id if next_topic is not None else None,
            status=loaded.status.value,
        )
        self._views[memo_key] = (loaded.snapshot, version, loaded.status, view)
        return view
