"""
Content ingest - parse and validate raw roadmap payloads into a ContentSnapshot.

Checks, in order:
1. Shape (pydantic schema)
2. Unique ids per entity kind
3. Parent references (level -> role, topic -> level, resource -> topic)
4. Prerequisites reference topics of the same level
5. Acyclic prerequisite graph per level (Kahn's algorithm)

The snapshot is only assembled after every check passes; a failure never
leaves partial content behind.
"""

import hashlib
import heapq
import json
from typing import Any, Dict, Iterable, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ValidationError

from prepmap.kernel.errors import MalformedContentError
from prepmap.kernel.models.content import (
    ContentSnapshot,
    Level,
    Rank,
    Resource,
    ResourceKind,
    Role,
    Topic,
    level_id_for,
)
from prepmap.logging_config import get_logger
from prepmap.schemas.content import RawContentPayload

logger = get_logger(__name__)

E = TypeVar("E", bound=BaseModel)


def compute_content_hash(content: str) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content.encode()).hexdigest()


def _parse(raw: Any) -> RawContentPayload:
    if isinstance(raw, RawContentPayload):
        return raw
    if not isinstance(raw, dict):
        raise MalformedContentError(f"Content payload must be an object, got {type(raw).__name__}")
    try:
        return RawContentPayload.model_validate(raw)
    except ValidationError as e:
        raise MalformedContentError(f"Content payload failed validation: {e.error_count()} error(s)") from e


def _index(entities: Iterable[E], kind: str) -> Dict[str, E]:
    indexed: Dict[str, E] = {}
    for entity in entities:
        entity_id = getattr(entity, "id")
        if entity_id in indexed:
            raise MalformedContentError(f"Duplicate {kind} id: {entity_id}")
        indexed[entity_id] = entity
    return indexed


def _build_levels(payload: RawContentPayload, roles: Dict[str, Role]) -> Dict[str, Level]:
    levels: List[Level] = []
    seen_keys: Dict[Tuple[str, Rank], str] = {}
    for raw in payload.levels:
        try:
            rank = Rank(raw.rank.lower())
        except ValueError:
            raise MalformedContentError(f"Unknown level rank '{raw.rank}' for role '{raw.role_id}'") from None
        if raw.role_id not in roles:
            raise MalformedContentError(f"Level references unknown role '{raw.role_id}'")
        level = Level(
            id=raw.id or level_id_for(raw.role_id, rank),
            role_id=raw.role_id,
            rank=rank,
            title=raw.title,
            estimated_hours=raw.estimated_hours,
        )
        if level.key in seen_keys:
            raise MalformedContentError(
                f"Role '{raw.role_id}' has more than one {rank.value} level "
                f"({seen_keys[level.key]}, {level.id})"
            )
        seen_keys[level.key] = level.id
        levels.append(level)
    return _index(levels, "level")


def _build_topics(payload: RawContentPayload, levels: Dict[str, Level]) -> Dict[str, Topic]:
    topics = _index(
        (
            Topic(
                id=raw.id,
                level_id=raw.level_id,
                title=raw.title,
                description=raw.description,
                order=raw.order,
                estimated_minutes=raw.estimated_minutes,
                prerequisite_topic_ids=frozenset(raw.prerequisite_topic_ids),
            )
            for raw in payload.topics
        ),
        "topic",
    )
    for topic in topics.values():
        if topic.level_id not in levels:
            raise MalformedContentError(
                f"Topic '{topic.id}' references unknown level '{topic.level_id}'",
                topic_ids=[topic.id],
            )
        for prerequisite in topic.prerequisite_topic_ids:
            other = topics.get(prerequisite)
            if other is None:
                raise MalformedContentError(
                    f"Topic '{topic.id}' has unknown prerequisite '{prerequisite}'",
                    topic_ids=[topic.id],
                )
            if other.level_id != topic.level_id:
                raise MalformedContentError(
                    f"Topic '{topic.id}' has prerequisite '{prerequisite}' from another level",
                    topic_ids=[topic.id, prerequisite],
                )
    return topics


def _build_resources(payload: RawContentPayload, topics: Dict[str, Topic]) -> Dict[str, Resource]:
    resources: List[Resource] = []
    for raw in payload.resources:
        try:
            kind = ResourceKind(raw.kind.lower())
        except ValueError:
            raise MalformedContentError(f"Resource '{raw.id}' has unknown kind '{raw.kind}'") from None
        if raw.topic_id not in topics:
            raise MalformedContentError(f"Resource '{raw.id}' references unknown topic '{raw.topic_id}'")
        if kind == ResourceKind.QUESTION and not raw.question_id:
            raise MalformedContentError(f"Question resource '{raw.id}' has no questionId")
        if kind != ResourceKind.QUESTION and not raw.url:
            raise MalformedContentError(f"Resource '{raw.id}' of kind {kind.value} has no url")
        resources.append(
            Resource(
                id=raw.id,
                topic_id=raw.topic_id,
                kind=kind,
                title=raw.title,
                url=raw.url,
                question_id=raw.question_id,
            )
        )
    return _index(resources, "resource")


def topological_order(topics: List[Topic]) -> Tuple[str, ...]:
    """
    Order one level's topics so every prerequisite precedes its dependents.

    Kahn's algorithm; among available topics the lowest (order, id) goes first.
    Raises MalformedContentError naming every topic left unprocessed when the
    graph has a cycle.
    """
    by_id = {t.id: t for t in topics}
    dependents: Dict[str, List[str]] = {t.id: [] for t in topics}
    indegree: Dict[str, int] = {t.id: 0 for t in topics}

    for topic in topics:
        for prerequisite in topic.prerequisite_topic_ids:
            if prerequisite not in by_id:
                continue
            dependents[prerequisite].append(topic.id)
            indegree[topic.id] += 1

    available: List[Tuple[int, str]] = [
        (by_id[tid].order, tid) for tid, degree in indegree.items() if degree == 0
    ]
    heapq.heapify(available)

    ordered: List[str] = []
    while available:
        _, topic_id = heapq.heappop(available)
        ordered.append(topic_id)
        for dependent in dependents[topic_id]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(available, (by_id[dependent].order, dependent))

    if len(ordered) != len(topics):
        unresolved = sorted(tid for tid, degree in indegree.items() if degree > 0)
        raise MalformedContentError(
            f"Prerequisite cycle detected involving topics: {', '.join(unresolved)}",
            topic_ids=unresolved,
        )
    return tuple(ordered)


def _fingerprint(*groups: Dict[str, BaseModel]) -> str:
    canonical = [
        [entity.model_dump(mode="json") for _, entity in sorted(group.items())]
        for group in groups
    ]
    return compute_content_hash(json.dumps(canonical, sort_keys=True, separators=(",", ":")))


def _share(current: Dict[str, E], previous: Optional[Dict[str, E]]) -> Dict[str, E]:
    """Reuse previous entity objects that are unchanged."""
    if not previous:
        return current
    shared: Dict[str, E] = {}
    for entity_id, entity in current.items():
        old = previous.get(entity_id)
        shared[entity_id] = old if old is not None and old == entity else entity
    return shared


def ingest(raw: Any, previous: Optional[ContentSnapshot] = None) -> ContentSnapshot:
    """
    Validate a raw payload and build an immutable ContentSnapshot.

    Args:
        raw: Decoded JSON payload (or an already parsed RawContentPayload)
        previous: Snapshot from the last successful ingest of the same key

    Returns:
        `previous` itself when the content is unchanged, otherwise a new
        snapshot that shares every unchanged entity with `previous`.
    """
    payload = _parse(raw)
    roles = _index(
        (
            Role(id=r.id, name=r.name, description=r.description, technologies=tuple(r.technologies))
            for r in payload.roles
        ),
        "role",
    )
    levels = _build_levels(payload, roles)
    topics = _build_topics(payload, levels)
    resources = _build_resources(payload, topics)

    topic_order: Dict[str, Tuple[str, ...]] = {}
    for level_id in levels:
        topic_order[level_id] = topological_order([t for t in topics.values() if t.level_id == level_id])

    fingerprint = _fingerprint(roles, levels, topics, resources)
    if previous is not None and previous.fingerprint == fingerprint:
        logger.debug("Content unchanged; reusing snapshot", extra={"fingerprint": fingerprint[:12]})
        return previous

    snapshot = ContentSnapshot(
        roles=_share(roles, previous.roles if previous else None),
        levels=_share(levels, previous.levels if previous else None),
        topics=_share(topics, previous.topics if previous else None),
        resources=_share(resources, previous.resources if previous else None),
        topic_order=topic_order,
        fingerprint=fingerprint,
    )
    logger.debug(
        "Content ingested",
        extra={
            "roles": len(roles),
            "levels": len(levels),
            "topics": len(topics),
            "resources": len(resources),
        },
    )
    return snapshot
