"""
Typed failures raised by the roadmap engine.

Every error carries a stable ``code`` so the HTTP surface and subscribers can
report it without inspecting the class hierarchy.
"""

from typing import Iterable, List, Optional


class RoadmapError(Exception):
    """Base class for all engine failures."""

    code = "ROADMAP_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedContentError(RoadmapError):
    """Fetched content violates the content model (shape, references, or cycles)."""

    code = "MALFORMED_CONTENT"

    def __init__(self, message: str, topic_ids: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.topic_ids: List[str] = sorted(topic_ids or [])


class ClientRequestError(RoadmapError):
    """Terminal 4xx-class failure. Never retried."""

    code = "CLIENT_REQUEST_ERROR"

    def __init__(self, message: str, status_code: int = 400, upstream_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.upstream_code = upstream_code


class TransientNetworkError(RoadmapError):
    """Timeout, connection failure or 5xx. Retried before it is surfaced."""

    code = "TRANSIENT_NETWORK_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 1):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


class PrerequisitesNotMetError(RoadmapError):
    """A topic was marked complete while one of its prerequisites is incomplete."""

    code = "PREREQUISITES_NOT_MET"

    def __init__(self, topic_id: str, missing: Iterable[str]):
        self.topic_id = topic_id
        self.missing: List[str] = sorted(missing)
        super().__init__(
            f"Topic '{topic_id}' is locked; incomplete prerequisites: {', '.join(self.missing)}"
        )


class MutationInProgressError(RoadmapError):
    """A mutation for the same (user, topic) is still awaiting persistence."""

    code = "MUTATION_IN_PROGRESS"

    def __init__(self, user_id: str, topic_id: str):
        self.user_id = user_id
        self.topic_id = topic_id
        super().__init__(f"A progress update for topic '{topic_id}' is already in flight")


class StaleRevertError(RoadmapError):
    """Revert requested for a change that is not the pending one."""

    code = "STALE_REVERT"


class RoadmapNotFoundError(RoadmapError):
    """Role or level is not part of the loaded content."""

    code = "ROADMAP_NOT_FOUND"


class TopicNotFoundError(RoadmapError):
    """Topic id is not part of any loaded roadmap."""

    code = "TOPIC_NOT_FOUND"
