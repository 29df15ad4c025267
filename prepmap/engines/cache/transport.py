"""
Backend transport - one HTTP call per method, classified into typed errors.

Retries are not done here; the cache layer applies its retry policy around
these calls.

Classification:
- timeouts, connection failures, 5xx -> TransientNetworkError
- 4xx, or an envelope with success=false -> ClientRequestError
- body that is not a JSON envelope -> MalformedContentError
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from prepmap.kernel.errors import ClientRequestError, MalformedContentError, TransientNetworkError
from prepmap.kernel.models.content import Rank
from prepmap.kernel.models.progress import ProgressRecord
from prepmap.logging_config import get_logger
from prepmap.schemas.common import ApiEnvelope
from prepmap.schemas.progress import ProgressUpdateRequest, RawProgressPayload

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


def _segment(value: str) -> str:
    return quote(value, safe="")


def _error_details(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Best-effort (message, code) from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}", None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or f"HTTP {response.status_code}"), error.get("code")
    return f"HTTP {response.status_code}", None


def unwrap_response(response: httpx.Response, operation: str) -> Any:
    """Classify the response and return the envelope's data."""
    status = response.status_code
    if status >= 500:
        message, _ = _error_details(response)
        raise TransientNetworkError(f"{operation} failed with {status}: {message}", status_code=status)
    if status >= 400:
        message, code = _error_details(response)
        raise ClientRequestError(f"{operation} rejected: {message}", status_code=status, upstream_code=code)

    try:
        body = response.json()
    except ValueError as e:
        raise MalformedContentError(f"{operation} returned a non-JSON body") from e
    try:
        envelope = ApiEnvelope[Any].model_validate(body)
    except ValidationError as e:
        raise MalformedContentError(f"{operation} returned an invalid response envelope") from e

    if not envelope.success:
        error = envelope.error
        raise ClientRequestError(
            f"{operation} failed: {error.message if error else 'API request failed'}",
            status_code=status,
            upstream_code=error.code if error else None,
        )
    return envelope.data


class RoadmapApiClient:
    """
    Async client for the roadmap/progress backend.

    Usage:
        async with RoadmapApiClient("http://localhost:3002") as client:
            raw = await client.get_roadmap("backend", Rank.MID)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "RoadmapApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        operation = f"{method} {path}"
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{operation} timed out") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{operation} failed: {e.__class__.__name__}") from e
        logger.debug("Backend responded", extra={"operation": operation, "status": response.status_code})
        return unwrap_response(response, operation)

    async def get_roles(self) -> Dict[str, Any]:
        """GET roles -> content payload carrying only roles."""
        data = await self._request("GET", f"{API_PREFIX}/roadmaps/roles")
        if not isinstance(data, dict):
            raise MalformedContentError("Roles response must be an object")
        return data

    async def get_roadmap(self, role_id: str, rank: Rank) -> Dict[str, Any]:
        """GET roadmap(role, level) -> content payload for one level."""
        data = await self._request("GET", f"{API_PREFIX}/roadmaps/{_segment(role_id)}/{rank.value}")
        if not isinstance(data, dict):
            raise MalformedContentError("Roadmap response must be an object")
        return data

    async def get_progress(self, user_id: str) -> List[ProgressRecord]:
        """GET progress(userId) -> the user's records."""
        data = await self._request("GET", f"{API_PREFIX}/progress/{_segment(user_id)}")
        try:
            payload = RawProgressPayload.model_validate(data or {})
        except ValidationError as e:
            raise MalformedContentError("Progress response failed validation") from e
        return [
            ProgressRecord(user_id=user_id, topic_id=r.topic_id, completed_at=r.completed_at)
            for r in payload.records
        ]

    async def put_progress(self, user_id: str, topic_id: str, completed: bool) -> None:
        """PUT progress(userId, topicId, completed). Success or failure only."""
        await self._request(
            "PUT",
            f"{API_PREFIX}/progress/{_segment(user_id)}/{_segment(topic_id)}",
            json=ProgressUpdateRequest(completed=completed).model_dump(),
        )
