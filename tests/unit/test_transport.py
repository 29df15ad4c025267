"""Unit tests for the backend transport (httpx.MockTransport)."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from prepmap.engines.cache.transport import RoadmapApiClient
from prepmap.kernel.errors import ClientRequestError, MalformedContentError, TransientNetworkError
from prepmap.kernel.models.content import Rank


def _client(handler) -> RoadmapApiClient:
    return RoadmapApiClient("http://backend.test", transport=httpx.MockTransport(handler))


def _ok(data) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": data})


class TestReads:
    @pytest.mark.asyncio
    async def test_get_roadmap_unwraps_envelope(self, payload_factory):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return _ok(payload_factory())

        async with _client(handler) as client:
            data = await client.get_roadmap("backend", Rank.MID)

        assert seen == ["/api/v1/roadmaps/backend/mid"]
        assert data["levels"][0]["roleId"] == "backend"

    @pytest.mark.asyncio
    async def test_get_roles(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/roadmaps/roles"
            return _ok({"roles": [{"id": "backend", "name": "Backend"}], "total": 1})

        async with _client(handler) as client:
            data = await client.get_roles()

        assert data["total"] == 1

    @pytest.mark.asyncio
    async def test_get_progress_parses_records(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/progress/u1"
            return _ok({"records": [
                {"topicId": "T1", "completedAt": "2024-01-15T09:00:00Z"},
                {"topicId": "T2", "completedAt": None},
            ]})

        async with _client(handler) as client:
            records = await client.get_progress("u1")

        assert [r.topic_id for r in records] == ["T1", "T2"]
        assert records[0].completed_at == datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)
        assert records[0].user_id == "u1"
        assert not records[1].is_completed

    @pytest.mark.asyncio
    async def test_put_progress_sends_body(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return _ok(None)

        async with _client(handler) as client:
            await client.put_progress("u1", "T1", True)

        assert captured == {"method": "PUT", "path": "/api/v1/progress/u1/T1", "body": {"completed": True}}


class TestClassification:
    """Responses and transport failures map onto typed errors."""

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        async with _client(lambda r: httpx.Response(503, text="unavailable")) as client:
            with pytest.raises(TransientNetworkError) as exc_info:
                await client.get_roles()

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_client_error_carries_upstream_code(self):
        body = {"success": False, "error": {"code": "NOT_FOUND", "message": "Roadmap not found"}}

        async with _client(lambda r: httpx.Response(404, json=body)) as client:
            with pytest.raises(ClientRequestError) as exc_info:
                await client.get_roadmap("backend", Rank.SENIOR)

        assert exc_info.value.status_code == 404
        assert exc_info.value.upstream_code == "NOT_FOUND"
        assert "Roadmap not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_is_client_error(self):
        body = {"success": False, "error": {"code": "VALIDATION_ERROR", "message": "bad role"}}

        async with _client(lambda r: httpx.Response(200, json=body)) as client:
            with pytest.raises(ClientRequestError) as exc_info:
                await client.get_roles()

        assert exc_info.value.upstream_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self):
        async with _client(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(MalformedContentError):
                await client.get_roles()

    @pytest.mark.asyncio
    async def test_missing_envelope_is_malformed(self):
        async with _client(lambda r: httpx.Response(200, json={"roles": []})) as client:
            with pytest.raises(MalformedContentError):
                await client.get_roles()

    @pytest.mark.asyncio
    async def test_non_object_roadmap_is_malformed(self):
        async with _client(lambda r: _ok(["not", "an", "object"])) as client:
            with pytest.raises(MalformedContentError):
                await client.get_roadmap("backend", Rank.MID)

    @pytest.mark.asyncio
    async def test_invalid_progress_is_malformed(self):
        async with _client(lambda r: _ok({"records": [{"completedAt": "soon"}]})) as client:
            with pytest.raises(MalformedContentError):
                await client.get_progress("u1")

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(TransientNetworkError, match="timed out"):
                await client.get_roles()

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(TransientNetworkError, match="ConnectError"):
                await client.put_progress("u1", "T1", False)
