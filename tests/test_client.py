# Copyright (c) Syntropy Systems
"""Tests for LmevalsClient request handling."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest

from lmevals.client import LmevalsClient, get_client
from lmevals.errors import LmevalsClientError
from lmevals.models.api import QuotaStatus, StoredRun


def client_for(handler: Callable[[httpx.Request], httpx.Response]) -> LmevalsClient:
    return LmevalsClient("http://lmevals.test/", token="tok", transport=httpx.MockTransport(handler))


class TestLmevalsClient:
    """Tests for the non-streaming endpoints."""

    def test_server_url_trailing_slash(self) -> None:
        client = LmevalsClient("http://localhost:8080/")
        assert client.server_url == "http://localhost:8080"
        asyncio.run(client.aclose())

    def test_get_quota(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"remaining": 2, "override_token": None})

        async def scenario() -> QuotaStatus:
            async with client_for(handler) as client:
                return await client.get_quota()

        quota = asyncio.run(scenario())

        assert quota.remaining == 2
        assert quota.can_run
        assert seen[0].url.path == "/api/quota"
        assert seen[0].headers["Authorization"] == "Bearer tok"

    def test_quota_override_allows_run(self) -> None:
        assert QuotaStatus(remaining=0, override_token="k").can_run
        assert not QuotaStatus(remaining=0).can_run

    def test_no_token_no_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"remaining": 1})

        async def scenario() -> None:
            async with LmevalsClient(
                "http://lmevals.test", transport=httpx.MockTransport(handler)
            ) as client:
                _ = await client.get_quota()

        asyncio.run(scenario())

        assert "Authorization" not in seen[0].headers

    def test_get_run(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/runs/r1"
            return httpx.Response(
                200,
                json={
                    "id": "r1",
                    "prompt": "p",
                    "evalPrompt": "r",
                    "models": ["a"],
                    "trials": 2,
                    "results": [{"model": "a", "trials": 2, "score": 0.5}],
                    "extra_field": "ignored",
                },
            )

        async def scenario() -> StoredRun:
            async with client_for(handler) as client:
                return await client.get_run("r1")

        stored = asyncio.run(scenario())

        assert stored.run_id == "r1"
        assert stored.rubric == "r"
        assert stored.results[0].score == 0.5

    def test_update_title_omits_unset_fields(self) -> None:
        bodies: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "message": "Updated"})

        async def scenario() -> None:
            async with client_for(handler) as client:
                response = await client.update_title("r1", is_public=True)
                assert response.success

        asyncio.run(scenario())

        assert bodies == [{"run_id": "r1", "is_public": True}]

    def test_http_error_uses_detail(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"detail": "Run not found"})

        async def scenario() -> None:
            async with client_for(handler) as client:
                _ = await client.get_run("missing")

        with pytest.raises(LmevalsClientError, match="Server error: Run not found"):
            asyncio.run(scenario())

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async def scenario() -> None:
            async with client_for(handler) as client:
                _ = await client.get_quota()

        with pytest.raises(LmevalsClientError, match="Connection error"):
            asyncio.run(scenario())

    def test_invalid_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        async def scenario() -> None:
            async with client_for(handler) as client:
                _ = await client.get_quota()

        with pytest.raises(LmevalsClientError, match="Invalid response"):
            asyncio.run(scenario())

    def test_unexpected_shape(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"remaining": "lots"})

        async def scenario() -> None:
            async with client_for(handler) as client:
                _ = await client.get_quota()

        with pytest.raises(LmevalsClientError, match="Unexpected response"):
            asyncio.run(scenario())


class TestGetClient:
    """Tests for the client factory."""

    def test_defaults(self) -> None:
        client = get_client("http://127.0.0.1:8080/", token="tok")
        assert client.server_url == "http://127.0.0.1:8080"
        assert client.token == "tok"
        assert client.idle_timeout == 300.0
        asyncio.run(client.aclose())
