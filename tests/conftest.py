# Copyright (c) Syntropy Systems
"""Pytest fixtures for lmevals tests."""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import AsyncIterator, Generator, Iterable
from pathlib import Path
from typing import Optional, Union

import httpx
import pytest

from lmevals.client import LmevalsClient
from lmevals.models.api import RunRequest
from lmevals.models.run import ModelSpec

# Store original cwd at module load time
_original_cwd = Path.cwd()

# Placeholder in a scripted stream: stop here until the reader gives up.
# An asyncio.Event in a script pauses the stream until it is set.
BLOCK = object()

Chunk = Union[bytes, object, Exception]


def line(**fields: object) -> bytes:
    """Encode one NDJSON record."""
    return (json.dumps(fields) + "\n").encode()


def make_request(
    models: Iterable[str] = ("a", "b"),
    prompt: str = "How many r's in strawberry?",
    rubric: str = "three",
    trials: int = 3,
) -> RunRequest:
    return RunRequest(models=list(models), prompt=prompt, evalPrompt=rubric, trials=trials)


def specs(*models: str) -> list[ModelSpec]:
    return [ModelSpec(identifier=m, icon=f"/icons/{m}.png") for m in models]


class ScriptedStream(httpx.AsyncByteStream):
    """Response body that replays scripted chunks and records being closed."""

    def __init__(self, chunks: list[Chunk]) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            if chunk is BLOCK:
                await asyncio.Event().wait()
            elif isinstance(chunk, asyncio.Event):
                await chunk.wait()
            elif isinstance(chunk, Exception):
                raise chunk
            else:
                assert isinstance(chunk, bytes)
                yield chunk

    async def aclose(self) -> None:
        self.closed = True


class FakeServer:
    """Scripted stand-in for the run server, served through httpx.MockTransport.

    Each POST /api/run consumes the next script from ``runs``.
    """

    def __init__(
        self,
        runs: Optional[list[list[Chunk]]] = None,
        remaining: int = 3,
        override_token: Optional[str] = None,
        run_status: int = 200,
    ) -> None:
        self.runs = list(runs or [])
        self.remaining = remaining
        self.override_token = override_token
        self.run_status = run_status
        self.requests: list[httpx.Request] = []
        self.streams: list[ScriptedStream] = []
        self.stored_runs: dict[str, dict[str, object]] = {}
        self.stored_completions: dict[str, list[dict[str, object]]] = {}
        self.title_updates: list[dict[str, object]] = []
        self.fail_lookups = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/quota":
            if self.fail_lookups:
                return httpx.Response(500, json={"detail": "quota service down"})
            return httpx.Response(
                200,
                json={"remaining": self.remaining, "override_token": self.override_token},
            )

        if path == "/api/run":
            if self.run_status != 200:
                return httpx.Response(self.run_status, json={"detail": "Out of credits"})
            stream = ScriptedStream(self.runs.pop(0))
            self.streams.append(stream)
            return httpx.Response(
                200,
                headers={"content-type": "application/x-ndjson"},
                stream=stream,
            )

        if path.endswith("/completions"):
            if self.fail_lookups:
                return httpx.Response(503, json={"detail": "store unavailable"})
            model = request.url.params["model"]
            return httpx.Response(
                200, json={"completions": self.stored_completions.get(model, [])}
            )

        if path.startswith("/api/runs/"):
            run_id = path.rsplit("/", 1)[-1]
            if run_id in self.stored_runs:
                return httpx.Response(200, json=self.stored_runs[run_id])

        if path == "/api/eval-title":
            body = json.loads(request.content)
            self.title_updates.append(body)
            return httpx.Response(200, json={"success": True, "message": "ok"})

        return httpx.Response(404, json={"detail": f"{path} not found"})

    def client(self) -> LmevalsClient:
        return LmevalsClient(
            "http://lmevals.test",
            token="test-token",
            transport=httpx.MockTransport(self.handler),
        )

    def run_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/api/run"]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Temporary working directory with an isolated home directory."""
    import tempfile

    with tempfile.TemporaryDirectory() as tmpdir:
        home = Path(tmpdir) / "home"
        home.mkdir()
        old_home = os.environ.get("HOME")
        os.environ["HOME"] = str(home)
        os.chdir(tmpdir)

        yield Path(tmpdir)

        # Always return to original cwd
        os.chdir(_original_cwd)
        if old_home is None:
            del os.environ["HOME"]
        else:
            os.environ["HOME"] = old_home
