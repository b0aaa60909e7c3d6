"""FastAPI development server that streams run results as NDJSON."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import StreamingResponse

from ..models.api import (
    Completion,
    CompletionsResponse,
    HealthResponse,
    MessageResponse,
    QuotaStatus,
    RunRequest,
    StoredRun,
    TitleUpdate,
)
from .backend import EchoBackend, RunRecord, RunStore, TrialBackend

logger = logging.getLogger(__name__)

# Global state, set by create_app
_store: Optional[RunStore] = None
_backend: Optional[TrialBackend] = None


def get_store() -> RunStore:
    """Get the run store."""
    if _store is None:
        raise RuntimeError("Run store not initialized")
    return _store


def get_backend() -> TrialBackend:
    """Get the trial backend."""
    if _backend is None:
        raise RuntimeError("Trial backend not initialized")
    return _backend


def get_token(authorization: Optional[str] = Header(None)) -> str:
    """Extract the bearer credential from the Authorization header."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token.strip()


def _line(payload: dict[str, object]) -> bytes:
    return (json.dumps(payload) + "\n").encode()


async def stream_run(
    run: RunRecord,
    store: RunStore,
    backend: TrialBackend,
) -> AsyncIterator[bytes]:
    """Yield the run id, then one accumulated update per finished trial."""
    request = run.request
    yield _line({"run_id": run.run_id})

    queue: asyncio.Queue[tuple[str, Completion]] = asyncio.Queue()

    async def trial(model: str) -> None:
        try:
            completion = await backend.run_trial(
                model, request.prompt_text, request.rubric_text
            )
        except Exception as e:
            logger.exception("Trial of %s failed in run %s", model, run.run_id)
            completion = Completion(answer=f"Error: {e}", score=0.0)
        await queue.put((model, completion))

    tasks = [
        asyncio.create_task(trial(model))
        for model in request.model_identifiers
        for _ in range(request.trials_per_model)
    ]
    try:
        for _ in range(len(tasks)):
            model, completion = await queue.get()
            update = store.record(run.run_id, model, completion)
            yield _line(update.model_dump(mode="json"))
    finally:
        for task in tasks:
            _ = task.cancel()


def create_app(
    backend: Optional[TrialBackend] = None,
    store: Optional[RunStore] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        backend: Trial backend (defaults to EchoBackend)
        store: Run store (defaults to an empty in-memory store)

    Returns:
        Configured FastAPI application
    """
    global _store, _backend

    _store = store or RunStore()
    _backend = backend or EchoBackend()

    app = FastAPI(
        title="lmevals server",
        description="Development server streaming multi-model run results",
        version="0.1.0",
    )

    # --- Run Endpoints ---

    @app.post("/api/run")
    def create_run(
        request: RunRequest,
        token: str = Depends(get_token),
        store: RunStore = Depends(get_store),
        backend: TrialBackend = Depends(get_backend),
    ):
        """Start a run and stream its results."""
        if not request.prompt_text.strip():
            raise HTTPException(status_code=422, detail="Prompt is empty")
        if not store.quota(token).can_run:
            raise HTTPException(status_code=402, detail="Out of credits")

        store.charge(token)
        run = store.create_run(request, owner=token)
        logger.info("Run %s: %d models", run.run_id, len(request.model_identifiers))
        return StreamingResponse(
            stream_run(run, store, backend),
            media_type="application/x-ndjson",
        )

    @app.get("/api/runs/{run_id}", response_model=StoredRun)
    def get_run(
        run_id: str,
        token: str = Depends(get_token),
        store: RunStore = Depends(get_store),
    ):
        """Get a run with its per-model results."""
        run = _visible_run(store, run_id, token)
        return run.to_stored()

    @app.get("/api/runs/{run_id}/completions", response_model=CompletionsResponse)
    def get_completions(
        run_id: str,
        model: str = Query(..., description="Model identifier"),
        token: str = Depends(get_token),
        store: RunStore = Depends(get_store),
    ):
        """Get every completion of one model in a run."""
        run = _visible_run(store, run_id, token)
        if model not in run.completions:
            raise HTTPException(status_code=404, detail=f"Model {model} not in run {run_id}")
        return CompletionsResponse(completions=run.completions[model])

    @app.post("/api/eval-title", response_model=MessageResponse)
    def update_title(
        request: TitleUpdate,
        token: str = Depends(get_token),
        store: RunStore = Depends(get_store),
    ):
        """Rename and/or publish a run."""
        run = store.get_run(request.run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Run {request.run_id} not found")
        if run.owner != token:
            raise HTTPException(status_code=403, detail=f"Run {request.run_id} is not yours")

        if request.title is not None:
            run.title = request.title
        if request.is_public is not None:
            run.is_public = request.is_public
        return MessageResponse(message=f"Run {run.run_id} updated")

    # --- Account Endpoints ---

    @app.get("/api/quota", response_model=QuotaStatus)
    def get_quota(token: str = Depends(get_token), store: RunStore = Depends(get_store)):
        """Get remaining credits for the caller."""
        return store.quota(token)

    @app.get("/health", response_model=HealthResponse)
    def health_check():
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    return app


def _visible_run(store: RunStore, run_id: str, token: str) -> RunRecord:
    run = store.get_run(run_id)
    if run is None or (run.owner != token and not run.is_public):
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return run
