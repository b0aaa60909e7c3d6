# Copyright (c) Syntropy Systems
"""Run lifecycle: validate, stream, aggregate, settle."""
from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Callable

from pydantic import ValidationError

from lmevals.aggregator import ResultAggregator
from lmevals.completions import CompletionFetcher, StoreCompletionSource
from lmevals.errors import LmevalsClientError, LmevalsError, NetworkError, RunValidationError
from lmevals.models.api import ModelUpdate, RunRequest
from lmevals.models.run import ModelSpec, RunHandle, RunSession, RunStatus
from lmevals.stream import StreamRunner

if TYPE_CHECKING:
    from collections.abc import Sequence

    from lmevals.client import LmevalsClient
    from lmevals.models.api import Completion, ResultEvent
    from lmevals.models.run import ModelRunState

logger = logging.getLogger(__name__)

SessionHook = Callable[[RunSession], None]

OUT_OF_CREDITS = "You are out of credits. Please contact support or wait for more."


class RunController:
    """Drive one run at a time from submission to a settled result.

    States move Idle -> Validating -> Running -> Succeeded/Failed. A failed
    validation returns to Idle without touching the previous results.
    Submitting again while a run is streaming supersedes it: the old
    consumer is cancelled and any update it still delivers is rejected.

    Hooks:
        on_first_result: called once per run, for the first event received
        on_update: called after every event and on every state change
    """

    def __init__(
        self,
        client: LmevalsClient,
        session: RunSession | None = None,
        *,
        on_first_result: SessionHook | None = None,
        on_update: SessionHook | None = None,
    ) -> None:
        self.client = client
        self.session = session if session is not None else RunSession()
        self.aggregator = ResultAggregator(self.session)
        self.runner = StreamRunner(client)
        self.fetcher = CompletionFetcher(StoreCompletionSource(client))
        self.on_first_result = on_first_result
        self.on_update = on_update
        self._task: asyncio.Task[object] | None = None

    @property
    def status(self) -> RunStatus:
        return self.session.status

    @property
    def error(self) -> LmevalsError | None:
        return self.session.error

    @property
    def run_id(self) -> str | None:
        return self.session.handle.run_id

    def snapshot(self) -> list[ModelRunState]:
        """Read-only copy of the per-model results, in selection order."""
        return self.aggregator.snapshot()

    def select(self, models: Sequence[ModelSpec]) -> None:
        """Replace the model selection and clear the result table."""
        self.session.selection = list(models)
        if self.session.status != RunStatus.RUNNING:
            _ = self.aggregator.reset(self.session.selection)
            self._notify()

    # --- Running ---

    async def run(
        self,
        prompt: str,
        rubric: str = "",
        trials: int = 3,
        title: str = "",
    ) -> RunStatus:
        """Build a request from the current selection and submit it."""
        try:
            request = RunRequest(
                models=[spec.identifier for spec in self.session.selection],
                prompt=prompt,
                evalPrompt=rubric,
                trials=trials,
                title=title,
            )
        except ValidationError as e:
            self._reject(RunValidationError(f"Invalid run: {e}"))
            return self.session.status
        return await self.submit(request)

    async def submit(self, request: RunRequest) -> RunStatus:
        """Run a request to completion and return the settled status.

        Validation failures leave the status Idle; stream failures leave it
        Failed. In both cases the error is available as ``self.error``.
        Results applied before a failure stay in the table. A request that
        fails validation while another run is streaming leaves that run
        untouched and returns its Running status.

        Raises:
            asyncio.CancelledError: If a later submission superseded this one

        """
        session = self.session
        if session.status != RunStatus.RUNNING:
            session.status = RunStatus.VALIDATING
            session.error = None
            self._notify()

        try:
            await self._validate(request)
        except RunValidationError as e:
            self._reject(e)
            return session.status

        self._supersede()
        session.error = None
        session.request = request
        session.handle = RunHandle()
        session.first_result_seen = False
        generation = self.aggregator.reset(self._selection_for(request))
        session.status = RunStatus.RUNNING
        self._task = asyncio.current_task()
        self._notify()
        logger.info(
            "Running %d models x %d trials",
            len(request.model_identifiers),
            request.trials_per_model,
        )

        try:
            async with aclosing(self.runner.start(request, session.handle)) as events:
                async for event in events:
                    if generation != session.generation:
                        break
                    self._handle_event(event, generation)
        except NetworkError as e:
            if generation == session.generation:
                logger.warning("Run failed: %s", e)
                self._settle(RunStatus.FAILED, e)
            return session.status
        except asyncio.CancelledError:
            if generation == session.generation:
                self._settle(RunStatus.FAILED, LmevalsError("Run cancelled"))
            raise

        if generation == session.generation:
            self._settle(RunStatus.SUCCEEDED)
        return session.status

    async def load(self, run_id: str) -> RunStatus:
        """Show a stored run: selection, request and final results, frozen.

        Raises:
            LmevalsClientError: If the run cannot be read from the store

        """
        stored = await self.client.get_run(run_id)
        models = stored.models or [r.model for r in stored.results]
        if not models:
            msg = f"Run {run_id} has no models"
            raise LmevalsClientError(msg)

        self._supersede()
        session = self.session
        icons = {spec.identifier: spec.icon for spec in session.selection}
        session.selection = [ModelSpec(identifier=m, icon=icons.get(m, "")) for m in models]
        session.request = RunRequest(
            models=models,
            prompt=stored.prompt,
            evalPrompt=stored.rubric,
            trials=stored.trials,
            title=stored.title,
        )
        session.handle = RunHandle(run_id=stored.run_id)
        session.first_result_seen = True
        _ = self.aggregator.reset(session.selection)
        for result in stored.results:
            _ = self.aggregator.apply(
                ModelUpdate(model=result.model, trials=result.trials, score=result.score)
            )
        self._settle(RunStatus.SUCCEEDED)
        return session.status

    # --- Run-id gated actions ---

    async def rename(self, title: str) -> bool:
        """Persist a new title for the current run. No-op without a run id."""
        if not self.session.handle.has_id or not title:
            return False
        ok = await self._update_title(title=title)
        if ok and self.session.request is not None:
            self.session.request = self.session.request.model_copy(
                update={"title_hint": title}
            )
        return ok

    async def publish(self) -> bool:
        """Make the current run public. No-op without a run id."""
        if not self.session.handle.has_id:
            return False
        title = self.session.request.title_hint if self.session.request else ""
        return await self._update_title(title=title or None, is_public=True)

    async def completions(self, model: str) -> list[Completion]:
        """Per-trial answers for one model of the current run."""
        state = self.session.states.get(model)
        if state is None:
            return []
        return await self.fetcher.fetch(
            self.session.handle.run_id,
            state,
            self.session.trials_per_model,
        )

    # --- Internals ---

    async def _validate(self, request: RunRequest) -> None:
        if not request.prompt_text.strip():
            msg = "Enter a prompt to run."
            raise RunValidationError(msg)
        try:
            quota = await self.client.get_quota()
        except LmevalsClientError as e:
            msg = f"Could not check remaining credits: {e}"
            raise RunValidationError(msg) from e
        if not quota.can_run:
            raise RunValidationError(OUT_OF_CREDITS)

    def _selection_for(self, request: RunRequest) -> list[ModelSpec]:
        icons = {spec.identifier: spec.icon for spec in self.session.selection}
        return [
            ModelSpec(identifier=m, icon=icons.get(m, ""))
            for m in request.model_identifiers
        ]

    def _handle_event(self, event: ResultEvent, generation: int) -> None:
        if isinstance(event, ModelUpdate):
            _ = self.aggregator.apply(event, generation)
        if not self.session.first_result_seen:
            self.session.first_result_seen = True
            if self.on_first_result is not None:
                self.on_first_result(self.session)
        self._notify()

    def _supersede(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        logger.info("Abandoning previous run %s", self.session.handle.run_id)
        self.aggregator.invalidate()
        _ = task.cancel()

    def _reject(self, error: RunValidationError) -> None:
        logger.info("Run rejected: %s", error)
        self.session.error = error
        if self.session.status != RunStatus.RUNNING:
            self.session.status = RunStatus.IDLE
        self._notify()

    def _settle(self, status: RunStatus, error: LmevalsError | None = None) -> None:
        self.session.status = status
        self.session.error = error
        self._task = None
        self._notify()

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.session)

    async def _update_title(
        self,
        title: str | None = None,
        is_public: bool | None = None,
    ) -> bool:
        run_id = self.session.handle.run_id
        if run_id is None:
            return False
        try:
            response = await self.client.update_title(
                run_id, title=title, is_public=is_public
            )
        except LmevalsClientError as e:
            logger.warning("Could not update run %s: %s", run_id, e)
            return False
        return response.success
