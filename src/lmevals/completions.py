# Copyright (c) Syntropy Systems
"""Per-trial answer lookup, from the live session or from the result store."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from lmevals.errors import LmevalsClientError

if TYPE_CHECKING:
    from lmevals.client import LmevalsClient
    from lmevals.models.api import Completion
    from lmevals.models.run import ModelRunState

logger = logging.getLogger(__name__)


class CompletionSource(Protocol):
    """Somewhere the completions of one model's trials can be read from."""

    async def completions(self, run_id: str, state: ModelRunState) -> list[Completion]:
        ...


class BufferedCompletionSource:
    """Completions already received on the run stream."""

    async def completions(self, run_id: str, state: ModelRunState) -> list[Completion]:
        return list(state.completions)


class StoreCompletionSource:
    """Completions persisted by the server's result store."""

    def __init__(self, client: LmevalsClient) -> None:
        self._client = client

    async def completions(self, run_id: str, state: ModelRunState) -> list[Completion]:
        return await self._client.get_completions(run_id, state.model)


def has_fresh_local_data(state: ModelRunState, trials_per_model: int) -> bool:
    """Whether the streamed completions can be shown without a store lookup.

    Finished models are read from the store, which holds the full record
    even when the stream stopped sending completions.
    """
    return bool(state.completions) and state.completed_trials < trials_per_model


class CompletionFetcher:
    """Pick the right source for a model's completions and read them."""

    def __init__(
        self,
        store: CompletionSource,
        buffered: CompletionSource | None = None,
    ) -> None:
        self.store = store
        self.buffered = buffered or BufferedCompletionSource()

    def source_for(self, state: ModelRunState, trials_per_model: int) -> CompletionSource:
        if has_fresh_local_data(state, trials_per_model):
            return self.buffered
        return self.store

    async def fetch(
        self,
        run_id: str | None,
        state: ModelRunState,
        trials_per_model: int,
    ) -> list[Completion]:
        """Return the completions for one model, or [] if none can be read.

        Args:
            run_id: Run the model belongs to; nothing is fetched without one
            state: The model's current state
            trials_per_model: Trials requested for the run

        Returns:
            Completions in trial order; empty when the lookup fails

        """
        if run_id is None or state.completed_trials == 0:
            return []

        source = self.source_for(state, trials_per_model)
        try:
            return await source.completions(run_id, state)
        except LmevalsClientError as e:
            logger.warning(
                "Could not load completions for %s in run %s: %s",
                state.model,
                run_id,
                e,
            )
            return []
