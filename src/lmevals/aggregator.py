# Copyright (c) Syntropy Systems
"""Authoritative per-model view of the current run."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lmevals.models.run import ModelRunState

if TYPE_CHECKING:
    from collections.abc import Sequence

    from lmevals.models.api import ModelUpdate
    from lmevals.models.run import ModelSpec, RunSession

logger = logging.getLogger(__name__)

# Wire field -> ModelRunState field
_FIELD_MAP = {
    "trials": "completed_trials",
    "score": "running_score",
    "completions": "completions",
}


class ResultAggregator:
    """Merge model-update events into the session's per-model table.

    Every update carries the full accumulated state for its model, so
    applying one replaces the stored fields it names (last write wins).
    Updates for models outside the current selection are ignored.
    """

    def __init__(self, session: RunSession) -> None:
        self.session = session

    def reset(self, models: Sequence[ModelSpec]) -> int:
        """Reinitialize state for exactly the given models.

        Returns:
            The new generation; updates tagged with an older one are rejected

        """
        self.session.states = {
            spec.identifier: ModelRunState(model=spec.identifier, icon=spec.icon)
            for spec in models
        }
        self.session.generation += 1
        return self.session.generation

    def invalidate(self) -> None:
        """Reject every update still in flight for the current generation."""
        self.session.generation += 1

    def apply(self, update: ModelUpdate, generation: int | None = None) -> bool:
        """Merge one update into the table.

        Args:
            update: Latest state for one model
            generation: Generation the update was read under, None to skip
                the staleness check

        Returns:
            True if the update changed the table

        """
        if generation is not None and generation != self.session.generation:
            logger.debug(
                "Dropping update for %s from superseded run (generation %d, current %d)",
                update.model,
                generation,
                self.session.generation,
            )
            return False

        current = self.session.states.get(update.model)
        if current is None:
            logger.debug("Ignoring update for unselected model %s", update.model)
            return False

        fields = update.model_dump(exclude_unset=True, exclude_none=True)
        changes = {_FIELD_MAP[k]: v for k, v in fields.items() if k in _FIELD_MAP}
        if "completions" in changes:
            changes["completions"] = list(update.completions or [])
        self.session.states[update.model] = current.model_copy(update=changes)
        return True

    def get(self, model: str) -> ModelRunState | None:
        """Return a copy of one model's state, or None if it is not selected."""
        state = self.session.states.get(model)
        return state.model_copy(deep=True) if state is not None else None

    def snapshot(self) -> list[ModelRunState]:
        """Return copies of all states in selection order."""
        return [state.model_copy(deep=True) for state in self.session.states.values()]
