# Copyright (c) Syntropy Systems
"""Models for per-run client state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import Field

from .api import Completion, RunRequest
from .base import FrozenModel, LmevalsBaseModel

if TYPE_CHECKING:
    from lmevals.errors import LmevalsError

GOOD_SCORE = 0.7
FAIR_SCORE = 0.4


class ModelSpec(FrozenModel):
    """A selected model and the icon used to render it."""

    identifier: str
    icon: str = ""


class Progress(str, Enum):
    """Per-model progress indicator."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"


class ModelRunState(LmevalsBaseModel):
    """Accumulated results for one model within a run."""

    model: str
    icon: str = ""
    completed_trials: int = 0
    running_score: float = 0.0
    completions: list[Completion] = Field(default_factory=list)

    def progress(self, trials_per_model: int) -> Progress:
        """Report progress against the requested number of trials."""
        if self.completed_trials >= trials_per_model:
            return Progress.COMPLETE
        if self.completed_trials > 0:
            return Progress.RUNNING
        return Progress.PENDING


def score_band(score: float) -> str:
    """Bucket a score for display: good, fair or poor."""
    if score >= GOOD_SCORE:
        return "good"
    if score >= FAIR_SCORE:
        return "fair"
    return "poor"


class RunHandle(LmevalsBaseModel):
    """Identifier of the run being streamed, once the server has announced it."""

    run_id: str | None = None

    @property
    def has_id(self) -> bool:
        return self.run_id is not None


class RunStatus(str, Enum):
    """States of the run controller."""

    IDLE = "idle"
    VALIDATING = "validating"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def settled(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED)


@dataclass
class RunSession:
    """Mutable state of the current run, owned by a RunController.

    ``states`` is keyed by model identifier and keeps selection order.
    ``generation`` increases on every reset; events tagged with an older
    generation belong to a superseded run.
    """

    selection: list[ModelSpec] = field(default_factory=list)
    request: RunRequest | None = None
    handle: RunHandle = field(default_factory=RunHandle)
    states: dict[str, ModelRunState] = field(default_factory=dict)
    generation: int = 0
    status: RunStatus = RunStatus.IDLE
    error: LmevalsError | None = None
    first_result_seen: bool = False

    @property
    def trials_per_model(self) -> int:
        if self.request is None:
            return 1
        return self.request.trials_per_model
