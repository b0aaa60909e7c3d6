"""Trial backends and the in-memory result store behind the development server."""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

from ..models.api import (
    Completion,
    ModelUpdate,
    QuotaStatus,
    RunRequest,
    StoredResult,
    StoredRun,
)

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+")


class TrialBackend(Protocol):
    """Runs one trial of one model and scores it against the rubric."""

    async def run_trial(self, model: str, prompt: str, rubric: str) -> Completion:
        ...


class EchoBackend:
    """Deterministic stand-in for a model API.

    The answer echoes the prompt; the score is the fraction of rubric words
    found in the answer, or None when there is no rubric.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay

    async def run_trial(self, model: str, prompt: str, rubric: str) -> Completion:
        if self.delay:
            await asyncio.sleep(self.delay)
        answer = f"[{model}] {prompt}"
        rubric_words = {w.lower() for w in _WORD.findall(rubric)}
        if not rubric_words:
            return Completion(answer=answer, score=None)
        answer_words = {w.lower() for w in _WORD.findall(answer)}
        score = len(rubric_words & answer_words) / len(rubric_words)
        return Completion(answer=answer, score=score)


@dataclass
class RunRecord:
    """A run held by the store, with every completion received so far."""

    run_id: str
    request: RunRequest
    owner: str
    title: str = ""
    is_public: bool = False
    completions: dict[str, list[Completion]] = field(default_factory=dict)

    def score(self, model: str) -> float:
        """Mean of the scored completions, 0 when nothing is scored."""
        scores = [c.score for c in self.completions.get(model, []) if c.score is not None]
        if not scores:
            return 0.0
        return sum(scores) / len(scores)

    def update_for(self, model: str) -> ModelUpdate:
        completions = self.completions.get(model, [])
        return ModelUpdate(
            model=model,
            trials=len(completions),
            score=self.score(model),
            completions=list(completions),
        )

    def to_stored(self) -> StoredRun:
        return StoredRun(
            run_id=self.run_id,
            prompt=self.request.prompt_text,
            rubric=self.request.rubric_text,
            title=self.title,
            is_public=self.is_public,
            models=list(self.request.model_identifiers),
            trials=self.request.trials_per_model,
            results=[
                StoredResult(
                    model=model,
                    trials=len(self.completions.get(model, [])),
                    score=self.score(model),
                )
                for model in self.request.model_identifiers
            ],
        )


class RunStore:
    """Runs and per-token credits, kept in memory."""

    def __init__(self, default_credits: int = 3, unlimited_tokens: Optional[set[str]] = None):
        self.default_credits = default_credits
        self.unlimited_tokens = set(unlimited_tokens or ())
        self.runs: dict[str, RunRecord] = {}
        self.credits: dict[str, int] = {}

    def quota(self, token: str) -> QuotaStatus:
        remaining = self.credits.get(token, self.default_credits)
        override = token if token in self.unlimited_tokens else None
        return QuotaStatus(remaining=remaining, override_token=override)

    def charge(self, token: str) -> None:
        """Spend one credit unless the token is unlimited."""
        if token in self.unlimited_tokens:
            return
        self.credits[token] = self.credits.get(token, self.default_credits) - 1

    def create_run(self, request: RunRequest, owner: str) -> RunRecord:
        record = RunRecord(
            run_id=uuid.uuid4().hex,
            request=request,
            owner=owner,
            title=request.title_hint,
            completions={model: [] for model in request.model_identifiers},
        )
        self.runs[record.run_id] = record
        return record

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        return self.runs.get(run_id)

    def record(self, run_id: str, model: str, completion: Completion) -> ModelUpdate:
        """Append a trial's completion and return the model's accumulated state."""
        run = self.runs[run_id]
        run.completions.setdefault(model, []).append(completion)
        return run.update_for(model)
