# Copyright (c) Syntropy Systems
"""Pydantic models for the lmevals wire protocol."""

from __future__ import annotations

from typing import Union

from pydantic import AliasChoices, Field, field_validator
from typing_extensions import TypeAlias

from .base import FrozenModel, LmevalsBaseModel

MAX_TRIALS = 10


class RunRequest(FrozenModel):
    """Request to run a prompt against a set of models.

    Field aliases are the names used on the wire.
    """

    model_identifiers: tuple[str, ...] = Field(alias="models", min_length=1)
    prompt_text: str = Field(alias="prompt")
    rubric_text: str = Field(default="", alias="evalPrompt")
    trials_per_model: int = Field(default=3, alias="trials", ge=1, le=MAX_TRIALS)
    title_hint: str = Field(default="", alias="title")

    @field_validator("model_identifiers")
    @classmethod
    def _unique_models(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(value)) != len(value):
            msg = "model identifiers must be unique"
            raise ValueError(msg)
        return value

    @property
    def has_rubric(self) -> bool:
        """Whether trials are scored against a rubric."""
        return bool(self.rubric_text.strip())


class Completion(LmevalsBaseModel):
    """One trial's answer and its rubric score."""

    answer: str = ""
    score: float | None = None


class ControlEvent(FrozenModel):
    """First stream record, carrying the run identifier."""

    run_id: str = Field(validation_alias=AliasChoices("run_id", "eval_id"))


class ModelUpdate(LmevalsBaseModel):
    """Latest accumulated state for one model."""

    model: str
    trials: int | None = Field(default=None, ge=0)
    score: float | None = None
    completions: list[Completion] | None = None


ResultEvent: TypeAlias = Union[ControlEvent, ModelUpdate]


class QuotaStatus(LmevalsBaseModel):
    """Remaining run credits and an optional quota-bypassing credential."""

    remaining: int = 0
    override_token: str | None = None

    @property
    def can_run(self) -> bool:
        """Whether a new run may be started."""
        return self.remaining > 0 or bool(self.override_token)


class TitleUpdate(LmevalsBaseModel):
    """Request to rename and/or publish a run."""

    run_id: str
    title: str | None = None
    is_public: bool | None = None


class StoredResult(LmevalsBaseModel):
    """Final per-model result as kept by the result store."""

    model: str
    trials: int = 0
    score: float = 0.0


class StoredRun(LmevalsBaseModel):
    """A completed run as returned by the result store."""

    run_id: str = Field(validation_alias=AliasChoices("run_id", "eval_id", "id"))
    prompt: str = ""
    rubric: str = Field(default="", alias="evalPrompt")
    title: str = ""
    is_public: bool = False
    models: list[str] = Field(default_factory=list)
    trials: int = Field(default=3, ge=1, le=MAX_TRIALS)
    results: list[StoredResult] = Field(default_factory=list)


class CompletionsResponse(LmevalsBaseModel):
    """Stored completions for one model of a run."""

    completions: list[Completion] = Field(default_factory=list)


class MessageResponse(LmevalsBaseModel):
    """Generic success/failure response."""

    success: bool = True
    message: str = ""


class ErrorResponse(LmevalsBaseModel):
    """Error response."""

    detail: str
    error_code: str | None = None


class HealthResponse(LmevalsBaseModel):
    """Health check response."""

    status: str
