# Copyright (c) Syntropy Systems
"""Data models for lmevals."""

from .api import (
    Completion,
    ControlEvent,
    ModelUpdate,
    QuotaStatus,
    ResultEvent,
    RunRequest,
    StoredResult,
    StoredRun,
    TitleUpdate,
)
from .run import (
    ModelRunState,
    ModelSpec,
    Progress,
    RunHandle,
    RunSession,
    RunStatus,
    score_band,
)

__all__ = [
    "Completion",
    "ControlEvent",
    "ModelRunState",
    "ModelSpec",
    "ModelUpdate",
    "Progress",
    "QuotaStatus",
    "ResultEvent",
    "RunHandle",
    "RunRequest",
    "RunSession",
    "RunStatus",
    "StoredResult",
    "StoredRun",
    "TitleUpdate",
    "score_band",
]
