# Copyright (c) Syntropy Systems
"""lmevals development server streaming run results."""

from .app import create_app
from .backend import EchoBackend, RunRecord, RunStore, TrialBackend

__all__ = [
    "EchoBackend",
    "RunRecord",
    "RunStore",
    "TrialBackend",
    "create_app",
]
