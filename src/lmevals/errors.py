# Copyright (c) Syntropy Systems
"""Exceptions raised by lmevals."""

from __future__ import annotations


class LmevalsError(Exception):
    """Base class for lmevals errors."""


class RunValidationError(LmevalsError):
    """A run was rejected before any request was sent (empty prompt, no quota)."""


class LmevalsClientError(LmevalsError):
    """Error from lmevals server communication."""


class NetworkError(LmevalsClientError):
    """The run stream could not be opened or read."""


class StreamTimeoutError(NetworkError):
    """No bytes arrived on the run stream within the idle timeout."""


class MalformedEventError(NetworkError):
    """A stream line could not be decoded into an event."""

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        preview = line if len(line) <= 80 else line[:77] + "..."
        super().__init__(f"Malformed event {preview!r}: {reason}")
