# Copyright (c) Syntropy Systems
"""Decoding of the NDJSON run stream into events."""
from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, cast

from pydantic import ValidationError

from lmevals.errors import MalformedEventError
from lmevals.models.api import ControlEvent, ModelUpdate, ResultEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from lmevals.client import LmevalsClient
    from lmevals.models.api import RunRequest
    from lmevals.models.run import RunHandle

logger = logging.getLogger(__name__)

_CONTROL_KEYS = ("run_id", "eval_id")


def parse_event(line: str) -> ResultEvent:
    """Parse one stream line into a control event or a model update.

    Raises:
        MalformedEventError: If the line is not a JSON object of either shape

    """
    try:
        data = json.loads(line)
    except ValueError as e:
        raise MalformedEventError(line, f"invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise MalformedEventError(line, "expected a JSON object")
    record = cast("dict[str, object]", data)

    try:
        if "model" in record:
            return ModelUpdate.model_validate(record)
        if any(key in record for key in _CONTROL_KEYS):
            return ControlEvent.model_validate(record)
    except ValidationError as e:
        raise MalformedEventError(line, str(e)) from e
    raise MalformedEventError(line, "neither a run id nor a model update")


class StreamRunner:
    """Consume one run's response stream and produce its events in wire order.

    Line reassembly and text decoding are left to httpx; each non-blank line
    is one event. The first control event sets the run id on the handle and
    is yielded so the caller can observe it; every other record is a model
    update.
    """

    def __init__(self, client: LmevalsClient) -> None:
        self._client = client

    async def start(
        self,
        request: RunRequest,
        handle: RunHandle,
    ) -> AsyncIterator[ResultEvent]:
        """Open the run stream and yield decoded events.

        Closing the iterator early releases the underlying connection.

        Raises:
            NetworkError: If the stream cannot be opened or read
            MalformedEventError: If a line cannot be decoded

        """
        async with aclosing(self._client.stream_run(request)) as lines:
            async for line in lines:
                if not line.strip():
                    continue
                event = parse_event(line)
                if self._accept(event, handle):
                    yield event

        if not handle.has_id:
            logger.warning("Run stream ended without announcing a run id")

    @staticmethod
    def _accept(event: ResultEvent, handle: RunHandle) -> bool:
        if not isinstance(event, ControlEvent):
            return True
        # The first run id is taken even after model updates; only later ones are dropped
        if handle.has_id:
            logger.warning("Ignoring repeated run id %s", event.run_id)
            return False
        handle.run_id = event.run_id
        logger.info("Run %s started", event.run_id)
        return True
