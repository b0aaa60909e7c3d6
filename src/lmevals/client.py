# Copyright (c) Syntropy Systems
"""HTTP client for the lmevals run server."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar, overload

import httpx
from pydantic import BaseModel, ValidationError
from typing_extensions import Self

from lmevals.errors import LmevalsClientError, NetworkError, StreamTimeoutError
from lmevals.models.api import (
    Completion,
    CompletionsResponse,
    ErrorResponse,
    MessageResponse,
    QuotaStatus,
    RunRequest,
    StoredRun,
    TitleUpdate,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping
    from types import TracebackType

    from lmevals.models.base import JSONValue

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


def _error_detail(response: httpx.Response, fallback: str) -> str:
    try:
        return ErrorResponse.model_validate(response.json()).detail
    except (ValidationError, ValueError):
        return fallback


class LmevalsClient:
    """Async HTTP client for submitting runs and reading stored results."""

    server_url: str
    token: str | None
    timeout: float
    connect_timeout: float
    idle_timeout: float | None

    def __init__(  # noqa: PLR0913
        self,
        server_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        idle_timeout: float | None = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the run server (e.g., "http://localhost:8080")
            token: Bearer credential sent with every request
            timeout: Timeout for ordinary requests in seconds
            connect_timeout: Timeout for opening a connection in seconds
            idle_timeout: Longest wait for the next chunk of a run stream,
                None to wait forever
            transport: Optional httpx transport (used by tests)

        """
        self.server_url = server_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.idle_timeout = idle_timeout
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        await self.aclose()

    @overload
    async def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, str] | None = None,
        *,
        response_model: type[ResponseModel],
    ) -> ResponseModel:
        ...

    @overload
    async def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, str] | None = None,
        *,
        response_model: None = None,
    ) -> dict[str, JSONValue]:
        ...

    async def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        params: Mapping[str, str] | None = None,
        *,
        response_model: type[ResponseModel] | None = None,
    ) -> ResponseModel | dict[str, JSONValue]:
        """Make an HTTP request to the server."""
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                params=params,
            )
            _ = response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response, str(e))
            msg = f"Server error: {detail}"
            raise LmevalsClientError(msg) from e
        except httpx.RequestError as e:
            msg = f"Connection error: {e}"
            raise LmevalsClientError(msg) from e
        except ValueError as e:
            msg = f"Invalid response from {path}: {e}"
            raise LmevalsClientError(msg) from e

        if response_model is None:
            return data
        try:
            return response_model.model_validate(data)
        except ValidationError as e:
            msg = f"Unexpected response from {path}: {e}"
            raise LmevalsClientError(msg) from e

    # --- Run Operations ---

    async def stream_run(self, request: RunRequest) -> AsyncIterator[str]:
        """Submit a run and yield the response body line by line.

        The connection is released when the iterator is exhausted, raises,
        or is closed early by the caller.

        Raises:
            StreamTimeoutError: If no bytes arrive within the idle timeout
            NetworkError: If the stream cannot be opened or read

        """
        timeout = httpx.Timeout(
            self.timeout,
            connect=self.connect_timeout,
            read=self.idle_timeout,
        )
        try:
            async with self._client.stream(
                "POST",
                "/api/run",
                json=request.model_dump(mode="json", by_alias=True),
                timeout=timeout,
            ) as response:
                if response.is_error:
                    _ = await response.aread()
                    detail = _error_detail(response, f"HTTP {response.status_code}")
                    msg = f"Run rejected by server: {detail}"
                    raise NetworkError(msg)
                async for line in response.aiter_lines():
                    yield line
        except httpx.TimeoutException as e:
            msg = f"Run stream timed out: {e}"
            raise StreamTimeoutError(msg) from e
        except (httpx.HTTPError, httpx.StreamError) as e:
            msg = f"Run stream failed: {e}"
            raise NetworkError(msg) from e

    async def get_run(self, run_id: str) -> StoredRun:
        """Get a stored run with its final per-model results.

        Args:
            run_id: Run ID

        Returns:
            The stored run

        """
        return await self._request(
            "GET",
            f"/api/runs/{run_id}",
            response_model=StoredRun,
        )

    async def get_completions(self, run_id: str, model: str) -> list[Completion]:
        """Get stored completions for one model of a run.

        Args:
            run_id: Run ID
            model: Model identifier

        Returns:
            Completions in trial order

        """
        result = await self._request(
            "GET",
            f"/api/runs/{run_id}/completions",
            params={"model": model},
            response_model=CompletionsResponse,
        )
        return result.completions

    async def update_title(
        self,
        run_id: str,
        title: str | None = None,
        is_public: bool | None = None,
    ) -> MessageResponse:
        """Rename and/or publish a run.

        Args:
            run_id: Run ID
            title: New title, unchanged when None
            is_public: New visibility, unchanged when None

        Returns:
            Response with the success flag

        """
        payload = TitleUpdate(run_id=run_id, title=title, is_public=is_public)
        return await self._request(
            "POST",
            "/api/eval-title",
            json=payload.model_dump(exclude_none=True),
            response_model=MessageResponse,
        )

    # --- Account Operations ---

    async def get_quota(self) -> QuotaStatus:
        """Get the remaining run credits for the current credential."""
        return await self._request("GET", "/api/quota", response_model=QuotaStatus)


def get_client(
    server_url: str,
    token: str | None = None,
    timeout: float = 30.0,
    connect_timeout: float = 10.0,
    idle_timeout: float | None = 300.0,
) -> LmevalsClient:
    """Create an LmevalsClient instance.

    Args:
        server_url: Base URL of the run server
        token: Bearer credential
        timeout: Request timeout in seconds
        connect_timeout: Connection timeout in seconds
        idle_timeout: Stream idle timeout in seconds

    Returns:
        LmevalsClient instance

    """
    logger.debug("Creating client for %s", server_url)
    return LmevalsClient(
        server_url,
        token=token,
        timeout=timeout,
        connect_timeout=connect_timeout,
        idle_timeout=idle_timeout,
    )
