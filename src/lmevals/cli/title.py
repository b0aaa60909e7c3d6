# Copyright (c) Syntropy Systems
"""lmevals title and publish commands."""
from __future__ import annotations

from typing import Optional

import typer

from lmevals.cli.common import console, fail, make_client, run_async
from lmevals.controller import RunController
from lmevals.errors import LmevalsClientError


def _update(
    run_id: str,
    server: str | None,
    token: str | None,
    title: str | None,
    publish: bool,
) -> bool:
    async def _go() -> bool:
        async with make_client(server, token) as client:
            controller = RunController(client)
            _ = await controller.load(run_id)
            ok = True
            if title:
                ok = await controller.rename(title)
            if ok and publish:
                ok = await controller.publish()
            return ok

    try:
        return run_async(_go())
    except LmevalsClientError as e:
        raise fail(e) from e


def title(
    run_id: str = typer.Argument(..., help="Run ID"),
    new_title: str = typer.Argument(..., help="New title"),
    public: bool = typer.Option(False, "--public", help="Also publish the run"),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="LMEVALS_SERVER_URL", help="Run server URL"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="LMEVALS_TOKEN", help="Bearer token"
    ),
) -> None:
    """Rename a run."""
    if not new_title.strip():
        raise fail("Title cannot be empty")

    if not _update(run_id, server, token, new_title, public):
        raise fail(f"Could not update run {run_id}")

    console.print(f"[green]Renamed run {run_id}[/green] to {new_title!r}")
    if public:
        console.print("[green]Public on LMEvals[/green]")


def publish(
    run_id: str = typer.Argument(..., help="Run ID"),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="LMEVALS_SERVER_URL", help="Run server URL"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="LMEVALS_TOKEN", help="Bearer token"
    ),
) -> None:
    """Make a run public."""
    if not _update(run_id, server, token, None, True):
        raise fail(f"Could not publish run {run_id}")

    console.print(f"[green]Published run {run_id}[/green]")
