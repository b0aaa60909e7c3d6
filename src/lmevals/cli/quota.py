# Copyright (c) Syntropy Systems
"""lmevals quota command."""
from __future__ import annotations

from typing import Optional

import typer

from lmevals.cli.common import console, fail, make_client, run_async
from lmevals.errors import LmevalsClientError
from lmevals.models.api import QuotaStatus


def quota(
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="LMEVALS_SERVER_URL", help="Run server URL"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="LMEVALS_TOKEN", help="Bearer token"
    ),
) -> None:
    """Show how many runs are left."""

    async def _get() -> QuotaStatus:
        async with make_client(server, token) as client:
            return await client.get_quota()

    try:
        status = run_async(_get())
    except LmevalsClientError as e:
        raise fail(e) from e

    if status.override_token:
        console.print("[green]Unlimited[/green] (using your own API credential)")
    elif status.remaining > 0:
        console.print(f"{status.remaining} run(s) left")
    else:
        console.print("[yellow]0 credits left[/yellow]")
