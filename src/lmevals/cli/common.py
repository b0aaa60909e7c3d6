# Copyright (c) Syntropy Systems
"""Helpers shared by lmevals CLI commands."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from lmevals.client import LmevalsClient, get_client
from lmevals.config import LmevalsConfig, load_config
from lmevals.models.run import Progress, score_band

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from lmevals.models.run import ModelRunState

console = Console()

T = TypeVar("T")

PROGRESS_STYLES = {
    Progress.PENDING: "dim",
    Progress.RUNNING: "blue",
    Progress.COMPLETE: "green",
}

SCORE_STYLES = {
    "good": "green",
    "fair": "yellow",
    "poor": "red",
}


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich when --verbose is given."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def make_client(
    server: str | None,
    token: str | None,
    config: LmevalsConfig | None = None,
) -> LmevalsClient:
    """Build a client from command-line options, falling back to config."""
    config = config or load_config()
    return get_client(
        server or config.server_url,
        token=token,
        timeout=config.request_timeout,
        connect_timeout=config.connect_timeout,
        idle_timeout=config.idle_timeout,
    )


def run_async(coro: Coroutine[object, object, T]) -> T:
    """Run a coroutine to completion from a synchronous command."""
    return asyncio.run(coro)


def fail(message: object) -> typer.Exit:
    """Print an error and return the exit to raise."""
    console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def format_score(state: ModelRunState) -> str:
    if state.completed_trials == 0:
        return "--"
    style = SCORE_STYLES[score_band(state.running_score)]
    return f"[{style}]{state.running_score * 100:.0f}%[/{style}]"


def build_results_table(
    states: list[ModelRunState],
    trials_per_model: int,
    show_score: bool = True,
    title: str | None = None,
) -> Table:
    """Build the per-model results table."""
    table = Table(title=title or "Untitled eval", show_header=True, header_style="bold")
    table.add_column("Model")
    table.add_column("Trials", justify="right")
    if show_score:
        table.add_column("Score", justify="right")
    table.add_column("Status")

    if not states:
        row = ["[dim]No results yet[/dim]", "-"]
        if show_score:
            row.append("-")
        row.append("-")
        table.add_row(*row)
        return table

    for state in states:
        progress = state.progress(trials_per_model)
        style = PROGRESS_STYLES[progress]
        row = [state.model, f"{state.completed_trials}/{trials_per_model}"]
        if show_score:
            row.append(format_score(state))
        row.append(f"[{style}]{progress.value}[/{style}]")
        table.add_row(*row)

    return table
