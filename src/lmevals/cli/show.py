# Copyright (c) Syntropy Systems
"""lmevals show and completions commands."""
from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from lmevals.cli.common import (
    SCORE_STYLES,
    build_results_table,
    console,
    fail,
    make_client,
    run_async,
)
from lmevals.controller import RunController
from lmevals.errors import LmevalsClientError
from lmevals.models.api import Completion
from lmevals.models.run import score_band


def show(
    run_id: str = typer.Argument(..., help="Run ID to show"),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="LMEVALS_SERVER_URL", help="Run server URL"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="LMEVALS_TOKEN", help="Bearer token"
    ),
) -> None:
    """Show the stored results of a run."""

    async def _load() -> RunController:
        async with make_client(server, token) as client:
            controller = RunController(client)
            _ = await controller.load(run_id)
            return controller

    try:
        controller = run_async(_load())
    except LmevalsClientError as e:
        raise fail(e) from e

    request = controller.session.request
    if request is None:
        raise fail(f"Run {run_id} has no stored request")
    console.print(f"[bold]Prompt:[/bold] {request.prompt_text}")
    if request.has_rubric:
        console.print(f"[bold]Rubric:[/bold] {request.rubric_text}")
    console.print(
        build_results_table(
            controller.snapshot(),
            request.trials_per_model,
            show_score=request.has_rubric,
            title=request.title_hint or None,
        )
    )


def build_completions_table(model: str, completions: list[Completion]) -> Table:
    """Build a table of one model's per-trial answers."""
    table = Table(title=model, show_header=True, header_style="bold", show_lines=True)
    table.add_column("#", style="dim", width=3)
    table.add_column("Answer")
    table.add_column("Score", justify="right")

    for index, completion in enumerate(completions, start=1):
        if completion.score is None:
            score = "-"
        else:
            style = SCORE_STYLES[score_band(completion.score)]
            score = f"[{style}]{completion.score * 100:.0f}%[/{style}]"
        table.add_row(str(index), completion.answer, score)

    return table


def completions(
    run_id: str = typer.Argument(..., help="Run ID"),
    model: str = typer.Argument(..., help="Model identifier"),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="LMEVALS_SERVER_URL", help="Run server URL"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="LMEVALS_TOKEN", help="Bearer token"
    ),
) -> None:
    """Show every trial's answer and score for one model of a run."""

    async def _fetch() -> list[Completion]:
        async with make_client(server, token) as client:
            controller = RunController(client)
            _ = await controller.load(run_id)
            return await controller.completions(model)

    try:
        answers = run_async(_fetch())
    except LmevalsClientError as e:
        raise fail(e) from e

    if not answers:
        console.print(f"[dim]No completions for {model}[/dim]")
        return
    console.print(build_completions_table(model, answers))
