# Copyright (c) Syntropy Systems
"""lmevals run command - stream a run into a live results table."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer
from rich.live import Live

from lmevals.cli.common import build_results_table, console, fail, make_client, run_async
from lmevals.config import load_config
from lmevals.controller import RunController
from lmevals.models.api import MAX_TRIALS
from lmevals.models.run import RunStatus

if TYPE_CHECKING:
    from lmevals.client import LmevalsClient
    from lmevals.models.run import ModelSpec, RunSession


def run(
    prompt: str = typer.Argument(
        ...,
        help="Prompt sent to every model",
    ),
    models: Optional[list[str]] = typer.Option(
        None,
        "--model", "-m",
        help="Model to run (repeatable, defaults to the configured models)",
    ),
    rubric: str = typer.Option(
        "",
        "--rubric", "-r",
        help="Evaluation rubric used to score each answer",
    ),
    trials: Optional[int] = typer.Option(
        None,
        "--trials", "-n",
        min=1,
        max=MAX_TRIALS,
        help="Trials per model",
    ),
    title: str = typer.Option(
        "",
        "--title", "-t",
        help="Title for the run",
    ),
    server: Optional[str] = typer.Option(
        None,
        "--server", "-s",
        envvar="LMEVALS_SERVER_URL",
        help="Run server URL",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        envvar="LMEVALS_TOKEN",
        help="Bearer token",
    ),
) -> None:
    """Run a prompt against several models and watch results arrive.

        lmevals run "How many r's in strawberry?" -m model-a -m model-b \\
            --rubric "three" --trials 5
    """
    config = load_config()
    specs = config.model_specs(models)
    if not specs:
        raise fail("No models selected. Pass --model or set 'models' in config.yaml")

    trials_per_model = trials or config.default_trials
    client = make_client(server, token, config)
    status, controller = run_async(
        _run(client, specs, prompt, rubric, trials_per_model, title)
    )

    if status == RunStatus.IDLE:
        raise fail(controller.error)

    if controller.run_id:
        console.print(f"Run ID: [bold]{controller.run_id}[/bold]")
    if status == RunStatus.FAILED:
        console.print("[dim]Partial results are shown above[/dim]")
        raise fail(controller.error)

    console.print("[green]Run complete[/green]")


async def _run(  # noqa: PLR0913
    client: LmevalsClient,
    specs: list[ModelSpec],
    prompt: str,
    rubric: str,
    trials: int,
    title: str,
) -> tuple[RunStatus, RunController]:
    show_score = bool(rubric.strip())

    async with client:
        with Live(console=console, refresh_per_second=8) as live:

            def render(session: RunSession) -> None:
                live.update(
                    build_results_table(
                        list(session.states.values()),
                        trials,
                        show_score=show_score,
                        title=title or None,
                    )
                )

            def announce(session: RunSession) -> None:
                run_id = session.handle.run_id or "(no id)"
                live.console.print(f"[dim]Streaming results for run {run_id}[/dim]")

            controller = RunController(
                client,
                on_first_result=announce,
                on_update=render,
            )
            controller.select(specs)
            status = await controller.run(prompt, rubric=rubric, trials=trials, title=title)

    return status, controller
