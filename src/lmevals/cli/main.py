# Copyright (c) Syntropy Systems
"""Main CLI entry point for lmevals."""

import typer

from lmevals.cli.common import setup_logging
from lmevals.cli.quota import quota
from lmevals.cli.run import run
from lmevals.cli.server_cmd import server
from lmevals.cli.show import completions, show
from lmevals.cli.title import publish, title

app = typer.Typer(
    name="lmevals",
    help=(
        "Run a prompt against many models, score every trial, "
        "and watch results stream in."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    setup_logging(verbose)


# Register commands
_ = app.command()(run)
_ = app.command()(show)
_ = app.command()(completions)
_ = app.command()(title)
_ = app.command()(publish)
_ = app.command()(quota)
_ = app.command()(server)


if __name__ == "__main__":
    app()
