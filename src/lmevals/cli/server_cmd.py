"""CLI command for running the lmevals development server."""

from typing import Optional

import typer
from rich.console import Console

console = Console()


def server(
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    credits: int = typer.Option(3, "--credits", help="Runs allowed per token"),
    unlimited: Optional[list[str]] = typer.Option(
        None,
        "--unlimited-token",
        help="Token that bypasses the credit limit (repeatable)",
    ),
    delay: float = typer.Option(
        0.2, "--delay", help="Seconds each simulated trial takes"
    ),
):
    """
    Start the lmevals development server.

    The server streams run results as newline-delimited JSON, scoring each
    trial with a built-in echo backend. Results are kept in memory.

    Examples:

        # Start on the default port
        lmevals server

        # Bind to all interfaces with a token that never runs out
        lmevals server --host 0.0.0.0 --unlimited-token dev-token
    """
    try:
        import uvicorn
    except ImportError:
        console.print("[red]Error:[/red] uvicorn is required for server mode.")
        console.print("Install with: pip install lmevals[server]")
        raise typer.Exit(1)

    console.print("[bold]lmevals server[/bold]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Credits per token: {credits}")
    if unlimited:
        console.print(f"  Unlimited tokens: {len(unlimited)}")
    console.print()

    # Import and create app here to handle import errors gracefully
    try:
        from ..server.app import create_app
        from ..server.backend import EchoBackend, RunStore

        app = create_app(
            backend=EchoBackend(delay=delay),
            store=RunStore(default_credits=credits, unlimited_tokens=set(unlimited or [])),
        )

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
        )

    except ImportError as e:
        console.print(f"[red]Error:[/red] Missing dependency: {e}")
        console.print("Install server dependencies with: pip install lmevals[server]")
        raise typer.Exit(1)
