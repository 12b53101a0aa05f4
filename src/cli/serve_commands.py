"""Commands that run the web app and the resource server."""

import typer
import uvicorn
from rich.panel import Panel

from src.identity_sync.runtime.context import get_config

from .utils import console

serve_app = typer.Typer(help="Run the web app or the resource server")


def _serve(target: str, title: str, host: str, port: int, reload: bool, log_level: str):
    console.print(Panel.fit(f"[bold green]{title}[/bold green]", border_style="green"))
    console.print(f"[blue]Server will be available at:[/blue] http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop the server[/dim]")

    try:
        uvicorn.run(
            target,
            host=host,
            port=port,
            reload=reload,
            reload_dirs=["src"] if reload else None,
            log_level=log_level,
            access_log=False,  # Access logging happens in middleware
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped by user[/yellow]")


@serve_app.command(name="web")
def serve_web(
    host: str = typer.Option("0.0.0.0", help="Host to bind the server to"),
    port: int | None = typer.Option(None, help="Port (defaults to app.web_port)"),
    reload: bool = typer.Option(False, help="Enable auto-reload on code changes"),
    log_level: str = typer.Option("info", help="Uvicorn log level"),
) -> None:
    """Start the web app (login, dashboard, sync endpoints)."""
    _serve(
        "src.identity_sync.web.http.app:app",
        "Starting web app",
        host,
        port or get_config().app.web_port,
        reload,
        log_level,
    )


@serve_app.command(name="api")
def serve_api(
    host: str = typer.Option("0.0.0.0", help="Host to bind the server to"),
    port: int | None = typer.Option(None, help="Port (defaults to app.api_port)"),
    reload: bool = typer.Option(False, help="Enable auto-reload on code changes"),
    log_level: str = typer.Option("info", help="Uvicorn log level"),
) -> None:
    """Start the resource server (identity endpoint and user table)."""
    _serve(
        "src.identity_sync.api.http.app:app",
        "Starting resource server",
        host,
        port or get_config().app.api_port,
        reload,
        log_level,
    )
