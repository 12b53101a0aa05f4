"""Build and inspect unsigned credentials for local debugging."""

import json

import typer
from rich.table import Table

from src.identity_sync.core.services.token.untrusted import (
    UntrustedTokenError,
    inspect_token,
    synthesize_credential,
    token_shape,
)

from .utils import console

token_app = typer.Typer(help="Synthesize and inspect bearer credentials")


@token_app.command("synthesize")
def synthesize(
    sub: str = typer.Option(..., "--sub", help="Subject claim"),
    email: str | None = typer.Option(None, "--email"),
    name: str | None = typer.Option(None, "--name"),
    picture: str | None = typer.Option(None, "--picture"),
) -> None:
    """Print an unsigned credential like the one the web app falls back to."""
    # Plain print so the token can be piped
    print(synthesize_credential(sub=sub, email=email, name=name, picture=picture))


@token_app.command("inspect")
def inspect(token: str = typer.Argument(..., help="Compact JWT to decode")) -> None:
    """Decode a token WITHOUT verifying it and show its claims."""
    try:
        decoded = inspect_token(token)
    except UntrustedTokenError as e:
        shape = token_shape(token)
        console.print(
            f"[red]{e.reason}[/red] "
            f"(segments={shape['segments']}, length={shape['length']})"
        )
        raise typer.Exit(code=1) from e

    console.print(
        f"[bold]alg:[/bold] {decoded.alg or '-'}  "
        f"[bold]signature:[/bold] {'present' if decoded.signature_present else 'empty'}"
    )
    table = Table(title="Claims (unverified)")
    table.add_column("Claim", style="cyan")
    table.add_column("Value", style="green")
    for claim, value in decoded.claims.items():
        table.add_row(claim, value if isinstance(value, str) else json.dumps(value))
    console.print(table)
