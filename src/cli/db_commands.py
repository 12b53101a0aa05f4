"""Database maintenance commands."""

import typer
from rich.table import Table

from src.identity_sync.core.services.database.db_session import DbSessionService
from src.identity_sync.entities.core.user_record import UserRecordRepository
from src.identity_sync.runtime.context import get_config

from .utils import console

db_app = typer.Typer(help="Manage the resource server database")


@db_app.command("init")
def init_db() -> None:
    """Create the resource server tables if they do not exist."""
    service = DbSessionService()
    service.create_tables()
    console.print(
        f"[green]Tables ready[/green] in [cyan]{get_config().database.url}[/cyan]"
    )


@db_app.command("user")
def show_user(subject: str = typer.Argument(..., help="Provider subject id")) -> None:
    """Show the stored record for a subject."""
    service = DbSessionService()
    with service.session_scope() as session:
        record = UserRecordRepository(session).get_by_subject(subject)

    if record is None:
        console.print(f"[yellow]No user record for subject '{subject}'[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title=f"User record for '{subject}'")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for field, value in record.to_response().items():
        table.add_row(field, "" if value is None else str(value))
    console.print(table)
