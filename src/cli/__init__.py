"""Main CLI application module."""

import typer

from .db_commands import db_app
from .serve_commands import serve_app
from .token_commands import token_app

# Create the main CLI application
app = typer.Typer(
    help="Identity Sync CLI - run the apps and inspect credentials",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(serve_app, name="serve")
app.add_typer(db_app, name="db")
app.add_typer(token_app, name="token")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
