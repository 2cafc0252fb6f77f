"""CLI commands for Summadoc.

Provides command-line interface using Typer:
- summadoc serve: Run the API server
- summadoc init-db: Create the database schema
- summadoc create-user: Register a user with an empty document collection

Usage:
    summadoc --help
    summadoc init-db
    summadoc create-user alice --email alice@example.com
    summadoc serve --port 8080
"""

import typer

from summadoc.cli.db_cmd import init_db_command
from summadoc.cli.serve import app as serve_app
from summadoc.cli.user_cmd import create_user

# Main CLI application
app = typer.Typer(
    name="summadoc",
    help="Summadoc: per-user collections of summarized documents",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.command("init-db")(init_db_command)
app.command("create-user")(create_user)


@app.callback()
def callback() -> None:
    """Summadoc: per-user collections of summarized documents."""


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
