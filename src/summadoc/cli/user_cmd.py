"""CLI command for registering a user.

Registration creates the user aggregate with an empty document list; users
are never created implicitly by document operations.

Usage:
    summadoc create-user alice
    summadoc create-user alice --email alice@example.com
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from summadoc.config import settings
from summadoc.core.errors import StoreUnavailableError, UserAlreadyExistsError
from summadoc.persistence.db import build_engine, build_session_factory, session_context
from summadoc.persistence.repositories import UserRepository, translate_store_errors


def create_user(
    user_id: str = typer.Argument(..., help="User id (the token subject)"),
    email: str | None = typer.Option(None, "--email", "-e", help="Email address"),
    database_url: str | None = typer.Option(
        None, "--database-url", "-d", help="Database URL (defaults to DATABASE_URL)"
    ),
) -> None:
    """Create a user with an empty document collection."""
    asyncio.run(_create_user(user_id, email, database_url or settings.database_url))


async def _create_user(user_id: str, email: str | None, database_url: str) -> None:
    console = Console(stderr=True)
    engine = build_engine(database_url)
    factory = build_session_factory(engine)
    try:
        with translate_store_errors():
            async with session_context(factory) as session:
                await UserRepository(session).create_user(user_id, email=email)
    except UserAlreadyExistsError as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(code=1) from e
    except StoreUnavailableError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2) from e
    finally:
        await engine.dispose()

    console.print(f"[green]Created user[/green] {user_id}")
