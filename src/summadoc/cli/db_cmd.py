"""CLI command for creating the database schema.

Usage:
    summadoc init-db
    summadoc init-db --database-url sqlite+aiosqlite:///./summadoc.db
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError

from summadoc.config import settings
from summadoc.persistence.db import build_engine, init_db


def init_db_command(
    database_url: str | None = typer.Option(
        None, "--database-url", "-d", help="Database URL (defaults to DATABASE_URL)"
    ),
) -> None:
    """Create the users table if it does not exist."""
    asyncio.run(_init_db(database_url or settings.database_url))


async def _init_db(database_url: str) -> None:
    console = Console()
    engine = build_engine(database_url)
    try:
        await init_db(engine)
    except SQLAlchemyError as e:
        console.print(f"[red]Could not create schema:[/red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        await engine.dispose()

    console.print("[green]Schema ready[/green]")
