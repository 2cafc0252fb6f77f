"""CLI command for running the API server.

Usage:
    summadoc serve
    summadoc serve --port 8080 --host 0.0.0.0
    summadoc serve --reload --log-level debug
"""

from __future__ import annotations

import typer

from summadoc.config import settings

app = typer.Typer(help="Run the Summadoc API server")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of worker processes"),
    log_level: str = typer.Option(
        "info", "--log-level", "-l", help="Log level: debug, info, warning, error"
    ),
    access_log: bool = typer.Option(
        True, "--access-log/--no-access-log", help="Enable/disable access logging"
    ),
) -> None:
    """Run the Summadoc API server.

    With more than one worker, per-owner write locks only cover each worker;
    writers in different workers are kept apart by the version check.
    """
    import uvicorn

    workers_effective = workers if not reload else 1  # Reload requires single worker

    typer.echo("Starting Summadoc server...")
    typer.echo(f"  Host: {host}")
    typer.echo(f"  Port: {port}")
    typer.echo(f"  Workers: {workers_effective}")
    typer.echo(f"  Cache: {'enabled' if settings.cache_enabled else 'disabled'}")
    typer.echo()

    uvicorn.run(
        app="summadoc.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers_effective,
        log_level=log_level.lower(),
        access_log=access_log,
    )
