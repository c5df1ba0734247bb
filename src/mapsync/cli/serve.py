"""
mapsync serve - Long-running service.

Runs the reporting API and the background scheduler:
- GET /health, GET /metrics
- GET /api/v1/tasks, /rules, /files, /stats, /schedules
- POST /api/v1/runs - Manual run
"""

from pathlib import Path

import typer

from mapsync.config.loader import load_config
from mapsync.service.server import run_service

app = typer.Typer(name="serve", help="Run mapsync as a long-running service", invoke_without_command=True)


@app.callback()
def serve(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (selects config.{env}.yaml)"),
    no_scheduler: bool = typer.Option(False, "--no-scheduler", help="Disable background scheduler"),
    host: str | None = typer.Option(None, help="Host to bind to (default: service.host or 127.0.0.1)"),
    port: int | None = typer.Option(None, help="Port to bind to (default: service.port or 8080)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Run mapsync as a long-running service.
    """
    if ctx.invoked_subcommand is not None:
        return

    if host is None or port is None:
        try:
            config = load_config(project_dir, env=env)
        except FileNotFoundError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from e
        host = host or config.get("service.host", "127.0.0.1")
        port = port or int(config.get("service.port", 8080))

    try:
        run_service(
            project_dir=project_dir,
            env=env,
            host=host,
            port=port,
            verbose=verbose,
            enable_scheduler=not no_scheduler,
        )
    except RuntimeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
