"""
mapsync schedules - Show schedule state.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mapsync.exceptions import InitializationError, MapsyncError
from mapsync.runtime import initialize

app = typer.Typer(name="schedules", help="Show schedule state", invoke_without_command=True)
console = Console()


@app.callback()
def schedules(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (selects config.{env}.yaml)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    List every task type with its cron and last/next run times.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        runtime = initialize(project_dir, env=env)
    except InitializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    try:
        runtime.scheduler.restore()
        rows = runtime.scheduler.status()
    except MapsyncError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        runtime.close()

    table = Table(title="Schedules", show_header=True)
    table.add_column("Task type", style="cyan")
    table.add_column("Cron")
    table.add_column("Timezone")
    table.add_column("Offset", justify="right")
    table.add_column("Enabled")
    table.add_column("Last run")
    table.add_column("Last status")
    table.add_column("Next run")
    for row in rows:
        table.add_row(
            row["task_type"],
            row["cron"],
            row["timezone"],
            str(row["offset_days"]),
            "yes" if row["enabled"] else "[dim]no[/dim]",
            row["last_run_at"] or "-",
            row["last_status"] or "-",
            row["next_run_at"] or "-",
        )
    console.print(table)
