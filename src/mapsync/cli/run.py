"""
mapsync run - Run a sync now.
"""

from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mapsync.exceptions import InitializationError, MapsyncError
from mapsync.logstore import RunStatus
from mapsync.runtime import initialize
from mapsync.sync.orchestrator import DEFAULT_TASK_TYPE
from mapsync.utils.logging import get_logger

logger = get_logger("mapsync.cli.run")

app = typer.Typer(name="run", help="Run a sync now", invoke_without_command=True)
console = Console()


def _parse_date(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"'{value}' is not a date (YYYY-MM-DD)", param_hint="--date") from None


@app.callback()
def run(
    ctx: typer.Context,
    task_type: str = typer.Option(DEFAULT_TASK_TYPE, "--task-type", "-t", help="Task type to run"),
    run_date: str | None = typer.Option(None, "--date", help="Reference date YYYY-MM-DD (overrides --offset-days)"),
    offset_days: int | None = typer.Option(None, "--offset-days", min=0, help="Days before today to sync"),
    rules: list[str] | None = typer.Option(None, "--rule", "-r", help="Only run these rule ids (repeatable)"),
    resend: bool = typer.Option(False, "--resend", help="Resend files adhoc rules already delivered"),
    env: str | None = typer.Option(None, help="Environment (selects config.{env}.yaml)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Run a manual sync and print its outcome.

    Manual runs ignore weekly and monthly windows. Adhoc rules run only when
    named with --rule. Exits with status 1 unless every rule succeeded.
    """
    if ctx.invoked_subcommand is not None:
        return

    reference_date = _parse_date(run_date)
    try:
        runtime = initialize(project_dir, env=env, verbose=verbose)
    except InitializationError as e:
        logger.error(f"Initialization failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    try:
        task = runtime.scheduler.run_now(
            task_type,
            reference_date=reference_date,
            offset_days=offset_days,
            rule_ids=rules or None,
            resend=resend,
        )
        details = runtime.log_store.get_task(task.id) or {}
    except MapsyncError as e:
        logger.error(f"Run failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        runtime.close()

    table = Table(title=f"Run {task.id} ({task.task_date.isoformat()})", show_header=True)
    table.add_column("Rule", style="cyan")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    for rule in details.get("rules", []):
        table.add_row(
            rule["rule_id"],
            rule["status"],
            str(rule["total_files"]),
            str(rule["success_count"]),
            str(rule["failed_count"]),
            str(rule["skipped_count"]),
        )
    console.print(table)

    colour = {RunStatus.SUCCESS: "green", RunStatus.PARTIAL: "yellow"}.get(task.status, "red")
    console.print(
        f"[{colour}]{task.status.value}[/{colour}]: {task.total_files} files, "
        f"{task.success_count} transferred, {task.failed_count} failed, {task.skipped_count} skipped, "
        f"{task.unmatched_count} unmatched in {task.duration_seconds:.1f}s"
    )
    if task.error_message:
        console.print(f"[dim]{task.error_message}[/dim]")

    if task.status != RunStatus.SUCCESS:
        raise typer.Exit(1)
