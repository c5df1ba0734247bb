"""
mapsync logs - Show recent runs.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mapsync.exceptions import InitializationError, MapsyncError
from mapsync.runtime import initialize

app = typer.Typer(name="logs", help="Show recent sync runs", invoke_without_command=True)
console = Console()

STATUS_STYLE = {"success": "green", "partial": "yellow", "fail": "red", "pending": "dim", "skipped": "yellow"}


def _styled(status: str) -> str:
    style = STATUS_STYLE.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@app.callback()
def logs(
    ctx: typer.Context,
    task_id: str | None = typer.Option(None, "--task", help="Show rules and files of one run"),
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status (success, fail, partial)"),
    task_type: str | None = typer.Option(None, "--task-type", "-t", help="Filter by task type"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=1000, help="Number of runs to show"),
    env: str | None = typer.Option(None, help="Environment (selects config.{env}.yaml)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    List recent runs, newest first, or the details of one run.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        runtime = initialize(project_dir, env=env)
    except InitializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    try:
        if task_id:
            task = runtime.log_store.get_task(task_id)
            if task is None:
                typer.echo(f"Error: run '{task_id}' not found", err=True)
                raise typer.Exit(1)
            _print_task(task)
            return

        result = runtime.log_store.list_tasks(task_type=task_type, status=status, page_size=limit)
    except (ValueError, MapsyncError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        runtime.close()

    items = result["items"]
    if not items:
        console.print("[dim]No runs recorded[/dim]")
        return

    table = Table(title=f"Runs ({len(items)} of {result['pagination']['total']})", show_header=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Trigger")
    table.add_column("Date")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("OK", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Unmatched", justify="right")
    for item in items:
        table.add_row(
            item["id"][:12],
            item["task_type"],
            item["trigger"],
            item["task_date"],
            _fmt_time(item["started_at"]),
            _styled(item["status"]),
            str(item["total_files"]),
            str(item["success_count"]),
            str(item["failed_count"]),
            str(item["skipped_count"]),
            str(item["unmatched_count"]),
        )
    console.print(table)


def _print_task(task: dict) -> None:
    console.print(
        f"\n[bold]Run {task['id']}[/bold] {task['task_type']} ({task['trigger']}) "
        f"date={task['task_date']} status={_styled(task['status'])}"
    )
    if task.get("error_message"):
        console.print(f"[dim]{task['error_message']}[/dim]")

    rules = Table(title="Rules", show_header=True)
    rules.add_column("Rule", style="cyan")
    rules.add_column("Module")
    rules.add_column("Status")
    rules.add_column("Files", justify="right")
    rules.add_column("Error")
    for rule in task["rules"]:
        rules.add_row(
            rule["rule_id"],
            rule["module"],
            _styled(rule["status"]),
            str(rule["total_files"]),
            rule.get("error_message") or "",
        )
    console.print(rules)

    files = Table(title="Files", show_header=True)
    files.add_column("File", style="cyan")
    files.add_column("Rule")
    files.add_column("Remote path")
    files.add_column("Status")
    files.add_column("Attempts", justify="right")
    files.add_column("Error")
    for f in task["files"]:
        files.add_row(
            f["filename"],
            f["rule_id"],
            f.get("remote_path") or "",
            _styled(f["status"]),
            str(f["attempts"]),
            f.get("error_message") or "",
        )
    console.print(files)
