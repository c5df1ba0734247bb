"""
Main CLI entry point.
"""

import typer

from mapsync import __version__
from mapsync.cli import logs, run, schedules, serve


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"mapsync version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="mapsync",
    help="mapsync - rule-driven file synchronization to SFTP and mounted shares",
    add_completion=True,
)

app.add_typer(run.app, name="run")
app.add_typer(serve.app, name="serve")
app.add_typer(logs.app, name="logs")
app.add_typer(schedules.app, name="schedules")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    mapsync - rule-driven file synchronization.

    Run 'mapsync <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
