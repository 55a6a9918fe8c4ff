"""
Main CLI entry point.
"""

import typer

from dropsync import __version__
from dropsync.cli import config, once, run


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"dropsync version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="dropsync",
    help="dropsync - poll an SFTP directory and stage new files for a consumer",
    add_completion=True,
)

app.add_typer(run.app, name="run")
app.add_typer(once.app, name="once")
app.add_typer(config.app, name="config")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        help="Show version and exit.",
    ),
):
    """
    dropsync - poll an SFTP directory and stage new files for a consumer.

    Run 'dropsync <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None and not version:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
