"""
dropsync once - Run a single poll cycle.
"""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from dropsync.cli.run import load_consumer, load_settings
from dropsync.exceptions import DropsyncError
from dropsync.service.runner import SyncService
from dropsync.sync.types import PollCycleResult

app = typer.Typer(name="once", help="Run a single poll cycle and exit", invoke_without_command=True)

console = Console()


def _print_result(result: PollCycleResult) -> None:
    table = Table(title=f"Poll cycle {result.cycle_id}")
    table.add_column("File")
    table.add_column("Outcome")
    for name in result.downloaded_names:
        table.add_row(name, "[green]downloaded[/green]")
    for name, error in result.failed:
        table.add_row(name, f"[red]failed[/red]: {error}")
    console.print(table)
    console.print(
        f"attempted={result.attempted} downloaded={len(result.downloaded)} "
        f"failed={len(result.failed)} skipped={result.skipped}"
    )
    if result.error is not None:
        console.print(f"[red]Cycle aborted:[/red] {result.error}")


@app.callback()
def once(
    ctx: typer.Context,
    config_path: Path = typer.Option(Path.cwd(), "--config", "-c", help="Config file or directory with dropsync.yaml"),
    env: str | None = typer.Option(None, help="Environment overlay (dropsync.<env>.yaml)"),
    handler: str | None = typer.Option(None, "--handler", help="Consumer as 'package.module:name'"),
    as_json: bool = typer.Option(False, "--json", help="Print the cycle summary as JSON"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    """
    Run a single poll cycle, deliver its files and exit.

    Exits 1 when the cycle was aborted or any transfer failed.
    """
    if ctx.invoked_subcommand is None:
        settings = load_settings(config_path, env, verbose)
        consumer = load_consumer(handler)
        try:
            result = asyncio.run(SyncService(settings, handler=consumer).run_once())
        except DropsyncError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from e

        if as_json:
            typer.echo(json.dumps(result.to_dict(), indent=2))
        else:
            _print_result(result)

        if not result.ok or result.failed:
            raise typer.Exit(1)
