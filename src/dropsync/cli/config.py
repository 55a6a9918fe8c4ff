"""
dropsync config - Inspect and validate configuration.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from dropsync.config import build_settings, load_config
from dropsync.exceptions import ConfigurationError

app = typer.Typer(name="config", help="Inspect and validate dropsync configuration")

console = Console()


@app.callback()
def config() -> None:
    """
    Inspect and validate dropsync configuration.
    """


@app.command("check")
def check(
    config_path: Path = typer.Option(Path.cwd(), "--config", "-c", help="Config file or directory with dropsync.yaml"),
    env: str | None = typer.Option(None, help="Environment overlay (dropsync.<env>.yaml)"),
) -> None:
    """
    Validate configuration and print the effective settings.

    Secrets are never printed.
    """
    try:
        settings = build_settings(load_config(config_path, env=env))
    except ConfigurationError as e:
        console.print("[red]Configuration invalid[/red]")
        for error in e.errors or [e.message]:
            console.print(f"  - {error}")
        raise typer.Exit(1) from e

    sftp, sync = settings.sftp, settings.sync
    table = Table(title="Effective settings", show_header=False)
    table.add_row("sftp", f"{sftp.username}@{sftp.host}:{sftp.port}")
    table.add_row("auth", "private key" if sftp.private_key_path else "password")
    table.add_row("host key check", sftp.known_hosts_path or "disabled")
    table.add_row("remote_dir", sync.remote_dir)
    table.add_row("pattern", sync.pattern)
    table.add_row("local_dir", str(sync.local_dir))
    table.add_row("poll_interval", f"{sync.poll_interval}s")
    table.add_row("max_files_per_cycle", str(sync.max_files_per_cycle or "unlimited"))
    table.add_row("manifest", str(sync.manifest_path or "in-memory"))
    table.add_row("dispatch capacity", str(settings.dispatch.capacity or "unbounded"))
    console.print(table)
    console.print("[green]Configuration OK[/green]")
