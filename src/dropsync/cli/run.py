"""
dropsync run - Long-running poller.

Polls the configured SFTP directory until SIGINT/SIGTERM, then finishes
the in-flight cycle and drains pending deliveries before exiting.
"""

from pathlib import Path

import typer

from dropsync.config import SyncSettings, build_settings, load_config
from dropsync.exceptions import DropsyncError
from dropsync.service.handlers import HandlerLike, load_handler
from dropsync.service.runner import run_service
from dropsync.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("dropsync.cli.run")

app = typer.Typer(name="run", help="Poll the remote directory until stopped", invoke_without_command=True)


def load_settings(config_path: Path, env: str | None, verbose: bool = False) -> SyncSettings:
    """Load + validate settings and configure logging; exits 1 on bad config."""
    try:
        settings = build_settings(load_config(config_path, env=env))
    except DropsyncError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    logging_config = dict(settings.logging)
    if verbose:
        logging_config["level"] = "DEBUG"
    setup_logging_from_config({"logging": logging_config})
    return settings


def load_consumer(spec: str | None) -> HandlerLike | None:
    if spec is None:
        return None
    try:
        return load_handler(spec)
    except (ImportError, ValueError, TypeError) as e:
        typer.echo(f"Error: cannot load handler {spec!r}: {e}", err=True)
        raise typer.Exit(1) from e


@app.callback()
def run(
    ctx: typer.Context,
    config_path: Path = typer.Option(Path.cwd(), "--config", "-c", help="Config file or directory with dropsync.yaml"),
    env: str | None = typer.Option(None, help="Environment overlay (dropsync.<env>.yaml)"),
    handler: str | None = typer.Option(None, "--handler", help="Consumer as 'package.module:name'"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
) -> None:
    """
    Poll the remote directory until stopped.
    """
    if ctx.invoked_subcommand is None:
        settings = load_settings(config_path, env, verbose)
        consumer = load_consumer(handler)
        try:
            run_service(settings, handler=consumer)
        except DropsyncError as e:
            logger.error(f"dropsync stopped: {e}")
            raise typer.Exit(1) from e
