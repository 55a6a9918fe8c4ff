"""
Logging configuration for dropsync.

Console output goes through rich; an optional file handler writes plain,
parseable lines.
"""

import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "dropsync"


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with full exception info for errors."""
        result = super().format(record)

        if record.exc_info and not record.exc_text:
            import traceback

            result += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return result


# Map string level names to logging constants
LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """
    Parse logging level from string or int.

    Unknown names fall back to INFO.
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level_upper = level.upper()
        if level_upper in LEVEL_MAP:
            return LEVEL_MAP[level_upper]
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration for dropsync.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        format_string: Optional custom format string for the plain console handler
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite (default: 'a')
        console: Optional Rich Console instance to log to
        console_enabled: Whether to enable console logging (default: True)
        use_rich: Use RichHandler for the console (default: True)

    Returns:
        The package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER)

    # Only clear handlers from this specific logger, not root or child loggers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    console=console or Console(stderr=True),
                    level=level_int,
                    show_time=True,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    log_time_format="[%X]",
                    omit_repeated_times=False,
                )
            )
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level_int)
            console_handler.setFormatter(
                logging.Formatter(
                    format_string or "%(levelname)s: %(asctime)s - %(name)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


def setup_logging_from_config(config: dict[str, Any], console: Console | None = None) -> logging.Logger:
    """
    Setup logging from the ``logging`` section of a dropsync config.

    Recognised keys: ``level``, ``file``, ``file_mode``, ``format``,
    ``console_enabled``, ``console_type`` (``rich`` or ``plain``) and
    ``json`` (switches to structured JSON output).
    """
    logging_config = config.get("logging") or {}

    if logging_config.get("json"):
        from dropsync.observability.structured_logging import setup_structured_logging

        setup_structured_logging(level=str(logging_config.get("level", "INFO")), json_format=True)
        return logging.getLogger(ROOT_LOGGER)

    console_type = logging_config.get("console_type", "rich")
    return setup_logging(
        level=logging_config.get("level", logging.INFO),
        log_file=logging_config.get("file"),
        format_string=logging_config.get("format"),
        file_mode=logging_config.get("file_mode", "a"),
        console=console,
        console_enabled=logging_config.get("console_enabled", True),
        use_rich=console_type == "rich",
    )


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default: "dropsync")

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    # Ensure child loggers propagate to the package logger's handlers
    logger.propagate = True
    return logger
