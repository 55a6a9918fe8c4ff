"""
Consumer handlers receiving staged files.
"""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol, Union

from dropsync.sync.types import StagedFile
from dropsync.utils.logging import get_logger

logger = get_logger("dropsync.consumer")


class ConsumerHandler(Protocol):
    """
    Receives each newly staged file, at least once.

    ``handle`` may be a plain function (run in a worker thread) or a
    coroutine function (awaited on the event loop).
    """

    def handle(self, staged: StagedFile) -> None | Awaitable[None]: ...


HandlerLike = Union[ConsumerHandler, Callable[[StagedFile], None], Callable[[StagedFile], Awaitable[None]]]


def resolve_handler(handler: HandlerLike) -> Callable[[StagedFile], None | Awaitable[None]]:
    """Return the callable to invoke for a handler object or plain callable."""
    handle = getattr(handler, "handle", None)
    if callable(handle):
        return handle
    if callable(handler):
        return handler
    raise TypeError(f"Consumer handler must be callable or define handle(), got {type(handler).__name__}")


def is_async_handler(fn: Callable) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))


def load_handler(spec: str) -> HandlerLike:
    """
    Import a handler from ``package.module:attribute``.

    Classes are instantiated without arguments; functions and instances
    are returned as they are.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Handler must look like 'package.module:name', got {spec!r}")
    module = importlib.import_module(module_name)
    try:
        target = getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'") from e
    if inspect.isclass(target):
        target = target()
    resolve_handler(target)
    return target


class LoggingConsumer:
    """Default consumer: logs every received file."""

    def handle(self, staged: StagedFile) -> None:
        logger.info(f"Received {staged.original_name} file.")
