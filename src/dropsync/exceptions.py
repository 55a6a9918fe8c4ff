"""
dropsync exception hierarchy.

All domain-specific exceptions inherit from DropsyncError, making it easy
to catch any adapter error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    DropsyncError
    ├── ConfigurationError        - config loading, parsing, validation
    ├── RemoteError               - remote file store failures
    │   ├── RemoteConnectionError - auth/network failure opening a session
    │   ├── ListError             - remote directory listing failed
    │   └── TransferError         - single-entry download failed
    │       └── RemoteNotFoundError
    ├── LocalIOError              - staging directory unusable
    ├── ManifestError             - manifest file unreadable / unwritable
    ├── DispatchError             - consumer hand-off
    │   ├── ConsumerError         - handler raised
    │   ├── DispatcherClosedError - put() after stop()
    │   └── UndeliveredMessagesError
    └── EscalationError           - too many consecutive failed cycles
"""

from __future__ import annotations

from typing import Any


class DropsyncError(Exception):
    """Base exception for all dropsync errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(DropsyncError):
    """Raised when configuration loading, parsing, or validation fails."""

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        super().__init__(message, details={"errors": list(errors or [])})
        self.errors = list(errors or [])


# --- Remote store ------------------------------------------------------------


class RemoteError(DropsyncError):
    """Raised when the remote file store misbehaves."""


class RemoteConnectionError(RemoteError):
    """Raised when a session to the remote store cannot be opened.

    Covers both authentication and network failures. The whole poll cycle
    is aborted and retried on the next tick.
    """


# Short alias mirroring the builtin name without shadowing it
ConnectionError_ = RemoteConnectionError


class ListError(RemoteError):
    """Raised when the remote directory cannot be listed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Cannot list '{path}': {message}", details={"path": path})
        self.path = path


class TransferError(RemoteError):
    """Raised when a single remote entry cannot be downloaded."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"Transfer of '{name}' failed: {message}", details={"name": name})
        self.name = name


class RemoteNotFoundError(TransferError):
    """Raised when a listed entry disappeared before it could be read."""

    def __init__(self, name: str) -> None:
        super().__init__(name, "no such remote file")


# --- Local storage -----------------------------------------------------------


class LocalIOError(DropsyncError):
    """Raised when the staging directory cannot be created or written.

    Indicates a misconfiguration rather than a transient condition.
    """

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Staging path '{path}' unusable: {message}", details={"path": path})
        self.path = path


class ManifestError(DropsyncError):
    """Raised when a persisted manifest cannot be read or written."""


# --- Dispatch ----------------------------------------------------------------


class DispatchError(DropsyncError):
    """Raised for failures handing staged files to the consumer."""


class ConsumerError(DispatchError):
    """Wraps an exception raised by a consumer handler."""

    def __init__(self, name: str, *, cause: BaseException | None = None) -> None:
        super().__init__(f"Consumer failed for '{name}': {cause}", details={"name": name})
        self.name = name
        if cause is not None:
            self.__cause__ = cause


class DispatcherClosedError(DispatchError):
    """Raised when a message is put on a stopped dispatcher."""


class UndeliveredMessagesError(DispatchError):
    """Raised when shutdown leaves staged files undelivered."""

    def __init__(self, undelivered: list[Any]) -> None:
        names = [getattr(item, "original_name", str(item)) for item in undelivered]
        super().__init__(
            f"{len(undelivered)} staged file(s) not delivered before shutdown: {names}",
            details={"undelivered": names},
        )
        self.undelivered = list(undelivered)


# --- Escalation --------------------------------------------------------------


class EscalationError(DropsyncError):
    """Raised when consecutive cycle failures reach the configured limit."""

    def __init__(self, failures: int, last_error: BaseException | None = None) -> None:
        super().__init__(
            f"Giving up after {failures} consecutive failed poll cycles: {last_error}",
            details={"failures": failures},
        )
        self.failures = failures
        self.last_error = last_error
        if last_error is not None:
            self.__cause__ = last_error
