"""
Scheduling, dispatch and service wiring.
"""

from dropsync.service.dispatcher import Dispatcher
from dropsync.service.handlers import ConsumerHandler, LoggingConsumer
from dropsync.service.poller import Poller, PollerState
from dropsync.service.runner import SyncService, run_service

__all__ = [
    "ConsumerHandler",
    "Dispatcher",
    "LoggingConsumer",
    "Poller",
    "PollerState",
    "SyncService",
    "run_service",
]
