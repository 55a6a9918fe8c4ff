"""
Configuration management.

YAML loading, environment substitution and validated settings.
"""

from dropsync.config.loader import Config, load_config
from dropsync.config.settings import DispatchOptions, ServiceOptions, SyncOptions, SyncSettings, build_settings

__all__ = [
    "Config",
    "load_config",
    "build_settings",
    "SyncSettings",
    "SyncOptions",
    "DispatchOptions",
    "ServiceOptions",
]
