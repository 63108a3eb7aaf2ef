"""
Configuration package for cbshell.

This package provides shell settings with environment variable support and
helpers for reading and writing the cluster configuration file.
"""

from .settings import (
    Settings,
    TimeoutDefaults,
    ExecutionConfig,
    LoggingConfig,
    LogLevel,
    settings,
    get_settings,
    reload_settings
)

from .utils import (
    parse_config,
    dump_config
)

__all__ = [
    # Settings classes
    "Settings",
    "TimeoutDefaults",
    "ExecutionConfig",
    "LoggingConfig",

    # Enums
    "LogLevel",

    # Settings instances and functions
    "settings",
    "get_settings",
    "reload_settings",

    # Utility functions
    "parse_config",
    "dump_config"
]
