"""
Logging helpers.

The library logs through ``loguru`` and never installs sinks on import;
applications call ``configure_logging`` once at startup.
"""

from .setup import (
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FORMAT,
    DEFAULT_LOG_LEVEL,
    ENVIRONMENT_CONFIGS,
    LogConfig,
    configure_logging,
    get_logger,
    json_formatter,
    normalize_environment,
)

__all__ = [
    "LogConfig",
    "configure_logging",
    "get_logger",
    "json_formatter",
    "normalize_environment",
    "ENVIRONMENT_CONFIGS",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_LOG_DIR",
]
