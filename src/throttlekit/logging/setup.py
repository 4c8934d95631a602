"""
Logging Setup and Configuration Module.

Configures loguru sinks for applications embedding the rate limiter:
console and rotating file output, plain or structured JSON, with
environment-specific defaults.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

# Default configuration
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
DEFAULT_LOG_DIR = "logs"
DEFAULT_RETENTION = "30 days"
DEFAULT_ROTATION = "1 day"

# Environment-specific configurations
ENVIRONMENT_CONFIGS = {
    "development": {
        "level": "DEBUG",
        "console": True,
        "file": False,
        "structured": False,
        "colorize": True,
        "backtrace": True,
        "diagnose": True,
    },
    "testing": {
        "level": "WARNING",
        "console": True,
        "file": False,
        "structured": False,
        "colorize": False,
        "backtrace": False,
        "diagnose": False,
    },
    "staging": {
        "level": "INFO",
        "console": True,
        "file": True,
        "structured": True,
        "colorize": False,
        "backtrace": True,
        "diagnose": False,
    },
    "production": {
        "level": "WARNING",
        "console": True,
        "file": True,
        "structured": True,
        "colorize": False,
        "backtrace": False,
        "diagnose": False,
    },
}

ENVIRONMENT_ALIASES = {
    "dev": "development",
    "test": "testing",
    "prod": "production",
}

_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass
class LogConfig:
    """Configuration for logging setup."""

    level: str = DEFAULT_LOG_LEVEL
    console: bool = True
    file: bool = False
    structured: bool = False
    colorize: bool = True
    backtrace: bool = True
    diagnose: bool = True
    log_dir: str = DEFAULT_LOG_DIR
    retention: str = DEFAULT_RETENTION
    rotation: str = DEFAULT_ROTATION
    format_string: Optional[str] = None
    extra_fields: Dict[str, Any] = field(default_factory=dict)


def normalize_environment(environment: Optional[str]) -> str:
    """Map an environment name (or alias) onto a known configuration."""
    name = (environment or "development").lower()
    name = ENVIRONMENT_ALIASES.get(name, name)
    return name if name in ENVIRONMENT_CONFIGS else "development"


def json_formatter(record) -> str:
    """
    JSON formatter for structured logging.

    The serialized entry is stashed in ``record["extra"]`` and the returned
    template prints it verbatim, so braces in messages are never reparsed.
    """
    log_entry = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "logger": record["name"],
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }

    if record["exception"]:
        log_entry["exception"] = {
            "type": record["exception"].type.__name__,
            "value": str(record["exception"].value),
        }

    extra_fields = {k: v for k, v in record["extra"].items() if k != "serialized"}
    if extra_fields:
        log_entry["extra"] = extra_fields

    record["extra"]["serialized"] = json.dumps(log_entry, default=str, ensure_ascii=False)
    return "{extra[serialized]}\n"


def setup_console_logging(config: LogConfig) -> Optional[int]:
    """Setup console logging handler."""
    if not config.console:
        return None

    if config.structured:
        return logger.add(
            sys.stdout,
            level=config.level,
            format=json_formatter,
            colorize=False,
            backtrace=config.backtrace,
            diagnose=config.diagnose,
        )
    return logger.add(
        sys.stdout,
        level=config.level,
        format=config.format_string or DEFAULT_LOG_FORMAT,
        colorize=config.colorize,
        backtrace=config.backtrace,
        diagnose=config.diagnose,
    )


def setup_file_logging(config: LogConfig) -> Optional[int]:
    """Setup the rotating application log file."""
    if not config.file:
        return None

    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    return logger.add(
        str(log_dir / "throttlekit.log"),
        level=config.level,
        format=json_formatter if config.structured else (config.format_string or DEFAULT_LOG_FORMAT),
        rotation=config.rotation,
        retention=config.retention,
        compression="gz",
        backtrace=config.backtrace,
        diagnose=config.diagnose,
    )


def configure_logging(
    config: Optional[Union[LogConfig, Dict[str, Any]]] = None,
    environment: Optional[str] = None,
) -> LogConfig:
    """
    Configure logging based on configuration and environment.

    Args:
        config: Logging configuration (LogConfig or dict)
        environment: Environment name for default configuration,
            read from ``APP_ENV`` when omitted

    Returns:
        LogConfig: The final configuration used
    """
    # Remove all existing handlers
    logger.remove()

    environment = normalize_environment(environment or os.getenv("APP_ENV"))
    env_config = ENVIRONMENT_CONFIGS[environment]

    if config is None:
        final_config = LogConfig(**env_config)
    elif isinstance(config, dict):
        final_config = LogConfig(**{**env_config, **config})
    else:
        final_config = config

    # Override with environment variables
    final_config.level = os.getenv("LOG_LEVEL", final_config.level).upper()
    final_config.log_dir = os.getenv("LOG_DIR", final_config.log_dir)
    if os.getenv("LOG_JSON"):
        final_config.structured = os.getenv("LOG_JSON", "").lower() in _TRUE_VALUES

    if final_config.extra_fields:
        logger.configure(extra=final_config.extra_fields)

    setup_console_logging(final_config)
    setup_file_logging(final_config)

    logger.info(
        f"Logging configured for {environment} environment "
        f"(level={final_config.level}, structured={final_config.structured})"
    )
    return final_config


def get_logger(name: Optional[str] = None):
    """
    Get a logger instance bound to a name.

    Args:
        name: Logger name (defaults to "throttlekit")

    Returns:
        Bound loguru logger
    """
    return logger.bind(logger_name=name or "throttlekit")
