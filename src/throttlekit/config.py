from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import RateLimitConfigError

_DEFAULTS: Dict[str, str] = {
    "APP_ENV": "dev",
    "LOG_LEVEL": "INFO",
    "RATE_LIMIT_LIMIT": "60",
    "RATE_LIMIT_WINDOW": "60",
    "RATE_LIMIT_STRATEGY": "sliding_window",
    "RATE_LIMIT_IDENTIFIER": "ip",
    "RATE_LIMIT_HEADERS": "true",
    "RATE_LIMIT_FAIL_OPEN": "false",
    "RATE_LIMIT_BACKEND": "memory",
    "RATE_LIMIT_REDIS_URL": "redis://localhost:6379",
    "RATE_LIMIT_KEY_PREFIX": "throttlekit:",
}


def _find_env_file() -> Path | None:
    cur = Path.cwd()
    for _ in range(10):
        candidate = cur / ".env"
        if candidate.exists():
            return candidate
        if cur.parent == cur:
            break
        cur = cur.parent
    return None


def load_config() -> Dict[str, str]:
    data = dict(_DEFAULTS)
    env_file = _find_env_file()
    if env_file:
        data.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    data.update({k: v for k, v in os.environ.items() if v is not None})
    return data


class Settings(BaseModel):
    APP_ENV: str
    LOG_LEVEL: str
    RATE_LIMIT_LIMIT: int = Field(gt=0)
    RATE_LIMIT_WINDOW: int = Field(gt=0)
    RATE_LIMIT_STRATEGY: str
    RATE_LIMIT_IDENTIFIER: str
    RATE_LIMIT_HEADERS: bool
    RATE_LIMIT_FAIL_OPEN: bool
    RATE_LIMIT_BACKEND: str
    RATE_LIMIT_REDIS_URL: str
    RATE_LIMIT_KEY_PREFIX: str

    model_config = ConfigDict(extra="ignore")

    @field_validator("RATE_LIMIT_BACKEND")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in {"memory", "redis"}:
            raise ValueError(f"RATE_LIMIT_BACKEND must be 'memory' or 'redis', got '{value}'")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    raw = load_config()
    try:
        return Settings(**{k: v for k, v in raw.items() if k in _DEFAULTS})
    except ValidationError as e:
        raise RateLimitConfigError(f"Invalid rate limit settings: {e}") from e


def reload_settings_cache() -> None:
    get_settings.cache_clear()  # type: ignore[attr-defined]
