import pytest
from pydantic import ValidationError

from throttlekit.config import get_settings, reload_settings_cache
from throttlekit.exceptions import RateLimitConfigError
from throttlekit.middleware.rate_limiter import RateLimitConfig, Strategy


def test_settings_load():
    reload_settings_cache()
    s = get_settings()
    assert s.APP_ENV == "test"
    assert s.RATE_LIMIT_LIMIT == 60
    assert s.RATE_LIMIT_STRATEGY == "sliding_window"
    assert s.RATE_LIMIT_HEADERS is True
    assert s.RATE_LIMIT_FAIL_OPEN is False
    assert s.RATE_LIMIT_BACKEND == "memory"


def test_settings_cached_until_reload(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("RATE_LIMIT_WINDOW", "30")
    assert get_settings() is first

    reload_settings_cache()
    assert get_settings().RATE_LIMIT_WINDOW == 30


def test_settings_read_env_file(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("RATE_LIMIT_LIMIT=7\nRATE_LIMIT_BACKEND=redis\n")
    monkeypatch.chdir(tmp_path)
    reload_settings_cache()

    s = get_settings()
    assert s.RATE_LIMIT_LIMIT == 7
    assert s.RATE_LIMIT_BACKEND == "redis"


@pytest.mark.parametrize("name,value", [("RATE_LIMIT_LIMIT", "0"), ("RATE_LIMIT_BACKEND", "disk")])
def test_settings_validation(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    reload_settings_cache()
    with pytest.raises(RateLimitConfigError) as exc_info:
        get_settings()
    assert isinstance(exc_info.value.__cause__, ValidationError)


def test_rate_limit_config_from_settings(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_STRATEGY", "fixed_window")
    monkeypatch.setenv("RATE_LIMIT_HEADERS", "false")
    reload_settings_cache()

    config = RateLimitConfig.from_settings(get_settings(), limit=3)

    assert config.limit == 3
    assert config.strategy is Strategy.FIXED_WINDOW
    assert config.headers is False
    assert config.identifier == "ip"
