import pytest

from throttlekit.cache import MemoryCounterStore
from throttlekit.config import reload_settings_cache
from throttlekit.middleware.rate_limiter.testing import ManualClock

# Aligned to a 60 second boundary so fixed window arithmetic is easy to read
START = 1_000_020.0


@pytest.fixture(autouse=True)
def _set_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reload_settings_cache()
    yield
    reload_settings_cache()


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def store(clock):
    return MemoryCounterStore(clock=clock)
