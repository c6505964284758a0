import fnmatch
import logging

import pytest
from typer.testing import CliRunner

from tiercache.domain.models.cache import CacheItem
from tiercache.domain.models.config import CacheConfig
from tiercache.infrastructure.cli.display import ConsoleDisplay
from tiercache.infrastructure.config import settings


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio.Redis the L2 tier uses.

    Values are kept as bytes and never expire on their own; ``ttls`` records
    the seconds passed to each SETEX.
    """

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.closed = False

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, seconds, value):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self.store[key] = value
        self.ttls[key] = seconds
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def make_item(clock):
    """Factory for CacheItems stamped with the fake clock's current time."""
    def _make(key="k" * 32, value="value", ttl=60_000, timestamp=None):
        stamp = clock() if timestamp is None else timestamp
        return CacheItem(key=key, value=value, timestamp=stamp, ttl=ttl, last_accessed=stamp, size=len(str(value)))
    return _make


@pytest.fixture
def cache_config(tmp_path):
    """Default configuration with the disk tier rooted in a temp directory."""
    return CacheConfig.from_dict({"l3": {"base_path": str(tmp_path / "l3")}})


@pytest.fixture
def mock_console_display(mocker):
    """Mocks the ConsoleDisplay built by the CLI callback."""
    mock = mocker.MagicMock(spec=ConsoleDisplay)
    mocker.patch('tiercache.main.ConsoleDisplay', return_value=mock)
    return mock


@pytest.fixture(autouse=True)
def reset_settings():
    """Each test starts with no loaded configuration or overrides."""
    settings.reset_configuration()
    yield
    settings.reset_configuration()


@pytest.fixture
def preserve_root_logger():
    """Restores root logger handlers replaced by setup_logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
