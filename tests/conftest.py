"""Shared fixtures: isolated settings, a fakeredis server, a private manager."""

import functools

import fakeredis
import pytest

from pooled_redis.client import PooledRedis
from pooled_redis.config import get_settings
from pooled_redis.manager import PoolManager

_SETTINGS_ENV = (
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_DB",
    "REDIS_PASSWORD",
    "POOL_MAX_SIZE",
    "POOL_MIN_SIZE",
    "POOL_IDLE_TIMEOUT_MS",
    "POOL_WARMUP_STRICT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep the developer's environment and any .env file out of the tests."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_factory(server):
    return functools.partial(fakeredis.FakeAsyncRedis, server=server)


@pytest.fixture
def raw(server):
    """Direct fakeredis client on the same server, for out-of-band checks."""
    return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)


@pytest.fixture
def manager():
    return PoolManager()


@pytest.fixture
async def redis(manager, fake_factory):
    client = PooledRedis(
        manager=manager,
        client_factory=fake_factory,
        pool_max_size=4,
        pool_min_size=1,
    )
    yield client
    await client.disconnect()
