from __future__ import annotations

import pytest
from redis.asyncio import RedisError

from taskboard.cache.decorators import async_cached, async_cached_expire
from taskboard.cache.layer import CacheLayer
from taskboard.core.config import Settings

from .fakes import FakeClock, FakeRedis


class Counter:
    """Loader that counts how often the backing source is hit."""

    def __init__(self, value) -> None:
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


@pytest.fixture()
def cache_settings() -> Settings:
    return Settings(tasks_cache_ttl_seconds=30, cache_namespace="test:")


@pytest.mark.asyncio
async def test_read_through_populates_on_miss_only(cache_settings: Settings) -> None:
    clock = FakeClock()
    redis = FakeRedis(clock)
    cache = CacheLayer(cache_settings, redis=redis)
    loader = Counter([{"id": 1, "description": "buy milk"}])

    assert await cache.get("tasks", loader=loader) == [{"id": 1, "description": "buy milk"}]
    assert await cache.get("tasks", loader=loader) == [{"id": 1, "description": "buy milk"}]

    assert loader.calls == 1
    assert "test:tasks" in redis.data
    assert cache.get_stats()["hits"] == 1
    assert cache.get_stats()["misses"] == 1


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(cache_settings: Settings) -> None:
    clock = FakeClock()
    cache = CacheLayer(cache_settings, redis=FakeRedis(clock))
    loader = Counter(["a"])

    await cache.get("tasks", loader=loader)
    clock.advance(29)
    await cache.get("tasks", loader=loader)
    assert loader.calls == 1

    clock.advance(2)
    await cache.get("tasks", loader=loader)
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_none_is_not_cached(cache_settings: Settings) -> None:
    redis = FakeRedis(FakeClock())
    cache = CacheLayer(cache_settings, redis=redis)
    loader = Counter(None)

    assert await cache.get("missing", loader=loader) is None
    assert await cache.get("missing") is None
    assert redis.data == {}


@pytest.mark.asyncio
async def test_redis_errors_bypass_to_loader(cache_settings: Settings) -> None:
    redis = FakeRedis(FakeClock())
    cache = CacheLayer(cache_settings, redis=redis)
    await cache.init_cache()
    redis.down = True
    loader = Counter(["fresh"])

    assert await cache.get("tasks", loader=loader) == ["fresh"]

    assert loader.calls == 1
    # get and set each failed
    assert cache.get_stats()["errors"] == 2


@pytest.mark.asyncio
async def test_failed_delete_is_raised(cache_settings: Settings) -> None:
    redis = FakeRedis(FakeClock())
    cache = CacheLayer(cache_settings, redis=redis)
    await cache.set("tasks", ["stale"])
    redis.failing = {"delete"}

    with pytest.raises(RedisError):
        await cache.delete("tasks")
    assert cache.get_stats()["errors"] == 1


@pytest.mark.asyncio
async def test_unreachable_redis_degrades_to_local_cache(cache_settings: Settings) -> None:
    clock = FakeClock()
    redis = FakeRedis(clock)
    redis.down = True
    cache = CacheLayer(cache_settings, redis=redis, timer=clock)
    loader = Counter({"n": 1})

    await cache.init_cache()
    assert cache.backend == "local"
    assert redis.closed

    await cache.get("k", loader=loader)
    await cache.get("k", loader=loader)
    assert loader.calls == 1

    await cache.delete("k")
    await cache.get("k", loader=loader)
    assert loader.calls == 2

    clock.advance(31)
    await cache.get("k", loader=loader)
    assert loader.calls == 3


@pytest.mark.asyncio
async def test_local_mode_reconnects_after_retry_interval(cache_settings: Settings) -> None:
    clock = FakeClock()
    redis = FakeRedis(clock)
    redis.down = True
    cache = CacheLayer(cache_settings, redis=redis, timer=clock)
    await cache.init_cache()
    assert cache.degraded

    redis.down = False
    clock.advance(10)
    await cache.get("k", loader=Counter(1))
    assert cache.backend == "local"

    clock.advance(cache_settings.redis_retry_seconds)
    await cache.get("k", loader=Counter(2))
    assert cache.backend == "redis"
    assert not cache.degraded
    assert "test:k" in redis.data


class Service:
    def __init__(self, cache: CacheLayer) -> None:
        self.cache = cache
        self.rows = ["a"]
        self.loads = 0

    @async_cached(lambda self, *_, **__: "rows")
    async def list_rows(self):
        self.loads += 1
        return list(self.rows)

    @async_cached_expire(lambda self, *_, **__: "rows")
    async def add_row(self, value: str):
        self.rows.append(value)
        return value

    @async_cached_expire(lambda self, *_, **__: "rows")
    async def fail(self):
        raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_decorators_invalidate_after_write(cache_settings: Settings) -> None:
    redis = FakeRedis(FakeClock())
    service = Service(CacheLayer(cache_settings, redis=redis))

    assert await service.list_rows() == ["a"]
    assert await service.list_rows() == ["a"]
    assert service.loads == 1

    assert await service.add_row("b") == "b"
    assert await service.list_rows() == ["a", "b"]
    assert service.loads == 2

    await service.add_row("c")
    assert "test:rows" not in redis.data


@pytest.mark.asyncio
async def test_failed_write_keeps_cache(cache_settings: Settings) -> None:
    redis = FakeRedis(FakeClock())
    service = Service(CacheLayer(cache_settings, redis=redis))
    await service.list_rows()

    with pytest.raises(RuntimeError):
        await service.fail()

    assert "test:rows" in redis.data
