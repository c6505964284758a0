import asyncio
import re
import typing

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tiercache.core.services.cache_service import MultiLevelCacheService, create_multi_level_cache
from tiercache.domain.events.cache_events import ItemEvicted, PropagationFailed
from tiercache.domain.exceptions import CacheConfigError
from tiercache.domain.interfaces.cache import CacheTier
from tiercache.domain.models.cache import CacheItemMetadata
from tiercache.domain.models.common import CacheKey, JsonValue
from tiercache.domain.models.config import CacheConfig
from tiercache.infrastructure.cache.key_normalizer import normalize_key


@pytest.fixture
def events():
    return []


@pytest.fixture
def make_cache(cache_config, fake_redis, clock, events):
    def _make(**overrides):
        config = cache_config.merged(overrides)
        return MultiLevelCacheService(config=config, redis_client=fake_redis, clock=clock, event_listener=events.append)
    return _make


@pytest.fixture
def cache(make_cache):
    return make_cache()


def redis_key(raw):
    return f"cache:{normalize_key(raw)}"


# --- Basic protocol ---

async def test_set_then_get_returns_value(cache):
    assert await cache.set("user:1", {"name": "Ada"}) is True
    assert await cache.get("user:1") == {"name": "Ada"}
    await cache.flush()


async def test_get_before_set_returns_none(cache):
    assert await cache.get("never") is None
    stats = cache.get_stats()
    assert (stats.l1.misses, stats.l2.misses, stats.l3.misses) == (1, 1, 1)


async def test_delete_then_get_returns_none(cache):
    await cache.set("user:1", "x")
    await cache.flush()

    assert await cache.delete("user:1") is True
    assert await cache.get("user:1") is None


async def test_delete_of_missing_key_succeeds(cache):
    assert await cache.delete("never") is True


async def test_value_expires_after_ttl(cache, clock):
    await cache.set("session", "token", ttl=1000)
    await cache.flush()

    clock.advance(999)
    assert await cache.get("session") == "token"
    clock.advance(2)
    assert await cache.get("session") is None
    # Every tier saw the expired copy
    assert await cache.get("session", skip_l1=True) is None


async def test_default_ttl_comes_from_l2_config(make_cache, fake_redis):
    cache = make_cache(l2={"default_ttl": 120})
    await cache.set("k", "v")
    await cache.flush()
    assert fake_redis.ttls[redis_key("k")] == 120


async def test_unserializable_value_is_rejected(cache):
    assert await cache.set("bad", object()) is False
    assert await cache.get("bad") is None


async def test_metadata_and_priority_are_stored(cache, fake_redis):
    await cache.set("tagged", 1, metadata=CacheItemMetadata(source="test", tags=["t"]))
    await cache.set("urgent", 2, priority="critical")
    await cache.flush()

    tagged = await cache.l2.get(normalize_key("tagged"))
    urgent = await cache.l2.get(normalize_key("urgent"))
    assert tagged.metadata.source == "test"
    assert urgent.metadata.priority == "critical"


# --- Write strategies ---

async def test_write_back_propagates_in_background(cache, fake_redis):
    await cache.set("k", "v")
    await cache.flush()

    assert redis_key("k") in fake_redis.store
    assert cache.l3.file_path(normalize_key("k")).exists()


async def test_write_through_reaches_every_tier(make_cache, fake_redis):
    cache = make_cache(strategy={"write_through": True, "write_back": False})
    assert await cache.set("k", "durable") is True

    assert redis_key("k") in fake_redis.store
    assert await cache.get("k", skip_l1=True, skip_l2=True) == "durable"
    assert cache.get_stats().l3.hits == 1


async def test_write_through_reports_tier_failure(make_cache, fake_redis, mocker):
    cache = make_cache(strategy={"write_through": True, "write_back": False})
    fake_redis.setex = mocker.AsyncMock(side_effect=RedisConnectionError("down"))

    assert await cache.set("k", "v") is False
    # Later tiers are still written
    assert cache.l3.file_path(normalize_key("k")).exists()


async def test_concurrent_write_through_of_one_key_succeeds(make_cache):
    cache = make_cache(strategy={"write_through": True, "write_back": False})
    results = await asyncio.gather(*(cache.set("k", n) for n in range(5)))

    assert results == [True] * 5
    assert await cache.get("k", skip_l1=True, skip_l2=True) in range(5)


async def test_l1_only_strategy_keeps_lower_tiers_untouched(make_cache, fake_redis):
    cache = make_cache(strategy={"write_through": False, "write_back": False})
    await cache.set("k", "v")
    await cache.flush()
    assert fake_redis.store == {}


async def test_propagation_failure_emits_event(cache, fake_redis, mocker, events):
    fake_redis.setex = mocker.AsyncMock(side_effect=RedisConnectionError("down"))

    assert await cache.set("k", "v") is True
    await cache.flush()

    failures = [e for e in events if isinstance(e, PropagationFailed)]
    assert len(failures) == 1
    assert failures[0].level == "l2"
    assert failures[0].key == normalize_key("k")
    assert cache.l3.file_path(normalize_key("k")).exists()


async def test_skip_flags_limit_target_tiers(cache, fake_redis):
    await cache.set("k", "v", skip_l2=True, skip_l3=True)
    await cache.flush()
    assert fake_redis.store == {}
    assert await cache.get("k") == "v"


# --- Promotion between tiers ---

async def test_l2_hit_is_copied_to_l1(cache):
    await cache.set("k", "v", skip_l1=True)
    await cache.flush()
    assert len(cache.l1) == 0

    assert await cache.get("k") == "v"
    assert len(cache.l1) == 1
    stats = cache.get_stats()
    assert (stats.l1.misses, stats.l2.hits) == (1, 1)


async def test_l3_hit_is_copied_to_upper_tiers(cache, fake_redis, make_item):
    key = normalize_key("cold")
    await cache.l3.set(key, make_item(key=key, value="from disk"))

    assert await cache.get("cold") == "from disk"
    assert redis_key("cold") in fake_redis.store
    assert len(cache.l1) == 1


async def test_no_promotion_without_write_back(make_cache, fake_redis, make_item):
    cache = make_cache(strategy={"write_through": True, "write_back": False})
    key = normalize_key("cold")
    await cache.l3.set(key, make_item(key=key, value="from disk"))

    assert await cache.get("cold") == "from disk"
    assert fake_redis.store == {}
    assert len(cache.l1) == 0


# --- Capacity ---

async def test_l1_capacity_evicts_and_reports(make_cache, events):
    cache = make_cache(l1={"max_size": 2})
    for key in ("k1", "k2", "k3"):
        await cache.set(key, key.upper())
    await cache.flush()

    assert len(cache.l1) == 2
    evictions = [e for e in events if isinstance(e, ItemEvicted)]
    assert [e.key for e in evictions] == [normalize_key("k1")]

    # The evicted key is still served from L2
    assert await cache.get("k1") == "K1"
    stats = cache.get_stats()
    assert stats.l1.misses == 1
    assert stats.l2.hits == 1
    assert stats.l1.size == 2
    assert stats.l1.max_size == 2


# --- Bulk operations ---

async def test_mget_maps_every_key(cache):
    await cache.mset({"a": 1, "b": [2]})

    result = await cache.mget(["a", "b", "missing"])
    assert result == {"a": 1, "b": [2], "missing": None}
    await cache.flush()


async def test_mget_spans_multiple_batches(cache):
    keys = [f"k{i}" for i in range(250)]
    await cache.mset({key: i for i, key in enumerate(keys)})

    result = await cache.mget(keys)
    assert len(result) == 250
    assert result["k249"] == 249
    await cache.flush()


async def test_mset_fails_if_any_value_fails(cache):
    assert await cache.mset({"ok": 1, "bad": object()}) is False
    assert await cache.get("ok") == 1
    await cache.flush()


async def test_warmup_promotes_lower_tier_entries(cache, make_item):
    key = normalize_key("warm")
    await cache.l3.set(key, make_item(key=key, value="w"))

    await cache.warmup(["warm", "missing"])
    assert await cache.l1.get(key) is not None


# --- Invalidation and clearing ---

async def test_invalidate_pattern_removes_matching_l1_and_l2_entries(cache, fake_redis):
    await cache.set("user:1", "a")
    await cache.set("user:2", "b")
    await cache.flush()

    count = await cache.invalidate_pattern(normalize_key("user:1"))
    assert count == 2
    assert await cache.get("user:1", skip_l3=True) is None
    assert await cache.get("user:2") == "b"
    assert redis_key("user:2") in fake_redis.store


async def test_invalidate_pattern_rejects_bad_regex(cache):
    with pytest.raises(re.error):
        await cache.invalidate_pattern("([")


class DictTier(CacheTier):
    """Minimal third-party L1: substring invalidation, no synchronous size."""

    level = "l1"

    def __init__(self):
        self.items = {}

    async def get(self, key):
        return self.items.get(key)

    async def set(self, key, item):
        self.items[key] = item
        return True

    async def delete(self, key):
        self.items.pop(key, None)
        return True

    async def clear(self):
        self.items.clear()
        return True

    async def size(self):
        return len(self.items)

    async def invalidate(self, pattern):
        matched = [key for key in self.items if pattern in key]
        for key in matched:
            del self.items[key]
        return len(matched)


async def test_injected_l1_takes_part_in_invalidation_and_stats(cache_config, fake_redis, clock):
    l1 = DictTier()
    cache = MultiLevelCacheService(config=cache_config, redis_client=fake_redis, clock=clock, l1=l1)
    await cache.set("user:1", "a")
    await cache.set("user:2", "b")
    await cache.flush()

    await cache.get_size()
    assert cache.get_stats().l1.size == 2

    assert await cache.invalidate_pattern(normalize_key("user:1")) == 2
    assert normalize_key("user:1") not in l1.items
    assert normalize_key("user:2") in l1.items


async def test_clear_single_level(cache):
    await cache.set("k", "v")
    await cache.flush()

    assert await cache.clear("l1") is True
    assert len(cache.l1) == 0
    assert await cache.get("k") == "v"


async def test_clear_all_levels(cache, fake_redis):
    await cache.set("k", "v")
    await cache.flush()

    assert await cache.clear() is True
    assert fake_redis.store == {}
    assert await cache.get("k") is None
    assert cache.get_operations(limit=5)[-2].operation == "clear"


async def test_clear_rejects_unknown_level(cache):
    with pytest.raises(ValueError):
        await cache.clear("l4")


# --- Introspection ---

async def test_hit_rate_is_zero_without_traffic(cache):
    stats = cache.get_stats()
    assert stats.overall.overall_hit_rate == 0.0
    assert stats.l1.hit_rate == 0.0


async def test_get_size_counts_each_tier(cache):
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.flush()

    sizes = await cache.get_size()
    assert sizes == {"l1": 2, "l2": 2, "l3": 2, "total": 6}
    assert cache.get_stats().l3.size == 2


async def test_operations_are_logged_oldest_first(cache):
    await cache.set("a", 1)
    await cache.get("a")
    await cache.get("missing")

    ops = cache.get_operations()
    assert [op.operation for op in ops] == ["set", "get", "get"]
    assert [op.success for op in ops] == [True, True, False]
    assert ops[0].size == 1
    assert len(cache.get_operations(limit=1)) == 1
    await cache.flush()


async def test_health_check_reports_each_tier(cache):
    report = await cache.health_check()
    assert {level: info["status"] for level, info in report.items()} == {
        "l1": "healthy", "l2": "healthy", "l3": "healthy",
    }


async def test_health_check_marks_disabled_tiers(make_cache):
    cache = make_cache(l2={"enabled": False}, l3={"enabled": False})
    report = await cache.health_check()
    assert report["l2"] == {"enabled": False, "status": "disabled"}
    assert report["l3"]["status"] == "disabled"


# --- Convenience helpers ---

async def test_get_or_set_calls_factory_once(cache):
    calls = []

    async def load():
        calls.append(1)
        return {"loaded": True}

    assert await cache.get_or_set("cfg", load) == {"loaded": True}
    assert await cache.get_or_set("cfg", load) == {"loaded": True}
    assert len(calls) == 1
    await cache.flush()


async def test_cached_decorator_keys_on_arguments(cache):
    calls = []

    @cache.cached("square")
    async def square(n):
        calls.append(n)
        return n * n

    assert await square(3) == 9
    assert await square(3) == 9
    assert await square(4) == 16
    assert calls == [3, 4]
    await cache.flush()


# --- Lifecycle and construction ---

async def test_close_drains_pending_writes_and_clears_l1(cache, fake_redis):
    await cache.set("k", "v")
    await cache.close()

    assert redis_key("k") in fake_redis.store
    assert len(cache.l1) == 0
    # Second close is a no-op
    await cache.close()


async def test_context_manager_runs_cleanup_daemon(make_cache):
    async with make_cache() as cache:
        assert cache._cleanup.running
    assert not cache._cleanup.running


async def test_tier_exceptions_are_treated_as_misses(cache, mocker):
    mocker.patch.object(cache.l1, "get", side_effect=RuntimeError("boom"))
    await cache.set("k", "v", skip_l1=True)
    await cache.flush()

    assert await cache.get("k") == "v"


def test_l2_requires_a_client(cache_config):
    with pytest.raises(CacheConfigError):
        MultiLevelCacheService(config=cache_config)


def test_l2_disabled_needs_no_client(cache_config):
    cache = MultiLevelCacheService(config=cache_config.merged({"l2": {"enabled": False}}))
    assert cache.l2 is None


def test_factory_deep_merges_overrides(fake_redis, tmp_path):
    cache = create_multi_level_cache(fake_redis, {"l1": {"maxSize": 5}, "l3": {"basePath": str(tmp_path)}})
    assert cache.config.l1.max_size == 5
    assert cache.config.l1.max_age == CacheConfig().l1.max_age
    assert cache.config.l3.base_path == str(tmp_path)


def test_public_api_is_typed_with_json_values():
    assert typing.get_type_hints(MultiLevelCacheService.set)["value"] == JsonValue
    assert typing.get_type_hints(MultiLevelCacheService.get)["return"] == typing.Optional[JsonValue]
    assert typing.get_type_hints(MultiLevelCacheService.mset)["items"] == typing.Mapping[CacheKey, JsonValue]
