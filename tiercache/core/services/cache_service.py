"""Multi-level cache coordinator.

`MultiLevelCacheService` presents L1 (memory), L2 (Redis) and L3 (disk) as
one cache. Reads walk the tiers strictly in order and, under the write-back
strategy, copy a lower-tier hit into the tiers above it. Writes either go to
every tier in sequence (write-through) or to L1 only, with L2/L3 written by
a detached background task (write-back).

Tier failures never reach the caller: a failing read counts as a miss for
that tier and a failing write or delete makes the overall result False.
Background propagation failures are logged and published as
`PropagationFailed` events.

Lifecycle: construct, ``await start()`` (or ``async with``), use, ``await close()``.
"""

import asyncio
import functools
import inspect
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, TypeVar, Union, cast

from tiercache.core.services.cleanup_daemon import CleanupDaemon
from tiercache.core.services.statistics import CacheStatistics, OperationLog
from tiercache.domain.events.cache_events import CacheEvent, ItemEvicted, PropagationFailed
from tiercache.domain.exceptions import CacheConfigError, CacheSerializationError
from tiercache.domain.interfaces.cache import CacheService, CacheTier
from tiercache.domain.models.cache import CacheItem, CacheItemMetadata, CacheOperation, CacheStats
from tiercache.domain.models.common import (
    CACHE_LEVELS,
    CacheKey,
    CacheLevel,
    JsonValue,
    NormalizedKey,
    OperationName,
    Priority,
)
from tiercache.domain.models.config import CacheConfig
from tiercache.infrastructure.cache.codec import value_size
from tiercache.infrastructure.cache.disk_tier import DiskTier
from tiercache.infrastructure.cache.key_normalizer import build_key, normalize_key
from tiercache.infrastructure.cache.memory_tier import MemoryTier
from tiercache.infrastructure.cache.redis_tier import RedisTier

logger = logging.getLogger(__name__)

# Value type of a get_or_set call site; anything the codec can serialize
T = TypeVar("T", bound=JsonValue)

MGET_BATCH_SIZE = 100


def _epoch_millis() -> float:
    return time.time() * 1000


class MultiLevelCacheService(CacheService):
    """Tier coordinator implementing the multi-level read/write protocol."""

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        redis_client: Any = None,
        clock: Optional[Callable[[], float]] = None,
        event_listener: Optional[Callable[[CacheEvent], None]] = None,
        l1: Optional[CacheTier] = None,
        l2: Optional[CacheTier] = None,
        l3: Optional[CacheTier] = None,
    ):
        """Initializes the cache and its enabled tiers.

        Args:
            config: Cache configuration; defaults are used when None.
            redis_client: redis.asyncio client for L2. Required when L2 is
                enabled and no ``l2`` tier is supplied.
            clock: Returns the current time in epoch milliseconds. Shared
                with every tier so expiry can be tested without sleeping.
            event_listener: Receives eviction, propagation and cleanup events.
            l1, l2, l3: Pre-built tiers replacing the default adapters.

        Raises:
            CacheConfigError: If the configuration is invalid.
        """
        self.config = config or CacheConfig()
        self.config.validate()
        self._clock = clock or _epoch_millis
        self._event_listener = event_listener

        self.l1: Optional[CacheTier] = None
        self.l2: Optional[CacheTier] = None
        self.l3: Optional[CacheTier] = None

        if self.config.l1.enabled:
            self.l1 = l1 if l1 is not None else MemoryTier(
                max_size=self.config.l1.max_size,
                max_age=self.config.l1.max_age,
                update_age_on_get=self.config.l1.update_age_on_get,
                eviction_policy=self.config.strategy.eviction_policy,
                clock=self._clock,
                on_evict=self._on_l1_evict,
            )
        if self.config.l2.enabled:
            if l2 is None and redis_client is None:
                raise CacheConfigError("L2 is enabled but no Redis client was provided.")
            self.l2 = l2 if l2 is not None else RedisTier(
                client=redis_client,
                key_prefix=self.config.l2.key_prefix,
                compression_enabled=self.config.l2.compression_enabled,
                clock=self._clock,
            )
        if self.config.l3.enabled:
            self.l3 = l3 if l3 is not None else DiskTier(
                base_path=self.config.l3.base_path,
                max_file_size=self.config.l3.max_file_size,
                compression_enabled=self.config.l3.compression_enabled,
                clock=self._clock,
            )

        self._stats = CacheStatistics(l1_max_size=self.config.l1.max_size)
        self._operations = OperationLog()
        self._last_sizes: Dict[str, int] = {level: 0 for level in CACHE_LEVELS}
        self._pending: Set[asyncio.Task] = set()
        self._cleanup = CleanupDaemon(
            disk_tier=self.l3 if isinstance(self.l3, DiskTier) else None,
            operation_log=self._operations,
            interval_ms=self.config.l3.cleanup_interval,
            clock=self._clock,
            emit=self._emit,
        )
        self._closed = False

        logger.info(
            "MultiLevelCacheService initialized. "
            f"L1={'on' if self.l1 is not None else 'off'}, L2={'on' if self.l2 is not None else 'off'}, L3={'on' if self.l3 is not None else 'off'}, "
            f"strategy={'write-through' if self.config.strategy.write_through else 'write-back' if self.config.strategy.write_back else 'l1-only'}"
        )

    # --- Lifecycle ---

    async def start(self) -> None:
        """Starts the cleanup daemon when L3 is enabled. Needs a running event loop."""
        if self.l3 is not None:
            self._cleanup.start()

    async def __aenter__(self) -> "MultiLevelCacheService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Stops the cleanup daemon, drains write-back tasks, clears L1 and runs a final cleanup."""
        if self._closed:
            return
        self._closed = True
        await self._cleanup.stop()
        await self.flush()
        if self.l1 is not None:
            await self.l1.clear()
        try:
            await self._cleanup.run_once()
        except Exception as e:
            logger.error(f"Final cache cleanup failed: {e}", exc_info=True)
        logger.info("Multi-level cache service closed.")

    async def flush(self) -> None:
        """Waits for every in-flight write-back propagation task."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- Internal helpers ---

    def _now(self) -> float:
        return self._clock()

    def _emit(self, event: CacheEvent) -> None:
        if self._event_listener is None:
            return
        try:
            self._event_listener(event)
        except Exception as e:
            logger.error(f"Cache event listener failed on {type(event).__name__}: {e}", exc_info=True)

    def _record(
        self,
        operation: OperationName,
        key: str,
        level: CacheLevel,
        started: float,
        success: bool,
        size: Optional[int] = None,
    ) -> None:
        now = self._now()
        self._operations.append(CacheOperation(
            operation=operation,
            key=key,
            level=level,
            timestamp=now,
            duration=max(0.0, now - started),
            success=success,
            size=size,
        ))

    def _on_l1_evict(self, key: str, item: CacheItem[Any]) -> None:
        self._record("delete", key, "l1", self._now(), True)
        self._emit(ItemEvicted(key=key, level="l1"))

    async def _tier_get(self, tier: CacheTier, key: NormalizedKey) -> Optional[CacheItem[Any]]:
        try:
            return await tier.get(key)
        except Exception as e:
            logger.error(f"{tier.level.upper()} cache get error for key {key[:10]}...: {e}", exc_info=True)
            return None

    async def _tier_set(self, tier: CacheTier, key: NormalizedKey, item: CacheItem[Any]) -> bool:
        try:
            return bool(await tier.set(key, item))
        except Exception as e:
            logger.error(f"{tier.level.upper()} cache set error for key {key[:10]}...: {e}", exc_info=True)
            return False

    async def _tier_delete(self, tier: CacheTier, key: NormalizedKey) -> bool:
        try:
            return bool(await tier.delete(key))
        except Exception as e:
            logger.error(f"{tier.level.upper()} cache delete error for key {key[:10]}...: {e}", exc_info=True)
            return False

    def _schedule_propagation(self, key: NormalizedKey, item: CacheItem[Any], targets: List[CacheTier]) -> None:
        if not targets:
            return
        task = asyncio.create_task(self._propagate(key, item, targets))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _propagate(self, key: NormalizedKey, item: CacheItem[Any], targets: List[CacheTier]) -> None:
        """Writes ``item`` to lower tiers in order. Failures are logged and published, never raised."""
        for tier in targets:
            error_message = None
            try:
                success = bool(await tier.set(key, item))
            except Exception as e:
                success = False
                error_message = str(e)
            if not success:
                logger.error(
                    f"Error propagating key {key[:10]}... to {tier.level.upper()}"
                    + (f": {error_message}" if error_message else "")
                )
                self._emit(PropagationFailed(key=key, level=tier.level, error_message=error_message))

    # --- CacheService Interface Implementation ---

    async def get(
        self,
        key: CacheKey,
        skip_l1: bool = False,
        skip_l2: bool = False,
        skip_l3: bool = False,
    ) -> Optional[JsonValue]:
        """Retrieves a value, walking L1 -> L2 -> L3. Never raises; returns None on a miss."""
        started = self._now()
        normalized = normalize_key(key)
        write_back = self.config.strategy.write_back

        if self.l1 is not None and not skip_l1:
            item = await self._tier_get(self.l1, normalized)
            if item is not None:
                self._stats.record_hit("l1")
                self._record("get", normalized, "l1", started, True)
                logger.debug(f"L1 cache hit for key: {key}")
                return item.value
            self._stats.record_miss("l1")

        if self.l2 is not None and not skip_l2:
            item = await self._tier_get(self.l2, normalized)
            if item is not None:
                self._stats.record_hit("l2")
                if write_back and self.l1 is not None:
                    await self._tier_set(self.l1, normalized, item)
                self._record("get", normalized, "l2", started, True)
                logger.debug(f"L2 cache hit for key: {key}")
                return item.value
            self._stats.record_miss("l2")

        if self.l3 is not None and not skip_l3:
            item = await self._tier_get(self.l3, normalized)
            if item is not None:
                self._stats.record_hit("l3")
                if write_back:
                    if self.l2 is not None:
                        await self._tier_set(self.l2, normalized, item)
                    if self.l1 is not None:
                        await self._tier_set(self.l1, normalized, item)
                self._record("get", normalized, "l3", started, True)
                logger.debug(f"L3 cache hit for key: {key}")
                return item.value
            self._stats.record_miss("l3")

        self._record("get", normalized, "l1", started, False)
        logger.debug(f"Cache miss for key: {key}")
        return None

    async def set(
        self,
        key: CacheKey,
        value: JsonValue,
        ttl: Optional[int] = None,
        skip_l1: bool = False,
        skip_l2: bool = False,
        skip_l3: bool = False,
        metadata: Optional[CacheItemMetadata] = None,
        priority: Optional[Priority] = None,
    ) -> bool:
        """Stores a value according to the configured write strategy."""
        started = self._now()
        normalized = normalize_key(key)

        try:
            size = value_size(value)
        except CacheSerializationError as e:
            logger.error(f"Cache set rejected for key {key}: {e}")
            self._record("set", normalized, "l1", started, False)
            return False

        item: CacheItem[JsonValue] = CacheItem(
            key=normalized,
            value=value,
            timestamp=started,
            ttl=ttl if ttl is not None else self.config.l2.default_ttl * 1000,
            access_count=0,
            last_accessed=started,
            size=size,
            metadata=metadata or CacheItemMetadata(priority=priority or "medium"),
        )

        success = True
        if self.config.strategy.write_through:
            for tier, skip in ((self.l1, skip_l1), (self.l2, skip_l2), (self.l3, skip_l3)):
                if tier is None or skip:
                    continue
                success = await self._tier_set(tier, normalized, item) and success
        else:
            if self.l1 is not None and not skip_l1:
                success = await self._tier_set(self.l1, normalized, item)
            if self.config.strategy.write_back:
                targets = [
                    tier for tier, skip in ((self.l2, skip_l2), (self.l3, skip_l3))
                    if tier is not None and not skip
                ]
                self._schedule_propagation(normalized, item, targets)

        self._record("set", normalized, "l1", started, success, size)
        logger.debug(f"Cache set for key: {key} (success={success}, size={size})")
        return success

    async def delete(self, key: CacheKey) -> bool:
        """Deletes a key from every enabled tier. Missing keys count as deleted."""
        started = self._now()
        normalized = normalize_key(key)
        success = True
        for tier in (self.l1, self.l2, self.l3):
            if tier is None:
                continue
            success = await self._tier_delete(tier, normalized) and success
        self._record("delete", normalized, "l1", started, success)
        return success

    async def clear(self, level: Optional[CacheLevel] = None) -> bool:
        """Clears one level, or every enabled level when ``level`` is None.

        Raises:
            ValueError: If ``level`` is not 'l1', 'l2', 'l3' or None.
        """
        if level is not None and level not in CACHE_LEVELS:
            raise ValueError(f"Invalid cache level '{level}'. Choose 'l1', 'l2', 'l3' or None for all.")
        started = self._now()
        success = True
        for name, tier in (("l1", self.l1), ("l2", self.l2), ("l3", self.l3)):
            if tier is None or (level is not None and level != name):
                continue
            try:
                cleared = bool(await tier.clear())
            except Exception as e:
                logger.error(f"Failed to clear {name.upper()} cache: {e}", exc_info=True)
                cleared = False
            if cleared:
                self._last_sizes[name] = 0
            success = cleared and success
        self._record("clear", level or "all", level or "l1", started, success)
        return success

    async def mget(self, keys: List[CacheKey]) -> Dict[CacheKey, Optional[JsonValue]]:
        """Gets many keys in batches of 100, concurrently within each batch."""
        results: Dict[CacheKey, Optional[JsonValue]] = {}
        for i in range(0, len(keys), MGET_BATCH_SIZE):
            batch = keys[i:i + MGET_BATCH_SIZE]
            values = await asyncio.gather(*(self.get(key) for key in batch))
            for key, value in zip(batch, values):
                results[key] = value
        return results

    async def mset(
        self,
        items: Mapping[CacheKey, JsonValue],
        ttl: Optional[int] = None,
        metadata: Optional[CacheItemMetadata] = None,
    ) -> bool:
        """Sets every item concurrently. True only if all sets succeeded."""
        results = await asyncio.gather(
            *(self.set(key, value, ttl=ttl, metadata=metadata) for key, value in items.items())
        )
        return all(results)

    async def invalidate_pattern(self, pattern: str) -> int:
        """Removes entries whose normalized key matches ``pattern``.

        Each tier matches in its own syntax through CacheTier.invalidate: the
        memory tier with ``re.search``, Redis with the glob
        ``<prefix>*<pattern>*``. The disk tier keeps no key index, so its
        entries are not invalidated and expire on their own TTL.

        Raises:
            re.error: If ``pattern`` is not a valid regular expression.
        """
        re.compile(pattern)  # raises re.error before any tier is touched
        invalidated = 0
        for tier in (self.l1, self.l2, self.l3):
            if tier is None:
                continue
            try:
                invalidated += await tier.invalidate(pattern)
            except Exception as e:
                logger.error(f"{tier.level.upper()} pattern invalidation error: {e}", exc_info=True)

        logger.info(f"Invalidated {invalidated} entries matching pattern: {pattern}")
        return invalidated

    async def warmup(self, keys: List[CacheKey]) -> None:
        """Reads each key so that lower-tier hits are copied upward."""
        await asyncio.gather(*(self.get(key) for key in keys))
        logger.info(f"Warmup attempted for {len(keys)} keys.")

    def get_stats(self) -> CacheStats:
        """Returns a statistics snapshot. L2/L3 sizes are as of the last get_size() call."""
        sizes = dict(self._last_sizes)
        for name, tier in (("l1", self.l1), ("l2", self.l2), ("l3", self.l3)):
            live = tier.local_size() if tier is not None else None
            if live is not None:
                sizes[name] = live
        return self._stats.snapshot(sizes)

    def get_operations(self, limit: int = 100) -> List[CacheOperation]:
        return self._operations.recent(limit)

    async def get_size(self) -> Dict[str, int]:
        sizes = {level: 0 for level in CACHE_LEVELS}
        for name, tier in (("l1", self.l1), ("l2", self.l2), ("l3", self.l3)):
            if tier is None:
                continue
            try:
                sizes[name] = await tier.size()
            except Exception as e:
                logger.warning(f"Could not determine {name.upper()} size: {e}")
        self._last_sizes.update(sizes)
        return {**sizes, "total": sum(sizes.values())}

    # --- Convenience ---

    async def get_or_set(
        self,
        key: CacheKey,
        factory: Callable[[], Union[T, Awaitable[T]]],
        ttl: Optional[int] = None,
        **set_options: Any,
    ) -> T:
        """Returns the cached value for ``key``, computing and storing it on a miss."""
        cached_value = await self.get(key)
        if cached_value is not None:
            return cast(T, cached_value)
        result = factory()
        if inspect.isawaitable(result):
            result = await result
        if result is not None:
            await self.set(key, result, ttl=ttl, **set_options)
        return result

    def cached(self, prefix: str, ttl: Optional[int] = None) -> Callable:
        """Decorator to cache the result of an async function.

        Args:
            prefix: A prefix for the cache key.
            ttl: Optional TTL in milliseconds for stored results.

        Returns:
            A decorator.
        """
        def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
            @functools.wraps(func)
            async def wrapper(*args: Any, **kwargs: Any) -> Any:
                key = build_key(prefix, *args, **kwargs)
                return await self.get_or_set(key, lambda: func(*args, **kwargs), ttl=ttl)
            return wrapper
        return decorator

    async def run_cleanup(self) -> int:
        """Runs one cleanup pass now. Returns the number of L3 files removed."""
        return await self._cleanup.run_once()

    async def health_check(self) -> Dict[str, Dict[str, Any]]:
        """Reports availability of each tier."""
        report: Dict[str, Dict[str, Any]] = {}
        report["l1"] = {"enabled": self.l1 is not None, "status": "healthy" if self.l1 is not None else "disabled"}

        if isinstance(self.l2, RedisTier):
            report["l2"] = {"enabled": True, "status": "healthy" if await self.l2.ping() else "unavailable"}
        else:
            report["l2"] = {"enabled": self.l2 is not None, "status": "disabled" if self.l2 is None else "unknown"}

        if isinstance(self.l3, DiskTier):
            writable = await self.l3.is_writable()
            report["l3"] = {"enabled": True, "status": "healthy" if writable else "unavailable"}
        else:
            report["l3"] = {"enabled": self.l3 is not None, "status": "disabled" if self.l3 is None else "unknown"}
        return report


def create_multi_level_cache(
    redis_client: Any,
    overrides: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> MultiLevelCacheService:
    """Creates a cache with the default configuration, deep-merged with ``overrides``."""
    config = CacheConfig.from_dict(overrides)
    return MultiLevelCacheService(config=config, redis_client=redis_client, **kwargs)
