"""L2 Redis cache tier.

Stores encoded CacheItems under ``key_prefix + normalized_key`` with Redis'
native expiry. The Redis keyspace may be shared with other processes, so the
prefix is the only thing separating this cache's keys from anyone else's.
"""

import logging
import math
import time
from typing import Any, Callable, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from tiercache.domain.exceptions import CacheSerializationError
from tiercache.domain.interfaces.cache import CacheTier
from tiercache.domain.models.cache import CacheItem
from tiercache.domain.models.common import NormalizedKey
from tiercache.infrastructure.cache.codec import decode_item, encode_item

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 500
SCAN_COUNT = 1000

# Errors treated as a transient tier failure
TIER_ERRORS = (RedisError, OSError)


def _epoch_millis() -> float:
    return time.time() * 1000


def ttl_seconds(ttl_ms: float) -> int:
    """Converts an item TTL in milliseconds to whole Redis seconds, minimum 1."""
    return max(1, math.ceil(ttl_ms / 1000))


class RedisTier(CacheTier):
    """Shared L2 tier backed by a redis.asyncio client."""

    level = "l2"

    def __init__(
        self,
        client: "redis.Redis",
        key_prefix: str = "cache:",
        compression_enabled: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initializes the Redis tier.

        Args:
            client: Connected (or lazily connecting) redis.asyncio client.
            key_prefix: Namespace prepended to every key.
            compression_enabled: Deflate stored values.
            clock: Returns the current time in epoch milliseconds.
        """
        self.client = client
        self.key_prefix = key_prefix
        self.compression_enabled = compression_enabled
        self._clock = clock or _epoch_millis
        logger.debug(f"RedisTier initialized (prefix='{key_prefix}', compression={compression_enabled})")

    def _make_key(self, key: str) -> str:
        """Create prefixed cache key."""
        return f"{self.key_prefix}{key}"

    async def _scan(self, match: str) -> List[Any]:
        keys = []
        async for redis_key in self.client.scan_iter(match=match, count=SCAN_COUNT):
            keys.append(redis_key)
        return keys

    async def _delete_in_batches(self, keys: List[Any]) -> int:
        deleted = 0
        for i in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[i:i + DELETE_BATCH_SIZE]
            deleted += await self.client.delete(*batch)
        return deleted

    async def get(self, key: NormalizedKey) -> Optional[CacheItem[Any]]:
        redis_key = self._make_key(key)
        try:
            data = await self.client.get(redis_key)
            if data is None:
                return None

            item = decode_item(data)
            now = self._clock()
            if item.is_expired(now):
                logger.debug(f"L2 Cache expired for key: {key[:10]}... Removing.")
                await self.client.delete(redis_key)
                return None

            item.touch(now)
            return item
        except CacheSerializationError as e:
            logger.warning(f"L2 Redis value for key {key[:10]}... could not be decoded: {e}")
            return None
        except TIER_ERRORS as e:
            logger.warning(f"L2 Redis get error for key {key[:10]}...: {e}")
            return None

    async def set(self, key: NormalizedKey, item: CacheItem[Any]) -> bool:
        redis_key = self._make_key(key)
        try:
            data = encode_item(item, self.compression_enabled)
            await self.client.setex(redis_key, ttl_seconds(item.ttl), data)
            logger.debug(f"L2 Cache PUT key: {key[:10]}... TTL: {ttl_seconds(item.ttl)}s")
            return True
        except CacheSerializationError as e:
            logger.error(f"L2 Redis serialization error for key {key[:10]}...: {e}")
            return False
        except TIER_ERRORS as e:
            logger.warning(f"L2 Redis set error for key {key[:10]}...: {e}")
            return False

    async def delete(self, key: NormalizedKey) -> bool:
        try:
            await self.client.delete(self._make_key(key))
            return True
        except TIER_ERRORS as e:
            logger.warning(f"L2 Redis delete error for key {key[:10]}...: {e}")
            return False

    async def clear(self) -> bool:
        """Deletes every key under the prefix. Not atomic across scan and delete."""
        try:
            keys = await self._scan(f"{self.key_prefix}*")
            deleted = await self._delete_in_batches(keys)
            logger.info(f"Cleared L2 (Redis) cache. Removed {deleted} keys with prefix '{self.key_prefix}'.")
            return True
        except TIER_ERRORS as e:
            logger.error(f"Failed to clear L2 Redis cache: {e}")
            return False

    async def invalidate(self, pattern: str) -> int:
        """Deletes keys matching ``prefix*pattern*``. Returns the number deleted."""
        try:
            keys = await self._scan(f"{self.key_prefix}*{pattern}*")
            if not keys:
                return 0
            deleted = await self._delete_in_batches(keys)
            logger.info(f"L2 Redis invalidated {deleted} keys for pattern: {pattern}")
            return deleted
        except TIER_ERRORS as e:
            logger.error(f"L2 Redis pattern invalidation error: {e}")
            return 0

    async def size(self) -> int:
        try:
            return len(await self._scan(f"{self.key_prefix}*"))
        except TIER_ERRORS as e:
            logger.warning(f"L2 Redis size lookup failed: {e}")
            return 0

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except TIER_ERRORS as e:
            logger.warning(f"L2 Redis ping failed: {e}")
            return False
