"""Interfaces for caching mechanisms.

Defines two contracts: `CacheTier`, the storage adapter every level (memory,
Redis, disk) implements, and `CacheService`, the unified multi-level cache
that callers talk to.
"""

import abc
from typing import Any, Dict, List, Mapping, Optional

from ..models.cache import CacheItem, CacheItemMetadata, CacheOperation, CacheStats
from ..models.common import CacheKey, CacheLevel, JsonValue, NormalizedKey, Priority


class CacheTier(abc.ABC):
    """Abstract Base Class for a single storage tier.

    Tiers address entries by normalized key and never raise for misses or
    I/O trouble: reads return None, writes and deletes return False.
    """

    level: CacheLevel

    @abc.abstractmethod
    async def get(self, key: NormalizedKey) -> Optional[CacheItem[Any]]:
        """Retrieves a live (non-expired) item, or None."""
        pass

    @abc.abstractmethod
    async def set(self, key: NormalizedKey, item: CacheItem[Any]) -> bool:
        """Stores an item. Returns True on success."""
        pass

    @abc.abstractmethod
    async def delete(self, key: NormalizedKey) -> bool:
        """Deletes an item. Deleting a missing key is a success."""
        pass

    @abc.abstractmethod
    async def clear(self) -> bool:
        """Removes every entry owned by this tier."""
        pass

    @abc.abstractmethod
    async def size(self) -> int:
        """Returns the number of entries currently held."""
        pass

    @abc.abstractmethod
    async def invalidate(self, pattern: str) -> int:
        """Deletes entries matching ``pattern`` in the tier's own matching syntax.

        Returns:
            The number of entries removed; 0 for tiers that cannot match keys.
        """
        pass

    def local_size(self) -> Optional[int]:
        """Entry count known without I/O, or None when only size() can tell."""
        return None


class CacheService(abc.ABC):
    """Abstract Base Class for multi-level cache operations."""

    @abc.abstractmethod
    async def get(
        self,
        key: CacheKey,
        skip_l1: bool = False,
        skip_l2: bool = False,
        skip_l3: bool = False,
    ) -> Optional[JsonValue]:
        """Looks a key up level by level and returns the first live value.

        Searches enabled, non-skipped levels in order (L1, L2, L3).

        Args:
            key: Caller-facing key; normalized before lookup.
            skip_l1: Do not consult the in-memory tier.
            skip_l2: Do not consult the Redis tier.
            skip_l3: Do not consult the disk tier.

        Returns:
            The cached value if found and not expired, otherwise None.
        """
        pass

    @abc.abstractmethod
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
        """Stores an item according to the configured write strategy.

        Args:
            key: Caller-facing key; normalized before storage.
            value: The JSON-serializable item to store.
            ttl: Time-to-live in milliseconds (uses the L2 default if None).
            skip_l1: Do not write the in-memory tier.
            skip_l2: Do not write the Redis tier.
            skip_l3: Do not write the disk tier.
            metadata: Optional item metadata.
            priority: Priority recorded in default metadata.

        Returns:
            True if every synchronous write succeeded.
        """
        pass

    @abc.abstractmethod
    async def delete(self, key: CacheKey) -> bool:
        """Deletes an item from every enabled level."""
        pass

    @abc.abstractmethod
    async def clear(self, level: Optional[CacheLevel] = None) -> bool:
        """Clears one level, or every enabled level when ``level`` is None."""
        pass

    @abc.abstractmethod
    async def mget(self, keys: List[CacheKey]) -> Dict[CacheKey, Optional[JsonValue]]:
        """Retrieves many keys. Missing keys map to None."""
        pass

    @abc.abstractmethod
    async def mset(
        self,
        items: Mapping[CacheKey, JsonValue],
        ttl: Optional[int] = None,
        metadata: Optional[CacheItemMetadata] = None,
    ) -> bool:
        """Stores many items. Returns True only if every store succeeded."""
        pass

    @abc.abstractmethod
    async def invalidate_pattern(self, pattern: str) -> int:
        """Removes entries whose normalized key matches ``pattern``. Returns the count removed."""
        pass

    @abc.abstractmethod
    async def warmup(self, keys: List[CacheKey]) -> None:
        """Reads each key so lower-tier hits populate the upper tiers."""
        pass

    @abc.abstractmethod
    def get_stats(self) -> CacheStats:
        """Returns a snapshot of hit/miss statistics."""
        pass

    @abc.abstractmethod
    def get_operations(self, limit: int = 100) -> List[CacheOperation]:
        """Returns the most recent operation log entries."""
        pass

    @abc.abstractmethod
    async def get_size(self) -> Dict[str, int]:
        """Returns entry counts per level and their total."""
        pass

    @abc.abstractmethod
    async def close(self) -> None:
        """Stops background work and releases in-process state."""
        pass
