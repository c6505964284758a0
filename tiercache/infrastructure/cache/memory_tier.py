"""L1 in-memory cache tier.

A bounded, process-local store kept in an OrderedDict. Capacity is an entry
count; when an insert would exceed it one entry is evicted according to the
eviction policy (``lru`` by default, ``lfu`` or ``fifo``). Every entry carries
an L1 deadline (``max_age``) in addition to the item's own TTL.

None of the operations here perform I/O, so awaiting them never suspends.
"""

import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from tiercache.domain.interfaces.cache import CacheTier
from tiercache.domain.models.cache import CacheItem
from tiercache.domain.models.common import EVICTION_POLICIES, EvictionPolicy, NormalizedKey

logger = logging.getLogger(__name__)

EvictionHook = Callable[[str, CacheItem[Any]], None]


def _epoch_millis() -> float:
    return time.time() * 1000


@dataclass
class _MemoryEntry:
    """Internal representation of an L1 entry with its L1 deadline."""
    item: CacheItem[Any]
    deadline: float  # epoch ms after which the entry is stale in L1


class MemoryTier(CacheTier):
    """Bounded in-memory tier with per-entry expiry."""

    level = "l1"

    def __init__(
        self,
        max_size: int = 1000,
        max_age: int = 5 * 60 * 1000,
        update_age_on_get: bool = True,
        eviction_policy: EvictionPolicy = "lru",
        clock: Optional[Callable[[], float]] = None,
        on_evict: Optional[EvictionHook] = None,
    ):
        """Initializes the in-memory tier.

        Args:
            max_size: Maximum number of entries held.
            max_age: L1 lifetime of an entry in milliseconds.
            update_age_on_get: When True, a hit restarts the entry's L1
                lifetime and marks it most recently used.
            eviction_policy: 'lru', 'lfu' or 'fifo'.
            clock: Returns the current time in epoch milliseconds.
            on_evict: Called with (key, item) when capacity forces an eviction.
        """
        if eviction_policy not in EVICTION_POLICIES:
            raise ValueError(f"Unknown eviction policy: {eviction_policy}")
        self.max_size = max_size
        self.max_age = max_age
        self.update_age_on_get = update_age_on_get
        self.eviction_policy = eviction_policy
        self._clock = clock or _epoch_millis
        self._on_evict = on_evict
        self._entries: "OrderedDict[str, _MemoryEntry]" = OrderedDict()
        logger.debug(
            f"MemoryTier initialized (max_size={max_size}, max_age={max_age}ms, "
            f"policy={eviction_policy}, update_age_on_get={update_age_on_get})"
        )

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        """Snapshot of the keys currently held, oldest first. Does not touch recency."""
        return list(self._entries.keys())

    def _is_stale(self, entry: _MemoryEntry, now: float) -> bool:
        return now > entry.deadline or entry.item.is_expired(now)

    def _select_victim(self) -> str:
        if self.eviction_policy == "lfu":
            # Fewest reads wins; ties go to the oldest entry
            return min(self._entries, key=lambda k: self._entries[k].item.access_count)
        # lru keeps the least recently used entry first, fifo the oldest insert
        return next(iter(self._entries))

    def _evict_one(self) -> None:
        victim = self._select_victim()
        entry = self._entries.pop(victim)
        logger.debug(f"L1 Cache EVICTED key ({self.eviction_policy}): {victim[:10]}...")
        if self._on_evict is not None:
            try:
                self._on_evict(victim, entry.item)
            except Exception as e:
                logger.error(f"L1 eviction hook failed for key {victim[:10]}...: {e}", exc_info=True)

    async def get(self, key: NormalizedKey) -> Optional[CacheItem[Any]]:
        """Returns the live item for ``key``, removing it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if self._is_stale(entry, now):
            del self._entries[key]
            logger.debug(f"L1 Cache EXPIRED key: {key[:10]}...")
            return None

        if self.update_age_on_get:
            entry.deadline = now + self.max_age
            if self.eviction_policy == "lru":
                self._entries.move_to_end(key)
        entry.item.touch(now)
        return entry.item

    async def set(self, key: NormalizedKey, item: CacheItem[Any]) -> bool:
        now = self._clock()
        deadline = now + self.max_age
        if key in self._entries:
            self._entries[key] = _MemoryEntry(item=item, deadline=deadline)
            if self.eviction_policy == "lru":
                self._entries.move_to_end(key)
        else:
            while len(self._entries) >= self.max_size and self._entries:
                self._evict_one()
            self._entries[key] = _MemoryEntry(item=item, deadline=deadline)
        logger.debug(f"L1 Cache PUT key: {key[:10]}... TTL: {item.ttl:.0f}ms")
        return True

    async def delete(self, key: NormalizedKey) -> bool:
        self._entries.pop(key, None)
        return True

    async def clear(self) -> bool:
        self._entries.clear()
        logger.info("Cleared L1 (in-memory) cache.")
        return True

    async def size(self) -> int:
        return len(self._entries)

    def local_size(self) -> Optional[int]:
        return len(self._entries)

    async def invalidate(self, pattern: str) -> int:
        """Deletes keys matching the regular expression ``pattern`` (``re.search``)."""
        regex = re.compile(pattern)
        matched = [key for key in self._entries if regex.search(key)]
        for key in matched:
            del self._entries[key]
        if matched:
            logger.info(f"L1 invalidated {len(matched)} keys for pattern: {pattern}")
        return len(matched)
