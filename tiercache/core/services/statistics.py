"""Hit/miss statistics and the bounded operation log.

Both are owned by the MultiLevelCacheService and mutated only from its own
call sites.
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from tiercache.domain.models.cache import CacheOperation, CacheStats, OverallStats, TierStats
from tiercache.domain.models.common import CACHE_LEVELS, CacheLevel

logger = logging.getLogger(__name__)

DEFAULT_OPERATION_LOG_SIZE = 1000
OPERATION_RETENTION_MS = 24 * 60 * 60 * 1000  # 24 hours


class CacheStatistics:
    """Per-tier hit and miss counters."""

    def __init__(self, l1_max_size: Optional[int] = None):
        self._hits: Dict[str, int] = {level: 0 for level in CACHE_LEVELS}
        self._misses: Dict[str, int] = {level: 0 for level in CACHE_LEVELS}
        self._l1_max_size = l1_max_size

    def record_hit(self, level: CacheLevel) -> None:
        self._hits[level] += 1

    def record_miss(self, level: CacheLevel) -> None:
        self._misses[level] += 1

    def snapshot(self, sizes: Optional[Dict[str, int]] = None) -> CacheStats:
        """Builds an immutable-by-convention CacheStats from the current counters.

        Args:
            sizes: Current entry count per level; missing levels report 0.
        """
        sizes = sizes or {}
        tiers = {
            level: TierStats(
                hits=self._hits[level],
                misses=self._misses[level],
                size=sizes.get(level, 0),
                max_size=self._l1_max_size if level == "l1" else None,
            )
            for level in CACHE_LEVELS
        }
        overall = OverallStats(
            total_hits=sum(self._hits.values()),
            total_misses=sum(self._misses.values()),
        )
        return CacheStats(l1=tiers["l1"], l2=tiers["l2"], l3=tiers["l3"], overall=overall)


class OperationLog:
    """Keeps the most recent cache operations, dropping the oldest first."""

    def __init__(self, max_entries: int = DEFAULT_OPERATION_LOG_SIZE):
        self.max_entries = max_entries
        self._entries: Deque[CacheOperation] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, operation: CacheOperation) -> None:
        self._entries.append(operation)

    def recent(self, limit: int = 100) -> List[CacheOperation]:
        """Returns up to ``limit`` newest entries, oldest first."""
        if limit <= 0:
            return []
        entries = list(self._entries)
        return entries[-limit:]

    def prune_older_than(self, cutoff: float) -> int:
        """Drops entries with a timestamp at or before ``cutoff``. Returns how many were dropped."""
        before = len(self._entries)
        kept = [op for op in self._entries if op.timestamp > cutoff]
        self._entries = deque(kept, maxlen=self.max_entries)
        pruned = before - len(self._entries)
        if pruned:
            logger.debug(f"Pruned {pruned} operation log entries older than {cutoff:.0f}")
        return pruned
