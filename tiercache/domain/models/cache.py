"""Core cache entities: stored items, operation records and statistics.

`CacheItem` is the unit every tier stores. Its wire form (``to_dict``) keeps
the camelCase field names used by other writers of the same Redis keyspace
and cache directory, so entries stay interchangeable between processes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from tiercache.domain.models.common import CacheLevel, OperationName, Priority

T = TypeVar("T")


@dataclass
class CacheItemMetadata:
    """Informational metadata attached to an item. Not enforced by the tiers."""
    source: str = "unknown"
    version: str = "1.0.0"
    tags: List[str] = field(default_factory=list)
    priority: Priority = "medium"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "version": self.version,
            "tags": list(self.tags),
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheItemMetadata":
        return cls(
            source=data.get("source", "unknown"),
            version=data.get("version", "1.0.0"),
            tags=list(data.get("tags") or []),
            priority=data.get("priority", "medium"),
        )


@dataclass
class CacheItem(Generic[T]):
    """A single cached value with its lifetime and access bookkeeping.

    Attributes:
        key: Normalized key (hex digest) addressing the item in every tier.
        value: JSON-serializable payload.
        timestamp: Write time in epoch milliseconds.
        ttl: Lifetime in milliseconds, counted from ``timestamp``.
        access_count: Number of successful reads.
        last_accessed: Epoch milliseconds of the last successful read.
        size: Byte length of the JSON-serialized value.
        metadata: Optional informational metadata.
    """
    key: str
    value: T
    timestamp: float
    ttl: float
    access_count: int = 0
    last_accessed: float = 0.0
    size: int = 0
    metadata: Optional[CacheItemMetadata] = None

    @property
    def expires_at(self) -> float:
        return self.timestamp + self.ttl

    def is_expired(self, now: float) -> bool:
        """An item is expired once ``now`` is strictly past timestamp + ttl."""
        return now > self.expires_at

    def touch(self, now: float) -> None:
        """Records a successful read."""
        self.access_count += 1
        self.last_accessed = now

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "key": self.key,
            "value": self.value,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "accessCount": self.access_count,
            "lastAccessed": self.last_accessed,
            "size": self.size,
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheItem[Any]":
        """Builds an item from its wire form. Raises KeyError/TypeError/ValueError on bad input."""
        metadata = data.get("metadata")
        return cls(
            key=str(data["key"]),
            value=data["value"],
            timestamp=float(data["timestamp"]),
            ttl=float(data["ttl"]),
            access_count=int(data.get("accessCount", 0)),
            last_accessed=float(data.get("lastAccessed", 0)),
            size=int(data.get("size", 0)),
            metadata=CacheItemMetadata.from_dict(metadata) if isinstance(metadata, dict) else None,
        )


@dataclass
class CacheOperation:
    """One entry of the operation log."""
    operation: OperationName
    key: str
    level: CacheLevel
    timestamp: float
    duration: float  # milliseconds
    success: bool
    size: Optional[int] = None


@dataclass
class TierStats:
    """Hit/miss counters and current entry count for one tier."""
    hits: int = 0
    misses: int = 0
    size: int = 0
    max_size: Optional[int] = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


@dataclass
class OverallStats:
    total_hits: int = 0
    total_misses: int = 0

    @property
    def overall_hit_rate(self) -> float:
        total = self.total_hits + self.total_misses
        return self.total_hits / total if total > 0 else 0.0


@dataclass
class CacheStats:
    """Point-in-time snapshot of cache statistics."""
    l1: TierStats
    l2: TierStats
    l3: TierStats
    overall: OverallStats

    def tier(self, level: CacheLevel) -> TierStats:
        return getattr(self, level)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for level in ("l1", "l2", "l3"):
            tier = self.tier(level)
            entry: Dict[str, Any] = {
                "hits": tier.hits,
                "misses": tier.misses,
                "size": tier.size,
                "hitRate": tier.hit_rate,
            }
            if tier.max_size is not None:
                entry["maxSize"] = tier.max_size
            result[level] = entry
        result["overall"] = {
            "totalHits": self.overall.total_hits,
            "totalMisses": self.overall.total_misses,
            "overallHitRate": self.overall.overall_hit_rate,
        }
        return result
