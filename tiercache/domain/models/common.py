"""Defines common Value Objects used across the cache domain.

These objects represent simple values like keys, levels and payloads,
keeping signatures readable and consistent between layers.
"""

from typing import Any, Dict, List, Literal, NewType, Union

# === Keys ===

# Plain str at runtime; the NewTypes keep raw and hashed keys apart for the type checker.
CacheKey = NewType("CacheKey", str)              # Key as supplied by the caller
NormalizedKey = NewType("NormalizedKey", str)    # 32-char hex digest of a CacheKey

# === Levels & Operations ===
CacheLevel = Literal["l1", "l2", "l3"]
OperationName = Literal["get", "set", "delete", "clear"]
Priority = Literal["low", "medium", "high", "critical"]
EvictionPolicy = Literal["lru", "lfu", "fifo"]

CACHE_LEVELS: tuple = ("l1", "l2", "l3")
EVICTION_POLICIES: tuple = ("lru", "lfu", "fifo")

# === Payloads ===
# Anything json.dumps accepts without a custom encoder.
JsonValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]
