"""Key normalization shared by every cache tier.

Raw keys are hashed to a fixed-length hex digest so a single logical entry
addresses the same slot in memory, in Redis and on disk.
"""

import hashlib
from typing import Any

from tiercache.domain.models.common import CacheKey, NormalizedKey

SHARD_WIDTH = 2  # hex chars used to pick the L3 subdirectory


def normalize_key(raw_key: str) -> NormalizedKey:
    """Returns the 32-char MD5 hex digest of ``raw_key``."""
    return NormalizedKey(hashlib.md5(str(raw_key).encode("utf-8")).hexdigest())


def shard_for(key: NormalizedKey, width: int = SHARD_WIDTH) -> str:
    """Returns the shard directory name for a normalized key."""
    return key[:width]


def build_key(prefix: str, *args: Any, **kwargs: Any) -> CacheKey:
    """Generates a consistent raw cache key from a prefix and call arguments."""
    key_parts = [prefix]
    key_parts.extend(map(str, args))
    # kwargs sorted so call order does not change the key
    key_parts.extend(f"{k}={v}" for k, v in sorted(kwargs.items()))
    return CacheKey("|".join(key_parts))
