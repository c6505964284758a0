"""tiercache: a three-level (memory / Redis / disk) cache for asyncio applications."""

from tiercache.core.services.cache_service import MultiLevelCacheService, create_multi_level_cache
from tiercache.domain.exceptions import CacheConfigError, CacheError, CacheSerializationError
from tiercache.domain.models.cache import CacheItem, CacheItemMetadata, CacheOperation, CacheStats
from tiercache.domain.models.config import CacheConfig, L1Config, L2Config, L3Config, StrategyConfig

__version__ = "0.1.0"

__all__ = [
    "CacheConfig",
    "CacheConfigError",
    "CacheError",
    "CacheItem",
    "CacheItemMetadata",
    "CacheOperation",
    "CacheSerializationError",
    "CacheStats",
    "L1Config",
    "L2Config",
    "L3Config",
    "MultiLevelCacheService",
    "StrategyConfig",
    "create_multi_level_cache",
]
