"""Configuration model for the multi-level cache.

Units follow the established configuration format: L1 ``max_age`` and L3
``cleanup_interval`` are milliseconds, L2 ``default_ttl`` is seconds and L3
``max_file_size`` is bytes.
"""

import copy
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional

from tiercache.domain.exceptions import CacheConfigError
from tiercache.domain.models.common import EVICTION_POLICIES, EvictionPolicy

logger = logging.getLogger(__name__)

# camelCase names accepted for compatibility with existing config files
_CAMEL_ALIASES = {
    "maxSize": "max_size",
    "maxAge": "max_age",
    "updateAgeOnGet": "update_age_on_get",
    "keyPrefix": "key_prefix",
    "defaultTTL": "default_ttl",
    "compressionEnabled": "compression_enabled",
    "basePath": "base_path",
    "maxFileSize": "max_file_size",
    "cleanupInterval": "cleanup_interval",
    "writeThrough": "write_through",
    "writeBack": "write_back",
    "readThrough": "read_through",
    "evictionPolicy": "eviction_policy",
}


@dataclass
class L1Config:
    enabled: bool = True
    max_size: int = 1000
    max_age: int = 5 * 60 * 1000  # 5 minutes
    update_age_on_get: bool = True


@dataclass
class L2Config:
    enabled: bool = True
    key_prefix: str = "cache:"
    default_ttl: int = 3600  # 1 hour
    compression_enabled: bool = False


@dataclass
class L3Config:
    enabled: bool = True
    base_path: str = "./cache"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    cleanup_interval: int = 60 * 60 * 1000  # 1 hour
    compression_enabled: bool = True


@dataclass
class StrategyConfig:
    write_through: bool = False
    write_back: bool = True
    # Informational only: lookups always fall through to lower tiers.
    read_through: bool = True
    eviction_policy: EvictionPolicy = "lru"


@dataclass
class CacheConfig:
    """Complete configuration for a MultiLevelCacheService."""
    l1: L1Config = field(default_factory=L1Config)
    l2: L2Config = field(default_factory=L2Config)
    l3: L3Config = field(default_factory=L3Config)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)

    def validate(self) -> None:
        """Raises CacheConfigError for values the tiers cannot work with."""
        if self.l1.max_size <= 0:
            raise CacheConfigError(f"l1.max_size must be positive, got {self.l1.max_size}")
        if self.l1.max_age <= 0:
            raise CacheConfigError(f"l1.max_age must be positive, got {self.l1.max_age}")
        if self.l2.default_ttl <= 0:
            raise CacheConfigError(f"l2.default_ttl must be positive, got {self.l2.default_ttl}")
        if self.l3.max_file_size <= 0:
            raise CacheConfigError(f"l3.max_file_size must be positive, got {self.l3.max_file_size}")
        if self.l3.cleanup_interval <= 0:
            raise CacheConfigError(f"l3.cleanup_interval must be positive, got {self.l3.cleanup_interval}")
        if self.strategy.eviction_policy not in EVICTION_POLICIES:
            raise CacheConfigError(
                f"Unknown eviction policy '{self.strategy.eviction_policy}'. "
                f"Choose one of {', '.join(EVICTION_POLICIES)}."
            )
        if self.strategy.write_through and self.strategy.write_back:
            logger.warning("Both write_through and write_back are enabled; write-through takes precedence.")

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "CacheConfig":
        """Returns a copy with ``overrides`` deep-merged section by section."""
        result = copy.deepcopy(self)
        if not overrides:
            return result
        for section_name, values in overrides.items():
            if section_name not in ("l1", "l2", "l3", "strategy"):
                raise CacheConfigError(f"Unknown configuration section '{section_name}'")
            if not isinstance(values, Mapping):
                raise CacheConfigError(f"Configuration section '{section_name}' must be a mapping")
            section = getattr(result, section_name)
            allowed = {f.name for f in fields(section)}
            for raw_name, value in values.items():
                name = _CAMEL_ALIASES.get(raw_name, raw_name)
                if name not in allowed:
                    raise CacheConfigError(f"Unknown option '{raw_name}' in section '{section_name}'")
                setattr(section, name, value)
        return result

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "CacheConfig":
        """Builds a config from nested mappings, filling gaps with defaults."""
        return cls().merged(data)
