"""Exception types raised inside the cache domain.

Tier adapters translate I/O failures into misses or ``False`` results; these
exceptions cover the cases the tiers need to tell apart internally and
configuration mistakes that should surface immediately.
"""


class CacheError(Exception):
    """Base class for cache errors."""


class CacheSerializationError(CacheError):
    """Raised when a value cannot be encoded or stored data cannot be decoded."""


class CacheConfigError(CacheError):
    """Raised when a cache configuration is invalid."""
