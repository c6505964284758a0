"""Domain Events emitted by the cache.

Background work (write-back propagation, cleanup sweeps) cannot report
failures through the call that triggered it, so it publishes these events
to the listener configured on the cache service.
"""

from dataclasses import dataclass, field
import time
from typing import Optional

# Base Event Class
@dataclass
class CacheEvent:
    """Base class for cache events."""
    pass

@dataclass
class ItemEvicted(CacheEvent):
    """Event triggered when L1 evicts an entry to make room."""
    key: str
    level: str = "l1"
    timestamp: float = field(default_factory=time.time)

@dataclass
class PropagationFailed(CacheEvent):
    """Event triggered when write-back propagation to a lower tier fails."""
    key: str
    level: str
    error_message: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

@dataclass
class CleanupCompleted(CacheEvent):
    """Event triggered after a cleanup pass."""
    files_removed: int
    operations_pruned: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class CleanupFailed(CacheEvent):
    """Event triggered when a cleanup pass raises."""
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)
