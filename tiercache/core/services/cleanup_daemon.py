"""Periodic cleanup of the disk tier and the operation log.

Runs as a background asyncio task: every interval it sweeps expired and
unparsable files out of L3 and drops operation log entries older than
24 hours. A failing pass is logged and reported; the loop keeps going.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from tiercache.core.services.statistics import OPERATION_RETENTION_MS, OperationLog
from tiercache.domain.events.cache_events import CacheEvent, CleanupCompleted, CleanupFailed
from tiercache.infrastructure.cache.disk_tier import DiskTier

logger = logging.getLogger(__name__)


def _epoch_millis() -> float:
    return time.time() * 1000


class CleanupDaemon:
    """Background sweeper for L3 files and stale operation log entries."""

    def __init__(
        self,
        disk_tier: Optional[DiskTier],
        operation_log: OperationLog,
        interval_ms: int,
        clock: Optional[Callable[[], float]] = None,
        emit: Optional[Callable[[CacheEvent], None]] = None,
    ):
        """Initializes the daemon. Call start() from a running event loop.

        Args:
            disk_tier: Tier to sweep, or None to only prune the operation log.
            operation_log: Log to prune.
            interval_ms: Delay between passes in milliseconds.
            clock: Returns the current time in epoch milliseconds.
            emit: Receives CleanupCompleted / CleanupFailed events.
        """
        self.disk_tier = disk_tier
        self.operation_log = operation_log
        self.interval_ms = interval_ms
        self._clock = clock or _epoch_millis
        self._emit = emit
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.debug("Cleanup daemon already running.")
            return
        self._task = asyncio.create_task(self._run(), name="tiercache-cleanup")
        logger.info(f"Cleanup daemon started (interval={self.interval_ms}ms).")

    async def stop(self) -> None:
        """Cancels the background task and waits for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cleanup daemon stopped.")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Cache cleanup error: {e}", exc_info=True)
                self._publish(CleanupFailed(error_type=type(e).__name__, error_message=str(e)))

    async def run_once(self) -> int:
        """Runs a single cleanup pass. Returns the number of L3 files removed."""
        removed = 0
        if self.disk_tier is not None:
            removed = await self.disk_tier.sweep()
        cutoff = self._clock() - OPERATION_RETENTION_MS
        pruned = self.operation_log.prune_older_than(cutoff)
        logger.debug(f"Cleanup pass complete: {removed} files removed, {pruned} operations pruned.")
        self._publish(CleanupCompleted(files_removed=removed, operations_pruned=pruned))
        return removed

    def _publish(self, event: CacheEvent) -> None:
        if self._emit is not None:
            self._emit(event)
