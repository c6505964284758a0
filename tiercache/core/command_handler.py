"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work
to the cache service, and reports results through the UserInterface.
"""

import json
import logging
from typing import List, Optional

from tiercache.core.services.cache_service import MultiLevelCacheService
from tiercache.domain.interfaces.user_interface import UserInterface
from tiercache.domain.models.common import CACHE_LEVELS, CacheKey

logger = logging.getLogger(__name__)

class CommandHandler:
    """Handles incoming commands and delegates to the cache service."""

    def __init__(self, cache_service: MultiLevelCacheService, ui: UserInterface):
        """Initializes the CommandHandler with the cache and the UI adapter."""
        self.cache_service = cache_service
        self.ui = ui

    async def handle_get(self, key: str, skip_l1: bool = False, skip_l2: bool = False, skip_l3: bool = False) -> bool:
        """Handles the 'get' command. Returns True on a hit."""
        logger.info(f"Handling 'get' command for key: {key}")
        value = await self.cache_service.get(CacheKey(key), skip_l1=skip_l1, skip_l2=skip_l2, skip_l3=skip_l3)
        if value is None:
            self.ui.display_warning(f"Cache miss for key '{key}'.")
            return False
        self.ui.display_output(value, title=key)
        return True

    async def handle_set(self, key: str, raw_value: str, ttl: Optional[int] = None, as_json: bool = False) -> bool:
        """Handles the 'set' command. ``as_json`` parses the value as JSON first."""
        logger.info(f"Handling 'set' command for key: {key}")
        value = raw_value
        if as_json:
            try:
                value = json.loads(raw_value)
            except json.JSONDecodeError as e:
                self.ui.display_error(f"Value is not valid JSON: {e}")
                return False

        success = await self.cache_service.set(CacheKey(key), value, ttl=ttl)
        if success:
            self.ui.display_info(f"Stored key '{key}'.")
        else:
            self.ui.display_error(f"Failed to store key '{key}'.")
        return success

    async def handle_delete(self, key: str) -> bool:
        logger.info(f"Handling 'delete' command for key: {key}")
        success = await self.cache_service.delete(CacheKey(key))
        if success:
            self.ui.display_info(f"Deleted key '{key}'.")
        else:
            self.ui.display_error(f"Failed to delete key '{key}' from every level.")
        return success

    async def handle_clear_cache(self, level: str) -> bool:
        """Handles the 'clear-cache' command."""
        logger.info(f"Handling 'clear-cache' command for level: {level}")
        if level != 'all' and level not in CACHE_LEVELS:
            self.ui.display_error("Invalid cache level. Choose 'l1', 'l2', 'l3', or 'all'.")
            return False
        success = await self.cache_service.clear(None if level == 'all' else level)
        if success:
            self.ui.display_info(f"Cache level '{level}' cleared successfully.")
        else:
            self.ui.display_error(f"Failed to clear cache level '{level}'.")
        return success

    async def handle_invalidate(self, pattern: str) -> int:
        logger.info(f"Handling 'invalidate' command for pattern: {pattern}")
        try:
            count = await self.cache_service.invalidate_pattern(pattern)
        except Exception as e:
            logger.error(f"Invalidation failed for pattern '{pattern}': {e}", exc_info=True)
            self.ui.display_error(f"Invalidation failed: {e}")
            return 0
        self.ui.display_info(f"Invalidated {count} entries matching '{pattern}'.")
        return count

    async def handle_warmup(self, keys: List[str]) -> None:
        logger.info(f"Handling 'warmup' command for {len(keys)} keys")
        await self.cache_service.warmup([CacheKey(k) for k in keys])
        self.ui.display_info(f"Warmup attempted for {len(keys)} keys.")

    async def handle_stats(self, as_json: bool = False) -> None:
        """Refreshes tier sizes, then shows the statistics snapshot as a table or as JSON."""
        await self.cache_service.get_size()
        stats = self.cache_service.get_stats()
        if as_json:
            self.ui.display_output(stats.to_dict(), title="Cache Statistics")
        else:
            self.ui.display_stats(stats)

    async def handle_size(self) -> None:
        sizes = await self.cache_service.get_size()
        self.ui.display_mapping("Cache Size", {k.upper(): v for k, v in sizes.items()})

    async def handle_operations(self, limit: int = 20) -> None:
        self.ui.display_operations(self.cache_service.get_operations(limit))

    async def handle_cleanup(self) -> int:
        removed = await self.cache_service.run_cleanup()
        self.ui.display_info(f"Cleanup removed {removed} expired or unreadable L3 files.")
        return removed

    async def handle_health(self) -> bool:
        """Shows per-level health. Returns True when every enabled level is healthy."""
        report = await self.cache_service.health_check()
        self.ui.display_mapping(
            "Cache Health",
            {level.upper(): info["status"] for level, info in report.items()},
        )
        return all(info["status"] in ("healthy", "disabled") for info in report.values())
