"""L3 disk cache tier.

Each item lives in its own file at ``base_path/<shard>/<normalized_key>.cache``
where the shard is the first two hex characters of the key, bounding the
fan-out of any single directory. File I/O goes through `aiofiles`; directory
walks run in a worker thread so the event loop never blocks.
"""

import asyncio
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

import aiofiles
import aiofiles.os

from tiercache.domain.exceptions import CacheSerializationError
from tiercache.domain.interfaces.cache import CacheTier
from tiercache.domain.models.cache import CacheItem
from tiercache.domain.models.common import NormalizedKey
from tiercache.infrastructure.cache.codec import decode_item, encode_item
from tiercache.infrastructure.cache.key_normalizer import shard_for

logger = logging.getLogger(__name__)

CACHE_FILE_SUFFIX = ".cache"
TEMP_FILE_SUFFIX = ".tmp"
# Temp files untouched for this long belong to writes that never finished
STALE_TEMP_AGE_MS = 60 * 60 * 1000


def _epoch_millis() -> float:
    return time.time() * 1000


class DiskTier(CacheTier):
    """Persistent L3 tier of sharded, one-file-per-item storage."""

    level = "l3"

    def __init__(
        self,
        base_path: Union[str, Path] = "./cache",
        max_file_size: int = 10 * 1024 * 1024,
        compression_enabled: bool = True,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initializes the disk tier. The base directory is created lazily on first write.

        Args:
            base_path: Root directory of the cache tree.
            max_file_size: Largest encoded item accepted, in bytes.
            compression_enabled: Deflate stored files.
            clock: Returns the current time in epoch milliseconds.
        """
        # Ensure base_path is a Path object for cross-platform compatibility
        self.base_path = Path(base_path)
        self.max_file_size = max_file_size
        self.compression_enabled = compression_enabled
        self._clock = clock or _epoch_millis
        logger.debug(
            f"DiskTier initialized (base_path={self.base_path}, max_file_size={max_file_size}, "
            f"compression={compression_enabled})"
        )

    def file_path(self, key: NormalizedKey) -> Path:
        """Returns the file path for a normalized key."""
        return self.base_path / shard_for(key) / f"{key}{CACHE_FILE_SUFFIX}"

    def _temp_path(self, path: Path) -> Path:
        # Unique per write so concurrent writers of one key never share a temp file
        return path.with_name(f"{path.name}.{uuid.uuid4().hex}{TEMP_FILE_SUFFIX}")

    def _walk(self, suffix: str) -> List[Path]:
        """Walks the cache tree. Returns [] if the base directory does not exist yet."""
        if not self.base_path.is_dir():
            return []
        found = []
        for root, _dirs, files in os.walk(self.base_path):
            for name in files:
                if name.endswith(suffix):
                    found.append(Path(root) / name)
        return found

    def _list_cache_files(self) -> List[Path]:
        return self._walk(CACHE_FILE_SUFFIX)

    def _list_stale_temp_files(self, now: float) -> List[Path]:
        """Temp files older than STALE_TEMP_AGE_MS, left behind by interrupted writes."""
        stale = []
        for path in self._walk(TEMP_FILE_SUFFIX):
            try:
                modified = path.stat().st_mtime * 1000
            except FileNotFoundError:
                continue
            if now - modified > STALE_TEMP_AGE_MS:
                stale.append(path)
        return stale

    async def _read_item(self, path: Path) -> CacheItem[Any]:
        async with aiofiles.open(path, mode="rb") as f:
            data = await f.read()
        return decode_item(data)

    async def _remove(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass

    async def get(self, key: NormalizedKey) -> Optional[CacheItem[Any]]:
        path = self.file_path(key)
        try:
            item = await self._read_item(path)
        except FileNotFoundError:
            return None
        except CacheSerializationError as e:
            # Left in place; the cleanup sweep removes unparsable files
            logger.warning(f"L3 cache file {path} could not be decoded: {e}")
            return None
        except OSError as e:
            logger.warning(f"Failed to read L3 cache file {path}: {e}")
            return None

        now = self._clock()
        if item.is_expired(now):
            logger.debug(f"L3 cache expired for key: {key[:10]}... Removing file.")
            try:
                await self._remove(path)
            except OSError as e:
                logger.warning(f"Failed to remove expired L3 cache file {path}: {e}")
            return None

        item.touch(now)
        return item

    async def set(self, key: NormalizedKey, item: CacheItem[Any]) -> bool:
        path = self.file_path(key)
        try:
            data = encode_item(item, self.compression_enabled)
        except CacheSerializationError as e:
            logger.error(f"L3 serialization error for key {key[:10]}...: {e}")
            return False

        if len(data) > self.max_file_size:
            logger.warning(
                f"L3 cache item too large for key: {key[:10]}... "
                f"({len(data)} bytes > {self.max_file_size} bytes)"
            )
            return False

        temp_path = self._temp_path(path)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            # Write to a private temp file, then rename over the target atomically
            async with aiofiles.open(temp_path, mode="wb") as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, path)
            logger.debug(f"Stored item in L3 cache: key={key[:10]}..., file={path}")
            return True
        except OSError as e:
            logger.error(f"Failed to write L3 cache file {path}: {e}")
            try:
                await self._remove(temp_path)
            except OSError:
                logger.debug(f"Could not remove temp file {temp_path}")
            return False

    async def delete(self, key: NormalizedKey) -> bool:
        path = self.file_path(key)
        try:
            await self._remove(path)
            return True
        except OSError as e:
            logger.warning(f"Failed to delete L3 cache file {path}: {e}")
            return False

    async def clear(self) -> bool:
        files = await asyncio.to_thread(self._list_cache_files)
        success = True
        for path in files:
            try:
                await self._remove(path)
            except OSError as e:
                logger.warning(f"Failed to delete L3 cache file {path}: {e}")
                success = False
        logger.info(f"Cleared L3 (disk) cache at {self.base_path}. Removed {len(files)} files.")
        return success

    async def size(self) -> int:
        files = await asyncio.to_thread(self._list_cache_files)
        return len(files)

    async def invalidate(self, pattern: str) -> int:
        """Not supported: file names are key digests, so there is nothing to match. Entries expire by TTL."""
        logger.debug(f"Pattern invalidation is not supported on L3; ignoring pattern: {pattern}")
        return 0

    async def sweep(self) -> int:
        """Removes expired and unparsable items and abandoned temp files. Returns the number removed."""
        files = await asyncio.to_thread(self._list_cache_files)
        now = self._clock()
        removed = 0
        for path in files:
            try:
                item = await self._read_item(path)
                if not item.is_expired(now):
                    continue
                logger.debug(f"L3 sweep removing expired file: {path}")
            except FileNotFoundError:
                continue
            except (CacheSerializationError, OSError) as e:
                logger.debug(f"L3 sweep removing unreadable file {path}: {e}")
            try:
                await self._remove(path)
                removed += 1
            except OSError as e:
                logger.warning(f"L3 sweep could not remove {path}: {e}")

        for path in await asyncio.to_thread(self._list_stale_temp_files, now):
            try:
                await self._remove(path)
                removed += 1
                logger.debug(f"L3 sweep removed abandoned temp file: {path}")
            except OSError as e:
                logger.warning(f"L3 sweep could not remove {path}: {e}")
        if removed:
            logger.info(f"L3 sweep removed {removed} of {len(files)} cache files.")
        return removed

    async def is_writable(self) -> bool:
        """True if the base directory exists (or can be created) and is writable."""
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
        except OSError as e:
            logger.warning(f"L3 base path {self.base_path} is not usable: {e}")
            return False
        return await asyncio.to_thread(os.access, self.base_path, os.W_OK)
