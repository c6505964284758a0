"""Serialization of CacheItems for the Redis and disk tiers.

Items travel as UTF-8 JSON. With compression enabled the JSON is deflated
with zlib. Decoding detects which form it was given, so stores written
with either setting remain readable.
"""

import json
import logging
import zlib
from typing import Any

from tiercache.domain.exceptions import CacheSerializationError
from tiercache.domain.models.cache import CacheItem

logger = logging.getLogger(__name__)

COMPRESSION_LEVEL = 6
# First byte of a zlib stream at every compression level used here
ZLIB_HEADER = b"x"


def value_size(value: Any) -> int:
    """Byte length of the JSON form of ``value``. Raises CacheSerializationError if not serializable."""
    try:
        return len(json.dumps(value).encode("utf-8"))
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Value is not JSON-serializable: {e}") from e


def encode_item(item: CacheItem[Any], compress: bool = False) -> bytes:
    """Encodes an item to bytes, deflating it when ``compress`` is set."""
    try:
        raw = json.dumps(item.to_dict()).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Failed to serialize item {item.key[:10]}...: {e}") from e

    if not compress:
        return raw
    try:
        return zlib.compress(raw, COMPRESSION_LEVEL)
    except zlib.error as e:
        logger.warning(f"Compression failed for key {item.key[:10]}..., storing plain JSON: {e}")
        return raw


def decode_item(data: bytes) -> CacheItem[Any]:
    """Decodes bytes produced by encode_item with or without compression.

    A zlib stream is recognised by its header byte (JSON objects start with
    ``{``), so the reader's own compression setting does not matter.
    Raises CacheSerializationError on bad data.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    payload = data
    if data[:1] == ZLIB_HEADER:
        try:
            payload = zlib.decompress(data)
        except zlib.error as e:
            raise CacheSerializationError(f"Failed to inflate cache item: {e}") from e

    try:
        parsed = json.loads(payload.decode("utf-8"))
        if not isinstance(parsed, dict):
            raise ValueError(f"expected an object, got {type(parsed).__name__}")
        return CacheItem.from_dict(parsed)
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise CacheSerializationError(f"Failed to decode cache item: {e}") from e
