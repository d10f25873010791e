"""
Resolution Cache
================

Time-bounded memo of locator -> local asset ID, so the same locator is not
downloaded and uploaded twice within the TTL window.

Entries are keyed by a stable hash of the locator. After expiry a fresh fetch
may create a second copy of an asset that already exists locally; that
staleness is accepted.

Backends:
- MemoryResolutionCache: per-process dict (default)
- MongoResolutionCache: shared MongoDB collection with a TTL index
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from pymongo.errors import PyMongoError

from blockcopy_core.config.settings import CacheConfig
from blockcopy_core.constants import CACHE_KEY_PREFIX, DEFAULT_CACHE_TTL
from blockcopy_core.errors import CacheError, ConfigError

logger = logging.getLogger(__name__)


def cache_key(locator: str) -> str:
    """Stable cache key for a locator."""
    return CACHE_KEY_PREFIX + hashlib.md5(locator.encode('utf-8')).hexdigest()


class ResolutionCache(ABC):
    """Abstract locator -> asset ID cache."""

    ttl_seconds: int = DEFAULT_CACHE_TTL

    @abstractmethod
    def get(self, locator: str) -> Optional[int]:
        """Return the cached asset ID, or None on miss or expiry."""
        pass

    @abstractmethod
    def set(self, locator: str, asset_id: int) -> None:
        """Remember ``locator`` -> ``asset_id`` for the TTL window."""
        pass

    @abstractmethod
    def delete(self, locator: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


# ============================================================================
# IN-MEMORY
# ============================================================================

class MemoryResolutionCache(ResolutionCache):
    """Process-local cache. The lock only protects the dict."""

    def __init__(self, ttl_seconds: int = DEFAULT_CACHE_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[int, float]] = {}  # key -> (asset_id, expires_at)
        self._lock = threading.Lock()

    def get(self, locator: str) -> Optional[int]:
        key = cache_key(locator)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            asset_id, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return asset_id

    def set(self, locator: str, asset_id: int) -> None:
        with self._lock:
            self._entries[cache_key(locator)] = (int(asset_id), self._clock() + self.ttl_seconds)

    def delete(self, locator: str) -> None:
        with self._lock:
            self._entries.pop(cache_key(locator), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================================
# MONGODB
# ============================================================================

def _utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes unless tz_aware is set
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MongoResolutionCache(ResolutionCache):
    """
    Cache shared across processes through a MongoDB collection.

    MongoDB's TTL monitor only runs about once a minute, so expiry is also
    checked on read.
    """

    def __init__(self, collection, ttl_seconds: int = DEFAULT_CACHE_TTL,
                 clock: Callable[[], datetime] = _utcnow):
        self.ttl_seconds = ttl_seconds
        self._collection = collection
        self._clock = clock
        self._create_indexes()

    @classmethod
    def from_config(cls, config: CacheConfig) -> 'MongoResolutionCache':
        from pymongo import MongoClient

        client = MongoClient(config.mongodb_uri, serverSelectionTimeoutMS=5000)
        collection = client[config.mongodb_database][config.mongodb_collection]
        logger.info(f"Resolution cache using MongoDB collection: {config.mongodb_collection}")
        return cls(collection, ttl_seconds=config.ttl_seconds)

    def _create_indexes(self):
        self._collection.create_index("expires_at", expireAfterSeconds=0)

    def get(self, locator: str) -> Optional[int]:
        try:
            doc = self._collection.find_one({"_id": cache_key(locator)})
        except PyMongoError as e:
            logger.error(f"Failed to read cache entry for {locator}: {e}")
            raise CacheError(f"Failed to read cache entry for {locator}: {e}") from e
        if not doc:
            return None
        if doc.get("expires_at") is None or doc["expires_at"] <= self._clock():
            return None
        return int(doc["asset_id"])

    def set(self, locator: str, asset_id: int) -> None:
        now = self._clock()
        try:
            self._collection.update_one(
                {"_id": cache_key(locator)},
                {"$set": {
                    "locator": locator,
                    "asset_id": int(asset_id),
                    "created_at": now,
                    "expires_at": now + timedelta(seconds=self.ttl_seconds),
                }},
                upsert=True,
            )
        except PyMongoError as e:
            logger.error(f"Failed to write cache entry for {locator}: {e}")
            raise CacheError(f"Failed to write cache entry for {locator}: {e}") from e

    def delete(self, locator: str) -> None:
        try:
            self._collection.delete_one({"_id": cache_key(locator)})
        except PyMongoError as e:
            raise CacheError(f"Failed to delete cache entry for {locator}: {e}") from e

    def clear(self) -> None:
        try:
            self._collection.delete_many({})
        except PyMongoError as e:
            raise CacheError(f"Failed to clear cache: {e}") from e


def create_cache(config: Optional[CacheConfig] = None) -> ResolutionCache:
    """Build the cache backend named in ``config``."""
    config = config or CacheConfig()
    backend = config.backend.lower()

    if backend == "memory":
        return MemoryResolutionCache(ttl_seconds=config.ttl_seconds)
    if backend == "mongodb":
        return MongoResolutionCache.from_config(config)
    raise ConfigError(f"Unknown cache backend: {config.backend}")
