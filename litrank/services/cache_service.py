"""
Query result cache on diskcache.

Bounded three ways:
1. TTL per entry (expired entries are never returned)
2. max_entries, trimmed oldest-first after every write
3. size_limit in bytes, enforced by diskcache's eviction policy

Keys ignore pagination, so every page of a query shares one entry.
"""

import hashlib
import json
from pathlib import Path
from typing import Optional

import diskcache
import structlog

from litrank.models.cache import CachedResult, CacheStats
from litrank.models.config import CacheConfig
from litrank.models.search import SearchRequest
from litrank.observability.metrics import CACHE_ENTRIES, CACHE_OPERATIONS
from litrank.utils.exceptions import CacheError

logger = structlog.get_logger()


class QueryCache:
    """TTL and size bounded cache of ranked search results."""

    def __init__(self, config: Optional[CacheConfig] = None):
        """
        Initialize the cache.

        Args:
            config: Cache configuration; disabled caches are no-ops.
        """
        self.config = config or CacheConfig()
        self.cache_dir = Path(self.config.cache_dir)
        self._hits = 0
        self._misses = 0
        self._cache: Optional[diskcache.Cache] = None

        if not self.config.enabled:
            logger.info("cache_disabled")
            return

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._cache = diskcache.Cache(
                str(self.cache_dir),
                size_limit=self.config.max_size_mb * 1024 * 1024,
                eviction_policy=self.config.eviction_policy,
            )
        except OSError as e:
            raise CacheError(f"Cannot open query cache at {self.cache_dir}: {e}") from e
        logger.info(
            "cache_initialized",
            cache_dir=str(self.cache_dir),
            ttl_seconds=self.config.ttl_seconds,
            max_entries=self.config.max_entries,
            eviction_policy=self.config.eviction_policy,
        )

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    @staticmethod
    def make_key(request: SearchRequest) -> str:
        """SHA256 over the canonical request minus page and limit."""
        canonical = json.dumps(request.cache_fields(), sort_keys=True, separators=(",", ":"))
        return "search:" + hashlib.sha256(canonical.encode()).hexdigest()

    def get(self, key: str) -> Optional[CachedResult]:
        if self._cache is None:
            return None

        try:
            data = self._cache.get(key)
        except Exception as e:
            CACHE_OPERATIONS.labels(operation="error").inc()
            logger.error("cache_get_error", key=key[:16], error=str(e))
            return None

        if data is None:
            self._misses += 1
            CACHE_OPERATIONS.labels(operation="miss").inc()
            logger.debug("cache_miss", key=key[:16])
            return None

        self._hits += 1
        CACHE_OPERATIONS.labels(operation="hit").inc()
        logger.info("cache_hit", key=key[:16])
        return CachedResult.model_validate(data)

    def set(self, key: str, value: CachedResult, ttl: Optional[int] = None) -> None:
        if self._cache is None:
            return

        expire = ttl if ttl is not None else self.config.ttl_seconds
        try:
            self._cache.set(key, value.model_dump(mode="json"), expire=expire)
            self._trim()
        except Exception as e:
            CACHE_OPERATIONS.labels(operation="error").inc()
            logger.error("cache_set_error", key=key[:16], error=str(e))
            return

        CACHE_OPERATIONS.labels(operation="set").inc()
        CACHE_ENTRIES.set(len(self._cache))
        logger.debug("cache_set", key=key[:16], papers=len(value.papers), ttl=expire)

    def _trim(self) -> None:
        """Drop expired entries, then the oldest until within max_entries."""
        assert self._cache is not None
        self._cache.expire()
        evicted = 0
        while len(self._cache) > self.config.max_entries:
            try:
                oldest, _ = self._cache.peekitem(last=False)
            except KeyError:
                break
            self._cache.delete(oldest)
            evicted += 1
        if evicted:
            CACHE_OPERATIONS.labels(operation="evict").inc(evicted)
            logger.info("cache_trimmed", evicted=evicted, max_entries=self.config.max_entries)

    def get_stats(self) -> CacheStats:
        if self._cache is None:
            return CacheStats(enabled=False)
        return CacheStats(
            entries=len(self._cache),
            hits=self._hits,
            misses=self._misses,
            max_entries=self.config.max_entries,
            disk_mb=round(self._cache.volume() / (1024 * 1024), 3),
        )

    def clear(self) -> None:
        if self._cache is None:
            return
        self._cache.clear()
        CACHE_ENTRIES.set(0)
        logger.info("cache_cleared")

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()
