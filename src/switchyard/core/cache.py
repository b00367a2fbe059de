"""Compiled route data cache.

This module provides:
- Cache interface over string blobs
- In-memory, file and Redis backends
- Backend selection from configuration
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import redis

from switchyard.core.config import CacheConfig
from switchyard.core.exceptions import CacheError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "router_parsed_data"


class RouteCache(ABC):
    """Abstract base class for compiled route data caches."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Retrieve a cached blob.

        Args:
            key: Cache key

        Returns:
            Stored blob if present, None otherwise
        """

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a blob under a key."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Check whether a key is stored."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored key."""


class InMemoryRouteCache(RouteCache):
    """In-memory cache for testing and single-process use."""

    def __init__(self) -> None:
        self.entries: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.entries.get(key)

    def set(self, key: str, value: str) -> None:
        self.entries[key] = value

    def has(self, key: str) -> bool:
        return key in self.entries

    def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    def clear(self) -> None:
        self.entries.clear()


class FileRouteCache(RouteCache):
    """Stores one JSON file per key, named by the md5 digest of the key."""

    SUFFIX = ".json"

    def __init__(self, directory: str | Path = "tmp/switchyard-cache"):
        """Initialize the file cache.

        Args:
            directory: Cache directory, created on first write
        """
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / (hashlib.md5(key.encode()).hexdigest() + self.SUFFIX)

    def _ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"Impossible to create cache directory: {self.directory}") from e

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise CacheError(f"Failed to read cache file {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        self._ensure_directory()
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise CacheError(f"Failed to write cache file {path}: {e}") from e
        logger.debug(f"Wrote route cache file {path}", extra={"cache_key": key})

    def has(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        if not self.directory.is_dir():
            return
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            path.unlink(missing_ok=True)


class RedisRouteCache(RouteCache):
    """Redis-based cache, shared between processes."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "switchyard:",
        ttl: int | None = None,
        client: redis.Redis | None = None,
    ):
        """Initialize Redis cache.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix for cache keys
            ttl: Entry expiration in seconds (None = no expiration)
            client: Existing client to use instead of connecting to redis_url
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.ttl = ttl
        self.client = client or redis.Redis.from_url(redis_url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> str | None:
        try:
            value = self.client.get(self._key(key))
        except redis.RedisError as e:
            raise CacheError(f"Failed to read route cache key {key}: {e}") from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self.client.set(self._key(key), value, ex=self.ttl)
        except redis.RedisError as e:
            raise CacheError(f"Failed to write route cache key {key}: {e}") from e

    def has(self, key: str) -> bool:
        try:
            return bool(self.client.exists(self._key(key)))
        except redis.RedisError as e:
            raise CacheError(f"Failed to check route cache key {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as e:
            raise CacheError(f"Failed to delete route cache key {key}: {e}") from e

    def clear(self) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{self.key_prefix}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            raise CacheError(f"Failed to clear route cache: {e}") from e


def create_cache(config: CacheConfig) -> RouteCache | None:
    """Create the cache backend described by configuration.

    Args:
        config: Cache configuration

    Returns:
        Cache backend, or None when caching is disabled
    """
    if not config.enabled:
        return None

    if config.backend == "file":
        return FileRouteCache(config.directory)
    if config.backend == "redis":
        return RedisRouteCache(config.redis_url, key_prefix=config.key_prefix, ttl=config.ttl)
    return InMemoryRouteCache()
