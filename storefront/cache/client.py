"""
Key-value backing store for the catalogue caches.

One CacheClient is constructed per process and passed by reference to every
cache component (snapshot store, popular products, facets, category index).

Values are stored as JSON strings. The store is ONLY a cache: any backend
error is logged and treated as a miss on read, and ignored on write.

Two backends:
- RedisCacheClient : redis.asyncio, local Redis or REDIS_URL (rediss:// for TLS)
- MemoryCacheClient: in-process dict with TTL, for single-process deployments
                     and tests
"""

import fnmatch
import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis

from storefront.core.config import StorefrontConfig
from storefront.core.errors import BackingStoreFailure
from storefront.utils.logger import get_logger

logger = get_logger("cache.client")


class CacheClient:
    """
    Base cache client: JSON (de)serialization and failure isolation.

    Subclasses implement the raw string operations (_get, _set, ...). Raw
    operations may raise; the public methods never do.
    """

    backend_name = "abstract"

    #
    # Raw operations (implemented by backends)
    #

    async def _get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def _set(self, key: str, value: str, ttl: Optional[int]) -> None:
        raise NotImplementedError

    async def _set_many(self, items: Dict[str, str], ttl: Optional[int]) -> None:
        raise NotImplementedError

    async def _mget(self, keys: List[str]) -> List[Optional[str]]:
        raise NotImplementedError

    async def _keys(self, pattern: str) -> List[str]:
        raise NotImplementedError

    async def _delete(self, keys: List[str]) -> int:
        raise NotImplementedError

    async def _ping(self) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources."""

    #
    # Public API
    #

    async def ping(self) -> bool:
        """Check if the backing store is reachable."""
        try:
            return bool(await self._ping())
        except Exception:
            return False

    async def get_json(self, key: str) -> Optional[Any]:
        """Get and decode a cached value. Returns None on miss or error."""
        try:
            cached = await self._get(key)
        except Exception as e:
            logger.warning(f"Cache read error for {key}: {e}")
            return None
        if cached is None:
            return None
        try:
            return json.loads(cached)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache entry {key} is not valid JSON, treating as miss: {e}")
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Encode and cache a value. Returns False (never raises) on error."""
        try:
            await self._set(key, json.dumps(value), ttl)
            return True
        except Exception as e:
            logger.error(f"Cache write error for {key}: {e}")
            return False

    async def set_many_json(self, items: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """Cache several values in one batch."""
        if not items:
            return True
        try:
            await self._set_many({k: json.dumps(v) for k, v in items.items()}, ttl)
            return True
        except Exception as e:
            logger.error(f"Cache batch write error ({len(items)} keys): {e}")
            return False

    async def mget_json(self, keys: List[str]) -> List[Optional[Any]]:
        """Get several values at once. Missing or undecodable entries are None."""
        if not keys:
            return []
        try:
            raw_values = await self._mget(keys)
        except Exception as e:
            logger.warning(f"Cache multi-read error ({len(keys)} keys): {e}")
            return [None] * len(keys)

        values = []
        for key, raw in zip(keys, raw_values):
            if raw is None:
                values.append(None)
                continue
            try:
                values.append(json.loads(raw))
            except (TypeError, ValueError):
                logger.warning(f"Cache entry {key} is not valid JSON, skipping")
                values.append(None)
        return values

    async def keys(self, pattern: str) -> List[str]:
        """List keys matching a glob-style pattern. Empty list on error."""
        try:
            return sorted(await self._keys(pattern))
        except Exception as e:
            logger.warning(f"Cache key scan error for {pattern}: {e}")
            return []

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns count deleted (0 on error)."""
        if not keys:
            return 0
        try:
            return await self._delete(list(keys))
        except Exception as e:
            logger.error(f"Cache delete error for {keys}: {e}")
            return 0

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key under a prefix. Returns count deleted."""
        keys = await self.keys(f"{prefix}*")
        if not keys:
            return 0
        return await self.delete(*keys)


class RedisCacheClient(CacheClient):
    """Redis-backed cache client (redis.asyncio)."""

    backend_name = "redis"

    def __init__(self, client: "redis.Redis"):
        self.client = client

    @classmethod
    def from_config(cls, config: StorefrontConfig) -> "RedisCacheClient":
        """
        Build a client from configuration.

        Connection priority:
        1. REDIS_URL (e.g. cloud-hosted, rediss:// TLS)
        2. REDIS_HOST + REDIS_PORT + REDIS_DB (local)
        """
        if config.redis_url:
            client = redis.from_url(
                config.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        else:
            client = redis.Redis(
                host=config.redis_host,
                port=config.redis_port,
                db=config.redis_db,
                password=config.redis_password,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=5,
            )
        return cls(client)

    async def _get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def _set(self, key: str, value: str, ttl: Optional[int]) -> None:
        await self.client.set(key, value, ex=ttl)

    async def _set_many(self, items: Dict[str, str], ttl: Optional[int]) -> None:
        async with self.client.pipeline(transaction=False) as pipe:
            for key, value in items.items():
                pipe.set(key, value, ex=ttl)
            await pipe.execute()

    async def _mget(self, keys: List[str]) -> List[Optional[str]]:
        return await self.client.mget(keys)

    async def _keys(self, pattern: str) -> List[str]:
        return [key async for key in self.client.scan_iter(match=pattern, count=100)]

    async def _delete(self, keys: List[str]) -> int:
        return await self.client.delete(*keys)

    async def _ping(self) -> bool:
        return await self.client.ping()

    async def close(self) -> None:
        await self.client.aclose()


class MemoryCacheClient(CacheClient):
    """
    In-process cache client with per-key TTL.

    Entries are held as JSON strings so every read returns an independent copy.
    Expiry is lazy: stale entries are dropped when touched or listed.
    """

    backend_name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._data[key]
            return None
        return value

    def _put(self, key: str, value: str, ttl: Optional[int]) -> None:
        if not isinstance(value, str):
            raise BackingStoreFailure(f"value for {key} must be a string")
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def _get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def _set(self, key: str, value: str, ttl: Optional[int]) -> None:
        self._put(key, value, ttl)

    async def _set_many(self, items: Dict[str, str], ttl: Optional[int]) -> None:
        for key, value in items.items():
            self._put(key, value, ttl)

    async def _mget(self, keys: List[str]) -> List[Optional[str]]:
        return [self._live(key) for key in keys]

    async def _keys(self, pattern: str) -> List[str]:
        return [
            key for key in list(self._data)
            if fnmatch.fnmatchcase(key, pattern) and self._live(key) is not None
        ]

    async def _delete(self, keys: List[str]) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                deleted += 1
            self._data.pop(key, None)
        return deleted

    async def _ping(self) -> bool:
        return True


def create_cache_client(config: StorefrontConfig) -> CacheClient:
    """Construct the process-wide cache client for the configured backend."""
    if config.cache_backend == "memory":
        logger.info("Using in-process memory cache backend")
        return MemoryCacheClient()
    if config.cache_backend != "redis":
        logger.warning(f"Unknown cache backend '{config.cache_backend}', falling back to redis")
    return RedisCacheClient.from_config(config)
