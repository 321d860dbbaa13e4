"""
Snapshot store: the full catalogue held as one blob in the backing store.

Read path is cache-aside:
  1. unless forced, return the cached snapshot (no upstream I/O)
  2. otherwise fetch every page, transform, write with TTL, return

Snapshots are replaced wholesale, never merged. A failed rebuild raises and
leaves the previous snapshot in place.

Concurrent rebuilds of the same snapshot are collapsed into one upstream
fetch (single-flight). This changes timing only: every caller still gets the
result of a complete fetch.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import ValidationError

from storefront.cache.client import CacheClient
from storefront.cache.policy import PRODUCTS_PREFIX, SNAPSHOT_KEY
from storefront.catalogue.fetcher import CatalogueFetcher
from storefront.catalogue.models import CatalogueItem
from storefront.catalogue.transform import transform_products
from storefront.core.config import ONE_DAY
from storefront.utils.logger import get_logger

logger = get_logger("catalogue.snapshot")

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Share one in-flight coroutine between concurrent callers."""

    def __init__(self):
        self._inflight: Optional["asyncio.Task[T]"] = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight = task
            task.add_done_callback(self._release)
        # A cancelled caller must not cancel the shared fetch
        return await asyncio.shield(task)

    def _release(self, task: "asyncio.Task[T]") -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Mark as retrieved; callers awaiting the task re-raise it themselves
            task.exception()


class CachedSnapshot(Generic[T]):
    """
    Cache-aside holder for one wholesale snapshot under one key.

    Subclasses provide `_load` (upstream fetch + transform) and the JSON
    encoding of their value.
    """

    name = "snapshot"
    key = ""
    prefix = ""

    def __init__(self, cache: CacheClient, ttl: int = ONE_DAY, clock: Callable[[], float] = time.time):
        self.cache = cache
        self.ttl = ttl
        self._clock = clock
        self._flight: SingleFlight[T] = SingleFlight()

    async def _load(self) -> T:
        raise NotImplementedError

    def _encode(self, value: T) -> Any:
        raise NotImplementedError

    def _decode(self, payload: Any) -> T:
        raise NotImplementedError

    async def get(self, force_refresh: bool = False) -> T:
        if not force_refresh:
            cached = await self.read()
            if cached is not None:
                return cached
            logger.info(f"[{self.name}] cache miss, rebuilding")
        else:
            logger.info(f"[{self.name}] forced refresh")
        return await self._flight.run(self._rebuild)

    async def read(self) -> Optional[T]:
        """Return the cached value without touching upstream, or None."""
        envelope = await self.cache.get_json(self.key)
        if not isinstance(envelope, dict) or "value" not in envelope:
            return None
        try:
            return self._decode(envelope["value"])
        except (ValidationError, TypeError, ValueError, KeyError) as e:
            logger.warning(f"[{self.name}] cached snapshot unreadable, treating as miss: {e}")
            return None

    async def info(self) -> Dict[str, Any]:
        """Metadata of the cached snapshot (for the admin surface)."""
        envelope = await self.cache.get_json(self.key)
        if not isinstance(envelope, dict):
            return {"key": self.key, "cached": False}
        return {
            "key": self.key,
            "cached": True,
            "created_at": envelope.get("created_at"),
            "ttl": envelope.get("ttl"),
        }

    async def _rebuild(self) -> T:
        started = self._clock()
        value = await self._load()
        envelope = {
            "created_at": datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
            "ttl": self.ttl,
            "value": self._encode(value),
        }
        await self.cache.set_json(self.key, envelope, self.ttl)
        logger.info(f"[{self.name}] rebuilt in {self._clock() - started:.2f}s")
        return value

    async def refresh(self) -> T:
        return await self.get(force_refresh=True)

    async def clear(self) -> int:
        """Delete every key under this component's prefix."""
        deleted = await self.cache.delete_prefix(self.prefix)
        logger.info(f"[{self.name}] cleared {deleted} keys under {self.prefix}*")
        return deleted


class SnapshotStore(CachedSnapshot[List[CatalogueItem]]):
    """Whole-catalogue snapshot the query engine reads from."""

    name = "catalogue"
    key = SNAPSHOT_KEY
    prefix = PRODUCTS_PREFIX

    def __init__(self, cache: CacheClient, fetcher: CatalogueFetcher, ttl: int = ONE_DAY, **kwargs):
        super().__init__(cache, ttl, **kwargs)
        self.fetcher = fetcher

    async def get_all(self, force_refresh: bool = False) -> List[CatalogueItem]:
        """Full catalogue. Each call returns its own list."""
        return list(await self.get(force_refresh=force_refresh))

    async def _load(self) -> List[CatalogueItem]:
        raw = await self.fetcher.fetch_all()
        return transform_products(raw)

    def _encode(self, value: List[CatalogueItem]) -> Any:
        return [item.model_dump(mode="json") for item in value]

    def _decode(self, payload: Any) -> List[CatalogueItem]:
        if not isinstance(payload, list):
            raise TypeError("catalogue snapshot must be a list")
        return [CatalogueItem.model_validate(item) for item in payload]
