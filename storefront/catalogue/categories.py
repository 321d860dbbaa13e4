"""
Category index: one cache entry per category slug.

Lookups by slug are O(1) key reads and never need the catalogue snapshot.
"""
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from storefront.cache.client import CacheClient
from storefront.cache.policy import CATEGORY_PREFIX, category_key
from storefront.catalogue.models import CategoryRecord
from storefront.core.config import ONE_DAY
from storefront.core.errors import UpstreamFetchFailure
from storefront.upstream.woocommerce import WooCommerceClient
from storefront.utils.logger import get_logger

logger = get_logger("catalogue.categories")


def _record(raw: Any) -> Optional[CategoryRecord]:
    if not isinstance(raw, dict):
        return None
    try:
        return CategoryRecord.model_validate({
            "id": raw.get("id"),
            "slug": raw.get("slug"),
            "name": raw.get("name") or "",
            "count": raw.get("count") or 0,
        })
    except ValidationError:
        return None


class CategoryIndex:
    name = "categories"
    prefix = CATEGORY_PREFIX

    def __init__(self, cache: CacheClient, client: WooCommerceClient, ttl: int = ONE_DAY, per_page: int = 100):
        self.cache = cache
        self.client = client
        self.ttl = ttl
        self.per_page = per_page

    async def get_all(self) -> List[CategoryRecord]:
        """Every category currently cached. Reads the store only, never upstream."""
        keys = await self.cache.keys(f"{CATEGORY_PREFIX}*")
        if not keys:
            return []
        records = [_record(raw) for raw in await self.cache.mget_json(keys)]
        return [r for r in records if r is not None and r.name]

    async def get_by_slug(self, slug: str) -> Optional[CategoryRecord]:
        """Cache-aside lookup. None when the category does not exist or on failure."""
        key = category_key(slug)
        cached = _record(await self.cache.get_json(key))
        if cached is not None:
            return cached

        try:
            result = await self.client.list_categories(page=1, per_page=1, slug=slug)
        except UpstreamFetchFailure as e:
            logger.error(f"Error fetching category {slug}: {e}")
            return None

        record = _record(result.items[0]) if result.items else None
        if record is not None:
            await self.cache.set_json(key, record.model_dump(), self.ttl)
        return record

    async def warm(self) -> int:
        """
        Page through upstream categories, caching one entry per category.

        Stops early when a page starts with an id already seen, which means
        upstream pagination is not advancing. Returns the number of distinct
        categories seen.
        """
        logger.info("Warming up category cache...")
        seen: Set[int] = set()
        page = 1
        while True:
            result = await self.client.list_categories(page=page, per_page=self.per_page)
            if not result.items:
                break

            first_id = result.items[0].get("id") if isinstance(result.items[0], dict) else None
            if first_id in seen:
                logger.warning(f"Stopping category warm-up: page {page} repeats id {first_id}")
                break

            batch: Dict[str, Any] = {}
            for raw in result.items:
                record = _record(raw)
                if record is None:
                    continue
                seen.add(record.id)
                if record.slug:
                    batch[category_key(record.slug)] = record.model_dump()
            await self.cache.set_many_json(batch, self.ttl)
            logger.info(f"Cached {len(batch)} categories from page {page}")
            page += 1

        logger.info(f"Category warm-up complete: {len(seen)} categories")
        return len(seen)

    async def refresh(self) -> int:
        return await self.warm()

    async def clear(self) -> int:
        deleted = await self.cache.delete_prefix(CATEGORY_PREFIX)
        logger.info(f"[{self.name}] cleared {deleted} keys under {CATEGORY_PREFIX}*")
        return deleted
