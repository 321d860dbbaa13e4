"""
Popular products: a small, independently cached list in upstream popularity
order. Served as-is; it does not go through the query engine.
"""
from typing import Any, List

from storefront.cache.client import CacheClient
from storefront.cache.policy import POPULAR_KEY, POPULAR_PREFIX
from storefront.catalogue.fetcher import CatalogueFetcher
from storefront.catalogue.models import CatalogueItem
from storefront.catalogue.snapshot import CachedSnapshot
from storefront.catalogue.transform import transform_products
from storefront.core.config import ONE_DAY


class PopularProductsCache(CachedSnapshot[List[CatalogueItem]]):
    """Top-N popular products with only the primary image kept."""

    name = "popular"
    key = POPULAR_KEY
    prefix = POPULAR_PREFIX

    def __init__(self, cache: CacheClient, fetcher: CatalogueFetcher, ttl: int = ONE_DAY,
                 limit: int = 12, **kwargs):
        super().__init__(cache, ttl, **kwargs)
        self.fetcher = fetcher
        self.limit = limit

    async def get_products(self, force_refresh: bool = False) -> List[CatalogueItem]:
        return list(await self.get(force_refresh=force_refresh))

    async def _load(self) -> List[CatalogueItem]:
        raw = await self.fetcher.fetch_popular(self.limit)
        items = transform_products(raw)[: self.limit]
        return [item.model_copy(update={"images": item.images[:1]}) for item in items]

    def _encode(self, value: List[CatalogueItem]) -> Any:
        return [item.model_dump(mode="json") for item in value]

    def _decode(self, payload: Any) -> List[CatalogueItem]:
        if not isinstance(payload, list):
            raise TypeError("popular snapshot must be a list")
        return [CatalogueItem.model_validate(item) for item in payload]
