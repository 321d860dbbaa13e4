"""
Process-wide wiring of the catalogue core.

One cache client and one upstream client are constructed per process and
shared by reference between all cache components.
"""
from dataclasses import dataclass
from typing import Optional

from storefront.cache.client import CacheClient, create_cache_client
from storefront.catalogue.categories import CategoryIndex
from storefront.catalogue.facets import FacetCache
from storefront.catalogue.fetcher import CatalogueFetcher
from storefront.catalogue.popular import PopularProductsCache
from storefront.catalogue.snapshot import SnapshotStore
from storefront.core.config import StorefrontConfig, get_config
from storefront.core.scheduler import RefreshScheduler, jobs_for
from storefront.query.service import CatalogueService
from storefront.upstream.woocommerce import WooCommerceClient


@dataclass
class Services:
    config: StorefrontConfig
    cache: CacheClient
    client: WooCommerceClient
    catalogue: CatalogueService
    scheduler: RefreshScheduler

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.client.close()
        await self.cache.close()


def build_services(
    config: Optional[StorefrontConfig] = None,
    cache: Optional[CacheClient] = None,
    client: Optional[WooCommerceClient] = None,
) -> Services:
    """Construct every component from configuration. Pass `cache`/`client` to inject."""
    config = config or get_config()
    cache = cache or create_cache_client(config)
    client = client or WooCommerceClient.from_config(config)

    fetcher = CatalogueFetcher(client, per_page=config.per_page)
    catalogue = CatalogueService(
        snapshot=SnapshotStore(cache, fetcher, ttl=config.ttl_catalogue),
        popular=PopularProductsCache(cache, fetcher, ttl=config.ttl_popular, limit=config.popular_limit),
        facets=FacetCache(cache, client, ttl=config.ttl_facets,
                          attributes=config.filter_attributes, per_page=config.per_page),
        categories=CategoryIndex(cache, client, ttl=config.ttl_categories, per_page=config.per_page),
        fetcher=fetcher,
        filter_attributes=config.filter_attributes,
        new_arrival_months=config.new_arrival_months,
    )
    scheduler = RefreshScheduler(jobs_for(catalogue.components), refresh_at=config.refresh_at)
    return Services(config=config, cache=cache, client=client, catalogue=catalogue, scheduler=scheduler)
