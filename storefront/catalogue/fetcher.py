"""
Catalogue fetcher: walks the upstream product listing to completion.
"""
from typing import Any, Dict, List, Optional

from storefront.upstream.woocommerce import WooCommerceClient
from storefront.utils.logger import get_logger

logger = get_logger("catalogue.fetcher")

# Fields the transformer reads; keeps upstream payloads small.
PRODUCT_FIELDS = ",".join([
    "id", "name", "slug", "permalink",
    "date_created", "date_created_gmt", "date_modified", "date_modified_gmt",
    "price", "regular_price", "sale_price", "price_html",
    "stock_status", "categories", "attributes", "images", "variations",
    "yoast_head_json",
])


class CatalogueFetcher:
    """
    Fetches raw published products from WooCommerce.

    A failure on any page aborts the whole fetch: the UpstreamFetchFailure
    propagates and the caller never sees a partial catalogue.
    """

    def __init__(self, client: WooCommerceClient, per_page: int = 100):
        self.client = client
        self.per_page = per_page

    async def fetch_all(self) -> List[Dict[str, Any]]:
        """Request pages until one comes back empty."""
        products: List[Dict[str, Any]] = []
        page = 1
        while True:
            result = await self.client.list_products(
                page=page, per_page=self.per_page, _fields=PRODUCT_FIELDS,
            )
            if not result.items:
                break
            products.extend(result.items)
            logger.debug("Fetched page %d (%d products)", page, len(result.items))
            page += 1

        logger.info(f"Fetched {len(products)} products in {page - 1} pages")
        return products

    async def fetch_popular(self, limit: int = 12) -> List[Dict[str, Any]]:
        """Top `limit` products in upstream popularity order."""
        result = await self.client.list_products(
            page=1, per_page=limit, orderby="popularity", _fields=PRODUCT_FIELDS,
        )
        return result.items[:limit]

    async def fetch_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Single published product by slug, or None."""
        result = await self.client.list_products(
            page=1, per_page=1, slug=slug, _fields=PRODUCT_FIELDS,
        )
        return result.items[0] if result.items else None
