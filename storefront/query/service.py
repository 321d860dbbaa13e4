"""
Catalogue service: the operations route handlers call.

Each read loads the snapshot (cache-aside) and runs the pure query engine on
it. Failure policy per operation:

- category listing, filtering, search, new arrivals, product by slug:
  upstream/store failures degrade to an empty result (logged). InvalidArgument
  is re-raised.
- popular products, filter options: failures propagate.
- category lookups: None / [] on miss or failure.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from storefront.catalogue.categories import CategoryIndex
from storefront.catalogue.facets import FacetCache, FacetOptionSet
from storefront.catalogue.fetcher import CatalogueFetcher
from storefront.catalogue.models import (
    CatalogueItem,
    CategoryRecord,
    ProductPage,
    SearchResult,
)
from storefront.catalogue.popular import PopularProductsCache
from storefront.catalogue.snapshot import SnapshotStore
from storefront.catalogue.transform import transform_product
from storefront.core.config import DEFAULT_FILTER_ATTRIBUTES
from storefront.core.errors import InvalidArgument
from storefront.query import engine
from storefront.utils.logger import get_logger

logger = get_logger("query.service")

PAGING_PARAMS = ("page", "per_page", "orderby", "order")


def _to_int(value: Any, name: str, default: int) -> int:
    """Coerce a query-string number. Non-numeric input is an InvalidArgument."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}") from None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogueService:
    """Query operations over the cached catalogue."""

    def __init__(
        self,
        snapshot: SnapshotStore,
        popular: PopularProductsCache,
        facets: FacetCache,
        categories: CategoryIndex,
        fetcher: Optional[CatalogueFetcher] = None,
        filter_attributes=DEFAULT_FILTER_ATTRIBUTES,
        new_arrival_months: int = 2,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.snapshot = snapshot
        self.popular = popular
        self.facets = facets
        self.categories = categories
        self.fetcher = fetcher
        self.filter_attributes = list(filter_attributes)
        self.new_arrival_months = new_arrival_months
        self._clock = clock

    async def _load_or_none(self, operation: str) -> Optional[List[CatalogueItem]]:
        try:
            return await self.snapshot.get_all()
        except Exception as e:
            logger.error(f"[{operation}] catalogue unavailable, serving empty result: {e}")
            return None

    # ------------------------------------------------------------------
    # Attribute filtering
    # ------------------------------------------------------------------

    async def get_filtered_products(self, filters: Mapping[str, Any]) -> ProductPage:
        """
        Filter by attribute options. `filters` is the raw query mapping:
        page / per_page / orderby / order plus attribute slugs.
        """
        if not isinstance(filters, Mapping):
            raise InvalidArgument("filters must be a mapping")
        page = _to_int(filters.get("page"), "page", 1)
        per_page = _to_int(filters.get("per_page"), "per_page", 12)
        orderby = filters.get("orderby") or engine.ORDERBY_DATE
        order = filters.get("order") or "desc"
        attributes = {k: v for k, v in filters.items() if k not in PAGING_PARAMS}

        items = await self._load_or_none("filter")
        if items is None:
            return ProductPage(page=page, per_page=per_page)

        result = engine.filtered_products(
            items, attributes, page=page, per_page=per_page,
            orderby=orderby, order=order, allowed=self.filter_attributes,
        )
        logger.info(f"[FILTER] Served {len(result.products)} of {result.total_products} filtered products from cache")
        return result

    async def get_filter_options(self, force_refresh: bool = False) -> FacetOptionSet:
        """Sidebar facet options. Upstream failures propagate."""
        return await self.facets.get_options(force_refresh=force_refresh)

    # ------------------------------------------------------------------
    # Category listing
    # ------------------------------------------------------------------

    async def fetch_products_by_category(self, category_id: int, page: int = 1, per_page: int = 12,
                                         orderby: str = engine.ORDERBY_DATE,
                                         order: str = "desc") -> ProductPage:
        items = await self._load_or_none("category")
        if items is None:
            return ProductPage(page=page, per_page=per_page)
        return engine.products_by_category(items, category_id, page, per_page, orderby, order)

    async def fetch_all_categories(self) -> List[CategoryRecord]:
        return await self.categories.get_all()

    async def fetch_category_by_slug(self, slug: str) -> Optional[CategoryRecord]:
        return await self.categories.get_by_slug(slug)

    # ------------------------------------------------------------------
    # Popular / new arrivals
    # ------------------------------------------------------------------

    async def fetch_popular_products(self) -> List[CatalogueItem]:
        """Independently cached popular list. Upstream failures propagate."""
        return await self.popular.get_products()

    async def fetch_new_arrivals(self, page: int = 1, per_page: int = 12) -> ProductPage:
        items = await self._load_or_none("new-arrivals")
        if items is None:
            return ProductPage(page=page, per_page=per_page)
        recent = engine.new_arrivals(items, self._clock(), self.new_arrival_months)
        return engine.paginate(recent, page, per_page)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @staticmethod
    def _empty_search(per_page: int) -> SearchResult:
        return SearchResult(data=[], meta={
            "current_page": 1,
            "per_page": per_page,
            "total_pages": 0,
            "total_products": 0,
            "search_query": "",
        })

    async def search_products(self, q: str = "", category: Optional[str] = None,
                              page: Any = 1, per_page: Any = 12) -> SearchResult:
        """Relevance-ordered name/slug search. Never raises on upstream failure."""
        page = _to_int(page, "page", 1)
        per_page = _to_int(per_page, "per_page", 12)
        if q is not None and not isinstance(q, str):
            raise InvalidArgument(f"q must be a string, got {q!r}")
        if not q or not q.strip():
            return self._empty_search(per_page)

        items = await self._load_or_none("search")
        if items is None:
            return self._empty_search(per_page)

        matched = engine.search(items, q, category)
        result = engine.paginate(matched, page, per_page)
        meta = engine.build_meta(page, per_page, result.total_pages, result.total_products)
        meta["search_query"] = q.strip()
        meta["category"] = category or None
        logger.info(f"[SEARCH] '{q.strip()}' matched {result.total_products} products")
        return SearchResult(data=result.products, meta=meta)

    # ------------------------------------------------------------------
    # Single product
    # ------------------------------------------------------------------

    async def fetch_product_by_slug(self, slug: str) -> Optional[CatalogueItem]:
        """
        Snapshot lookup, falling back to a direct upstream read for products
        published since the last refresh. None when not found or on failure.
        """
        items = await self._load_or_none("product")
        if items is not None:
            found = engine.find_by_slug(items, slug)
            if found is not None:
                return found

        if self.fetcher is None:
            return None
        try:
            raw = await self.fetcher.fetch_by_slug(slug)
        except Exception as e:
            logger.error(f"Error fetching product {slug}: {e}")
            return None
        return transform_product(raw) if raw else None

    # ------------------------------------------------------------------
    # Administrative
    # ------------------------------------------------------------------

    @property
    def components(self) -> Dict[str, Any]:
        return {
            "catalogue": self.snapshot,
            "popular": self.popular,
            "facets": self.facets,
            "categories": self.categories,
        }

    async def force_refresh(self, component: str) -> None:
        """Rebuild one cache component from upstream. Errors propagate."""
        target = self.components.get(component)
        if target is None:
            raise InvalidArgument(f"Unknown cache component '{component}'")
        await target.refresh()

    async def clear_all(self) -> Dict[str, int]:
        """Delete every key under each component's prefix."""
        return {name: await component.clear() for name, component in self.components.items()}
