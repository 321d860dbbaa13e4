"""
Facet cache: attribute-term option lists for building filter UIs.

Refreshed independently of the catalogue snapshot; facets are advisory and
may briefly disagree with it.
"""
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

from storefront.cache.client import CacheClient
from storefront.cache.policy import FILTER_OPTIONS_KEY, FILTER_PREFIX
from storefront.catalogue.models import OptionRecord
from storefront.catalogue.snapshot import CachedSnapshot
from storefront.core.config import DEFAULT_FILTER_ATTRIBUTES, ONE_DAY
from storefront.core.errors import UpstreamFetchFailure
from storefront.upstream.woocommerce import WooCommerceClient
from storefront.utils.logger import get_logger

logger = get_logger("catalogue.facets")

FacetOptionSet = Dict[str, List[OptionRecord]]


class FacetCache(CachedSnapshot[FacetOptionSet]):
    """
    Option lists for a fixed allow-list of attribute slugs.

    Failing to list the attribute definitions fails the whole fetch. Failing
    to list one attribute's terms only empties that attribute's entry.
    """

    name = "facets"
    key = FILTER_OPTIONS_KEY
    prefix = FILTER_PREFIX

    def __init__(self, cache: CacheClient, client: WooCommerceClient, ttl: int = ONE_DAY,
                 attributes: Sequence[str] = DEFAULT_FILTER_ATTRIBUTES, per_page: int = 100, **kwargs):
        super().__init__(cache, ttl, **kwargs)
        self.client = client
        self.attributes = list(attributes)
        self.per_page = per_page

    async def get_options(self, force_refresh: bool = False) -> FacetOptionSet:
        return await self.get(force_refresh=force_refresh)

    async def _load(self) -> FacetOptionSet:
        definitions = await self.client.list_attributes(per_page=self.per_page)
        by_slug = {
            attr.get("slug"): attr for attr in definitions.items if isinstance(attr, dict)
        }

        results: FacetOptionSet = {}
        for slug in self.attributes:
            attr = by_slug.get(slug)
            if not attr:
                logger.warning(f"Attribute {slug} not defined upstream")
                results[slug] = []
                continue
            try:
                results[slug] = await self._fetch_terms(attr.get("id"))
            except UpstreamFetchFailure as e:
                logger.error(f"Failed to fetch terms for {slug}: {e}")
                results[slug] = []
        return results

    async def _fetch_terms(self, attribute_id: Any) -> List[OptionRecord]:
        terms: List[OptionRecord] = []
        page = 1
        while True:
            result = await self.client.list_attribute_terms(attribute_id, page=page, per_page=self.per_page)
            if not result.items:
                break
            for term in result.items:
                if not isinstance(term, dict):
                    continue
                try:
                    terms.append(OptionRecord.model_validate({
                        "id": term.get("id") or 0,
                        "name": term.get("name") or "",
                        "slug": term.get("slug") or "",
                        "count": term.get("count") or 0,
                    }))
                except ValidationError:
                    logger.warning(f"Skipping malformed term on attribute {attribute_id}: {term!r}")
            if result.total_pages and page >= result.total_pages:
                break
            page += 1
        return terms

    def _encode(self, value: FacetOptionSet) -> Any:
        return {slug: [o.model_dump() for o in options] for slug, options in value.items()}

    def _decode(self, payload: Any) -> FacetOptionSet:
        if not isinstance(payload, dict):
            raise TypeError("facet snapshot must be a mapping")
        return {
            slug: [OptionRecord.model_validate(o) for o in options]
            for slug, options in payload.items()
        }
