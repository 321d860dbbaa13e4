"""
WooCommerce REST API client.

Async HTTP client for the storefront's source of truth. Every listing call
returns the decoded JSON body together with the pagination headers
WordPress sends (X-WP-Total / X-WP-TotalPages).

All transport, HTTP status and decoding errors surface as UpstreamFetchFailure.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from storefront.core.config import StorefrontConfig
from storefront.core.errors import UpstreamFetchFailure
from storefront.utils.logger import get_logger

logger = get_logger("upstream.woocommerce")


@dataclass
class UpstreamPage:
    """One page of an upstream listing."""
    items: List[Dict[str, Any]]
    total: int = 0
    total_pages: int = 0


def _header_int(headers: httpx.Headers, name: str, default: int = 0) -> int:
    try:
        return int(headers.get(name, default))
    except (TypeError, ValueError):
        return default


class WooCommerceClient:
    """
    Thin async wrapper over the WooCommerce v3 REST API.

    Authenticates with the consumer key/secret over HTTP basic auth (HTTPS
    deployments). Pass `transport` to route requests elsewhere (tests).
    """

    def __init__(
        self,
        site_url: str,
        consumer_key: str = "",
        consumer_secret: str = "",
        api_version: str = "wc/v3",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not site_url:
            raise ValueError("WC_SITE_URL is not configured")
        self.base_url = f"{site_url.rstrip('/')}/wp-json/{api_version}/"
        auth = (consumer_key, consumer_secret) if consumer_key else None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(cls, config: StorefrontConfig, **kwargs) -> "WooCommerceClient":
        return cls(
            site_url=config.wc_site_url,
            consumer_key=config.wc_consumer_key,
            consumer_secret=config.wc_consumer_secret,
            api_version=config.wc_api_version,
            timeout=config.request_timeout,
            **kwargs,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "WooCommerceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> UpstreamPage:
        """GET a listing endpoint. Raises UpstreamFetchFailure on any error."""
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("GET %s failed: HTTP %s body=%s", path, status, e.response.text[:300])
            raise UpstreamFetchFailure(f"HTTP {status} from {path}", status_code=status, path=path) from e
        except httpx.HTTPError as e:
            logger.warning("GET %s request failed: %s", path, e)
            raise UpstreamFetchFailure(f"Request to {path} failed: {e}", path=path) from e
        except ValueError as e:
            raise UpstreamFetchFailure(f"Invalid JSON from {path}", path=path) from e

        if not isinstance(data, list):
            raise UpstreamFetchFailure(f"Expected a JSON array from {path}", path=path)

        return UpstreamPage(
            items=data,
            total=_header_int(resp.headers, "x-wp-total", len(data)),
            total_pages=_header_int(resp.headers, "x-wp-totalpages", 1 if data else 0),
        )

    async def list_products(self, page: int = 1, per_page: int = 100, **params: Any) -> UpstreamPage:
        query = {"per_page": per_page, "page": page, "status": "publish"}
        query.update(params)
        return await self.get("products", query)

    async def list_categories(self, page: int = 1, per_page: int = 100, **params: Any) -> UpstreamPage:
        query = {"per_page": per_page, "page": page}
        query.update(params)
        return await self.get("products/categories", query)

    async def list_attributes(self, per_page: int = 100) -> UpstreamPage:
        return await self.get("products/attributes", {"per_page": per_page})

    async def list_attribute_terms(self, attribute_id: int, page: int = 1, per_page: int = 100) -> UpstreamPage:
        return await self.get(
            f"products/attributes/{attribute_id}/terms",
            {"per_page": per_page, "page": page},
        )
