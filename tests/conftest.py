"""Pytest configuration for storefront catalogue tests."""

import asyncio
import os
import sys
from typing import Any, Dict, List, Optional, Set
from urllib.parse import parse_qs

import httpx
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.cache.client import MemoryCacheClient
from storefront.core.config import StorefrontConfig
from storefront.upstream.woocommerce import WooCommerceClient


def run(coro):
    return asyncio.run(coro)


def raw_product(pid: int, name: str, slug: Optional[str] = None, price: str = "10.00",
                created: str = "2024-01-01T10:00:00", categories=None, attributes=None,
                images=None, **extra) -> Dict[str, Any]:
    """A WooCommerce product payload as the REST API returns it."""
    product = {
        "id": pid,
        "name": name,
        "slug": slug if slug is not None else name.lower().replace(" ", "-"),
        "permalink": f"https://shop.example.com/product/{slug or pid}/",
        "date_created": created,
        "date_created_gmt": created,
        "date_modified": created,
        "date_modified_gmt": created,
        "price": price,
        "regular_price": price,
        "sale_price": "",
        "price_html": f'<span class="woocommerce-Price-amount amount"><bdi>'
                      f'<span class="woocommerce-Price-currencySymbol">&pound;</span>{price}</bdi></span>',
        "stock_status": "instock",
        "categories": categories or [],
        "attributes": attributes or [],
        "images": images if images is not None else [
            {"id": pid * 10, "src": f"https://cdn.example.com/{pid}-a.jpg", "name": "a", "alt": ""},
            {"id": pid * 10 + 1, "src": f"https://cdn.example.com/{pid}-b.jpg", "name": "b", "alt": ""},
        ],
        "variations": [],
        "yoast_head_json": {"og_image": [{"url": f"https://cdn.example.com/{pid}-og.jpg"}]},
    }
    product.update(extra)
    return product


class FakeWooCommerce:
    """
    In-process stand-in for the WooCommerce REST API, served through
    httpx.MockTransport. Records every request path for call-count checks.
    """

    def __init__(self, products=None, categories=None, attributes=None, terms=None):
        self.products: List[Dict[str, Any]] = list(products or [])
        self.popular: Optional[List[Dict[str, Any]]] = None
        self.categories: List[Dict[str, Any]] = list(categories or [])
        self.attributes: List[Dict[str, Any]] = list(attributes or [])
        self.terms: Dict[int, List[Dict[str, Any]]] = dict(terms or {})
        self.requests: List[httpx.Request] = []
        self.fail_paths: Set[str] = set()
        self.fail_pages: Set[int] = set()
        self.repeat_category_pages = False

    def calls(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith("/wp-json/wc/v3/" + path))

    @staticmethod
    def _page(items, params, repeat=False):
        per_page = int(params.get("per_page", 10))
        page = int(params.get("page", 1))
        if repeat:
            page = 1
        start = (page - 1) * per_page
        chunk = items[start:start + per_page]
        total_pages = -(-len(items) // per_page) if per_page else 0
        headers = {"X-WP-Total": str(len(items)), "X-WP-TotalPages": str(total_pages)}
        return httpx.Response(200, json=chunk, headers=headers)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.split("/wp-json/wc/v3/", 1)[-1]
        params = {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}

        if path in self.fail_paths:
            return httpx.Response(500, text="<p>Internal error</p>")

        if path == "products":
            if int(params.get("page", 1)) in self.fail_pages:
                return httpx.Response(503, text="busy")
            if "slug" in params:
                found = [p for p in self.products if p.get("slug") == params["slug"]]
                return httpx.Response(200, json=found[:1])
            if params.get("orderby") == "popularity":
                ranked = self.popular if self.popular is not None else self.products
                return self._page(ranked, params)
            return self._page(self.products, params)

        if path == "products/categories":
            if "slug" in params:
                found = [c for c in self.categories if c.get("slug") == params["slug"]]
                return httpx.Response(200, json=found[:1])
            return self._page(self.categories, params, repeat=self.repeat_category_pages)

        if path == "products/attributes":
            return httpx.Response(200, json=self.attributes)

        if path.startswith("products/attributes/") and path.endswith("/terms"):
            attr_id = int(path.split("/")[2])
            return self._page(self.terms.get(attr_id, []), params)

        return httpx.Response(404, json={"code": "rest_no_route"})

    def client(self) -> WooCommerceClient:
        return WooCommerceClient(
            "https://shop.example.com",
            consumer_key="ck_test",
            consumer_secret="cs_test",
            transport=httpx.MockTransport(self.handler),
        )


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCacheClient(clock=clock)


@pytest.fixture
def config():
    return StorefrontConfig(
        wc_site_url="https://shop.example.com",
        wc_consumer_key="ck_test",
        wc_consumer_secret="cs_test",
        cache_backend="memory",
        refresh_on_startup=False,
    )


@pytest.fixture
def sample_products():
    return [
        raw_product(1, "Marble Tile", price="25.00", created="2024-03-01T09:00:00",
                    categories=[{"id": 5, "name": "Tiles", "slug": "tiles"},
                                {"id": 12, "name": "Bathroom", "slug": "bathroom"}],
                    attributes=[{"id": 1, "name": "Colour", "slug": "pa_colour", "options": ["White", "Grey"]},
                                {"id": 2, "name": "Material", "slug": "pa_material", "options": ["Natural Stone"]}]),
        raw_product(2, "Marble", price="40.00", created="2024-02-01T09:00:00",
                    categories=[{"id": 5, "name": "Tiles", "slug": "tiles"}],
                    attributes=[{"id": 1, "name": "Colour", "slug": "pa_colour", "options": ["Black and White"]}]),
        raw_product(3, "White Marble", price="15.50", created="2024-04-01T09:00:00",
                    categories=[{"id": 7, "name": "Worktops", "slug": "worktops"}],
                    attributes=[{"id": 1, "name": "Colour", "slug": "pa_colour", "options": ["White"]},
                                {"id": 3, "name": "Finish", "slug": "pa_finish", "options": ["Polished"]}]),
        raw_product(4, "Oak Floor", price="", created="not-a-date",
                    categories=[{"id": 9, "name": "Flooring", "slug": "flooring"}]),
    ]


@pytest.fixture
def upstream(sample_products):
    return FakeWooCommerce(
        products=sample_products,
        categories=[
            {"id": 5, "name": "Tiles", "slug": "tiles", "count": 2},
            {"id": 7, "name": "Worktops", "slug": "worktops", "count": 1},
            {"id": 9, "name": "Flooring", "slug": "flooring", "count": 1},
        ],
        attributes=[
            {"id": 1, "name": "Colour", "slug": "pa_colour"},
            {"id": 2, "name": "Material", "slug": "pa_material"},
            {"id": 3, "name": "Finish", "slug": "pa_finish"},
        ],
        terms={
            1: [{"id": 11, "name": "White", "slug": "white", "count": 2},
                {"id": 12, "name": "Black and White", "slug": "black-and-white", "count": 1}],
            2: [{"id": 21, "name": "Natural Stone", "slug": "natural-stone", "count": 1}],
            3: [{"id": 31, "name": "Polished", "slug": "polished", "count": 1}],
        },
    )
