"""
Pydantic models for the catalogue cache.

CatalogueItem is the only product shape downstream components see; raw
WooCommerce payloads never leave the transformer.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StockStatus(str, Enum):
    """WooCommerce stock status values."""
    IN_STOCK = "instock"
    OUT_OF_STOCK = "outofstock"
    ON_BACKORDER = "onbackorder"


class CategoryRef(BaseModel):
    """Category membership as embedded on a product."""
    id: int = 0
    slug: str = ""
    name: str = ""


class AttributeTerms(BaseModel):
    """A product attribute and its selected option names."""
    id: int = 0
    name: str = ""
    slug: str = ""
    options: List[str] = Field(default_factory=list)


class ImageRef(BaseModel):
    id: int = 0
    src: str = ""
    name: str = ""
    alt: str = ""


class SeoMeta(BaseModel):
    """Subset of the Yoast SEO head kept for social sharing."""
    og_image: List[Dict[str, Any]] = Field(default_factory=list)


class CatalogueItem(BaseModel):
    """Display-ready projection of a WooCommerce product."""
    id: int = 0
    name: str = ""
    slug: str = ""
    permalink: str = ""

    date_created: str = ""
    date_created_gmt: str = ""
    date_modified: str = ""
    date_modified_gmt: str = ""

    # Decimal-as-string, authoritative
    price: str = ""
    regular_price: str = ""
    sale_price: str = ""
    # Plain number parsed from the rendered price fragment (display only)
    price_html: str = ""

    stock_status: Optional[StockStatus] = None
    categories: List[CategoryRef] = Field(default_factory=list)
    attributes: List[AttributeTerms] = Field(default_factory=list)
    images: List[ImageRef] = Field(default_factory=list)
    variations: List[int] = Field(default_factory=list)
    yoast_head_json: SeoMeta = Field(default_factory=SeoMeta)


class OptionRecord(BaseModel):
    """One attribute term, as offered in a filter sidebar."""
    id: int = 0
    name: str = ""
    slug: str = ""
    count: int = 0


class CategoryRecord(BaseModel):
    id: int
    slug: str
    name: str = ""
    count: int = 0


class ProductPage(BaseModel):
    """A page of query results plus totals."""
    products: List[CatalogueItem] = Field(default_factory=list)
    total_products: int = 0
    total_pages: int = 0
    page: int = 1
    per_page: int = 12


class SearchResult(BaseModel):
    data: List[CatalogueItem] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)
