"""
Pydantic models for storefront API responses.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from storefront.catalogue.models import CatalogueItem, CategoryRecord, OptionRecord


class PageMeta(BaseModel):
    """Pagination block shared by listing responses."""
    current_page: int
    per_page: int
    total_pages: int
    total_products: int
    has_next_page: bool = False
    has_prev_page: bool = False


class CategorySummary(BaseModel):
    id: int
    name: str
    slug: str


class CategoryListResponse(BaseModel):
    count: int
    categories: List[CategoryRecord]


class CategoryProductsResponse(BaseModel):
    category: CategorySummary
    products: List[CatalogueItem]
    meta: PageMeta


class ProductListResponse(BaseModel):
    success: bool = True
    products: List[CatalogueItem]
    meta: PageMeta


class PopularProductsResponse(BaseModel):
    count: int
    products: List[CatalogueItem]


class ProductResponse(BaseModel):
    product: CatalogueItem


class SearchResponse(BaseModel):
    success: bool = True
    message: str
    meta: Dict[str, Any]
    data: List[CatalogueItem]


class FilterOptionsResponse(BaseModel):
    success: bool = True
    data: Dict[str, List[OptionRecord]]


class RefreshResponse(BaseModel):
    status: str
    results: Dict[str, bool] = Field(default_factory=dict)


class ClearResponse(BaseModel):
    status: str = "cleared"
    deleted: Dict[str, int] = Field(default_factory=dict)


class CacheStatusResponse(BaseModel):
    backend: str
    reachable: bool
    snapshots: Dict[str, Dict[str, Any]]
    cached_categories: int
    scheduler_running: bool
    last_refresh: Optional[str] = None
    last_results: Dict[str, bool] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    service: str
    version: str
    status: str
