"""
FastAPI server for the storefront catalogue.

Thin HTTP surface over CatalogueService: parameter clamping, JSON envelopes
and error → status mapping. All query logic lives in storefront.query.

Usage:
    uvicorn storefront.api.server:app --port 4000
"""
import os
import traceback
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront import __version__
from storefront.api.models import (
    CacheStatusResponse,
    CategoryListResponse,
    CategoryProductsResponse,
    CategorySummary,
    ClearResponse,
    FilterOptionsResponse,
    HealthResponse,
    PageMeta,
    PopularProductsResponse,
    ProductListResponse,
    ProductResponse,
    RefreshResponse,
    SearchResponse,
)
from storefront.core.errors import InvalidArgument, UpstreamFetchFailure
from storefront.core.services import Services, build_services
from storefront.query.engine import build_meta
from storefront.utils.logger import get_logger

logger = get_logger("api.server")

SERVICE_NAME = "Storefront Catalogue"


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Optional[Services] = None, warm_on_startup: Optional[bool] = None) -> FastAPI:
    """
    Build the application.

    `services` injects prebuilt components (tests); otherwise they are built
    from configuration at startup. Startup warm-up runs unless disabled by
    argument, STOREFRONT_SKIP_WARMUP=1 or the config.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services or build_services()
        svc: Services = app.state.services

        warm = warm_on_startup
        if warm is None:
            warm = svc.config.refresh_on_startup and os.getenv("STOREFRONT_SKIP_WARMUP", "0") != "1"

        if warm:
            logger.info("Rebuilding caches before accepting traffic...")
            results = await svc.scheduler.startup()
            logger.info(f"Startup rebuild finished: {results}")
            svc.scheduler.start()
        else:
            logger.info("Skipping startup cache rebuild")

        yield

        await svc.close()

    app = FastAPI(
        title="Storefront Catalogue API",
        description="Cached WooCommerce catalogue with in-memory filtering, search and pagination",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidArgument)
    async def invalid_argument_handler(request: Request, exc: InvalidArgument):
        return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})

    @app.exception_handler(UpstreamFetchFailure)
    async def upstream_failure_handler(request: Request, exc: UpstreamFetchFailure):
        logger.error(f"Upstream failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=502, content={"success": False, "message": "Upstream catalogue unavailable"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Log unhandled exceptions and return 500."""
        logger.error("Unhandled exception: %s\n%s", exc, traceback.format_exc())
        is_dev = os.getenv("ENV", "development").lower() in ("development", "dev", "")
        detail = str(exc) if is_dev else "Internal server error"
        return JSONResponse(status_code=500, content={"detail": detail, "type": type(exc).__name__})

    #
    # Health
    #

    @app.get("/", response_model=HealthResponse)
    async def root():
        return HealthResponse(service=SERVICE_NAME, version=__version__, status="operational")

    #
    # Products
    #

    @app.get("/api/products/categories", response_model=CategoryListResponse)
    async def get_categories(request: Request):
        categories = await _services(request).catalogue.fetch_all_categories()
        categories.sort(key=lambda c: c.name.casefold())
        return CategoryListResponse(count=len(categories), categories=categories)

    @app.get("/api/products/category/{slug}", response_model=CategoryProductsResponse)
    async def get_category_products(
        request: Request,
        slug: str,
        page: int = Query(1, ge=1),
        per_page: int = Query(12, ge=1, le=100),
        orderby: str = "date",
        order: str = "desc",
    ):
        catalogue = _services(request).catalogue
        category = await catalogue.fetch_category_by_slug(slug)
        if category is None:
            raise HTTPException(status_code=404, detail="Category not found")

        result = await catalogue.fetch_products_by_category(
            category.id, page=page, per_page=per_page, orderby=orderby, order=order,
        )
        return CategoryProductsResponse(
            category=CategorySummary(id=category.id, name=category.name, slug=category.slug),
            products=result.products,
            meta=PageMeta(**build_meta(page, per_page, result.total_pages, result.total_products)),
        )

    @app.get("/api/products/popular", response_model=PopularProductsResponse)
    async def get_popular_products(request: Request):
        products = await _services(request).catalogue.fetch_popular_products()
        return PopularProductsResponse(count=len(products), products=products)

    @app.get("/api/products/new-arrivals", response_model=ProductListResponse)
    async def get_new_arrivals(
        request: Request,
        page: int = Query(1, ge=1),
        per_page: int = Query(12, ge=1, le=100),
    ):
        result = await _services(request).catalogue.fetch_new_arrivals(page, per_page)
        return ProductListResponse(
            products=result.products,
            meta=PageMeta(**build_meta(page, per_page, result.total_pages, result.total_products)),
        )

    @app.get("/api/products/slug/{slug}", response_model=ProductResponse)
    async def get_product_by_slug(request: Request, slug: str):
        product = await _services(request).catalogue.fetch_product_by_slug(slug)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return ProductResponse(product=product)

    #
    # Filtering
    #

    @app.get("/api/filter/products", response_model=ProductListResponse)
    async def filter_products(
        request: Request,
        page: int = Query(1, ge=1),
        per_page: int = Query(12, ge=1, le=100),
    ):
        # Attribute filters arrive as arbitrary query keys (pa_colour=black,white);
        # a repeated key (pa_colour=black&pa_colour=white) keeps every value
        filters: Dict[str, Any] = {}
        for key, value in request.query_params.multi_items():
            filters.setdefault(key, []).append(value)
        filters = {key: values[0] if len(values) == 1 else values for key, values in filters.items()}
        filters["page"] = page
        filters["per_page"] = per_page
        result = await _services(request).catalogue.get_filtered_products(filters)
        return ProductListResponse(
            products=result.products,
            meta=PageMeta(**build_meta(result.page, result.per_page, result.total_pages, result.total_products)),
        )

    @app.get("/api/filter/options", response_model=FilterOptionsResponse)
    async def filter_options(request: Request):
        data = await _services(request).catalogue.get_filter_options()
        return FilterOptionsResponse(data=data)

    #
    # Search
    #

    @app.get("/api/search", response_model=SearchResponse)
    async def search(
        request: Request,
        q: str = "",
        category: Optional[str] = None,
        page: int = Query(1, ge=1),
        per_page: int = Query(12, ge=1, le=100),
    ):
        if not q.strip():
            raise HTTPException(status_code=400, detail="Search query is required")
        result = await _services(request).catalogue.search_products(
            q=q, category=category, page=page, per_page=per_page,
        )
        return SearchResponse(
            message=f'Found {result.meta["total_products"]} products matching "{q}"',
            meta=result.meta,
            data=result.data,
        )

    #
    # Cache administration
    #

    @app.get("/api/admin/cache", response_model=CacheStatusResponse)
    async def cache_status(request: Request):
        svc = _services(request)
        catalogue = svc.catalogue
        snapshots = {
            name: await component.info()
            for name, component in catalogue.components.items()
            if hasattr(component, "info")
        }
        categories = await catalogue.fetch_all_categories()
        last_run = svc.scheduler.last_run
        return CacheStatusResponse(
            backend=svc.cache.backend_name,
            reachable=await svc.cache.ping(),
            snapshots=snapshots,
            cached_categories=len(categories),
            scheduler_running=svc.scheduler.running,
            last_refresh=last_run.isoformat() if last_run else None,
            last_results=svc.scheduler.last_results,
        )

    @app.post("/api/admin/cache/refresh", response_model=RefreshResponse)
    async def refresh_cache(request: Request, component: Optional[List[str]] = Query(None)):
        svc = _services(request)
        if not component:
            results = await svc.scheduler.refresh_all()
            status = "ok" if all(results.values()) else "partial"
            return RefreshResponse(status=status, results=results)

        results = {}
        for name in component:
            await svc.catalogue.force_refresh(name)
            results[name] = True
        return RefreshResponse(status="ok", results=results)

    @app.delete("/api/admin/cache", response_model=ClearResponse)
    async def clear_cache(request: Request):
        deleted = await _services(request).catalogue.clear_all()
        return ClearResponse(deleted=deleted)

    return app


app = create_app()
