"""
Raw WooCommerce product → CatalogueItem.

Pure functions, no I/O. The transform never raises: a sub-field that cannot
be parsed degrades to an empty string or empty list, and an item with missing
fields is kept with defaults rather than dropped.
"""

import html
import re
from typing import Any, Dict, Iterable, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, ValidationError

from storefront.catalogue.models import (
    AttributeTerms,
    CatalogueItem,
    CategoryRef,
    ImageRef,
    SeoMeta,
    StockStatus,
)
from storefront.utils.logger import get_logger

logger = get_logger("catalogue.transform")

_TAG_RE = re.compile(r"<[^>]*>")
_PRICE_TOKEN_RE = re.compile(r"[\d,]+\.?\d*")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")

M = TypeVar("M", bound=BaseModel)


def parse_price_html(fragment: Any) -> str:
    """
    Extract the first number from a rendered price fragment.

    '<span class="amount"><bdi>&pound;1,250.00</bdi></span>' -> '1,250.00'

    Lossy by intent: for sale prices the first number is the struck-through
    regular price. Returns '' when no number is found.
    """
    if not isinstance(fragment, str) or not fragment:
        return ""
    text = html.unescape(_TAG_RE.sub(" ", fragment))
    match = _PRICE_TOKEN_RE.search(text)
    return match.group(0) if match else ""


def slugify(text: str) -> str:
    """Lowercase, hyphen-separated ASCII slug."""
    return _SLUG_STRIP_RE.sub("-", text.lower()).strip("-")


def _str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _models(raw: Any, model: Type[M]) -> List[M]:
    """Validate a list of sub-records, skipping entries that do not fit."""
    if not isinstance(raw, list):
        return []
    parsed = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            parsed.append(model.model_validate(entry))
        except ValidationError:
            continue
    return parsed


def _attributes(raw: Any) -> List[AttributeTerms]:
    if not isinstance(raw, list):
        return []
    attributes = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        options = entry.get("options")
        attributes.append(AttributeTerms(
            id=_int(entry.get("id")),
            name=_str(entry.get("name")),
            slug=_str(entry.get("slug")),
            options=[_str(o) for o in options] if isinstance(options, list) else [],
        ))
    return attributes


def _stock_status(raw: Any) -> Optional[StockStatus]:
    try:
        return StockStatus(raw)
    except ValueError:
        return None


def _seo(raw: Any) -> SeoMeta:
    if not isinstance(raw, dict):
        return SeoMeta()
    og_image = raw.get("og_image")
    if not isinstance(og_image, list):
        return SeoMeta()
    return SeoMeta(og_image=[img for img in og_image if isinstance(img, dict)])


def _unique_slug(product: Dict[str, Any], product_id: int, seen: Set[str]) -> str:
    slug = _str(product.get("slug")).strip()
    if not slug:
        slug = slugify(_str(product.get("name"))) or f"product-{product_id}"
    if slug not in seen:
        return slug
    candidate = f"{slug}-{product_id}"
    n = 2
    while candidate in seen:
        candidate = f"{slug}-{product_id}-{n}"
        n += 1
    return candidate


def transform_product(product: Any, seen_slugs: Optional[Set[str]] = None) -> CatalogueItem:
    """Project one raw product. `seen_slugs` is updated with the slug used."""
    seen = seen_slugs if seen_slugs is not None else set()
    if not isinstance(product, dict):
        product = {}

    product_id = _int(product.get("id"))
    slug = _unique_slug(product, product_id, seen)
    seen.add(slug)

    variations = product.get("variations")
    return CatalogueItem(
        id=product_id,
        name=_str(product.get("name")),
        slug=slug,
        permalink=_str(product.get("permalink")),
        date_created=_str(product.get("date_created")),
        date_created_gmt=_str(product.get("date_created_gmt")),
        date_modified=_str(product.get("date_modified")),
        date_modified_gmt=_str(product.get("date_modified_gmt")),
        price=_str(product.get("price")),
        regular_price=_str(product.get("regular_price")),
        sale_price=_str(product.get("sale_price")),
        price_html=parse_price_html(product.get("price_html")),
        stock_status=_stock_status(product.get("stock_status")),
        categories=_models(product.get("categories"), CategoryRef),
        attributes=_attributes(product.get("attributes")),
        images=_models(product.get("images"), ImageRef),
        variations=[_int(v) for v in variations] if isinstance(variations, list) else [],
        yoast_head_json=_seo(product.get("yoast_head_json")),
    )


def transform_products(products: Iterable[Any]) -> List[CatalogueItem]:
    """Project a batch of raw products, keeping slugs unique across the batch."""
    seen: Set[str] = set()
    items = [transform_product(product, seen) for product in products]
    logger.debug("Transformed %d products", len(items))
    return items
