"""
In-memory query engine over a catalogue snapshot.

Everything here is pure and synchronous: filter → sort → paginate over a list
of CatalogueItem. Inputs are never mutated; every function returns new lists.
Malformed argument types raise InvalidArgument.

Query modes:
- category listing  : membership by category id
- attribute filters : allow-listed attribute slugs, comma-separated option tokens
- free-text search  : name/slug substring with relevance ordering
- new arrivals      : created within the last N calendar months
"""

import calendar
import math
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from storefront.catalogue.models import CatalogueItem, ProductPage
from storefront.core.config import DEFAULT_FILTER_ATTRIBUTES
from storefront.core.errors import InvalidArgument

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ORDERBY_DATE = "date"
ORDERBY_PRICE = "price"
ORDERBY_TITLE = "title"
ORDERBY_VALUES = (ORDERBY_DATE, ORDERBY_PRICE, ORDERBY_TITLE)

_WHITESPACE_RE = re.compile(r"\s+")


# ============================================================================
# Argument checks
# ============================================================================

def _require_items(items: Any) -> List[CatalogueItem]:
    if not isinstance(items, (list, tuple)):
        raise InvalidArgument(f"items must be a list of CatalogueItem, got {type(items).__name__}")
    for item in items:
        if not isinstance(item, CatalogueItem):
            raise InvalidArgument(f"items must be CatalogueItem, got {type(item).__name__}")
    return list(items)


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")
    return value


def _require_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise InvalidArgument(f"{name} must be a string, got {value!r}")
    return value


# ============================================================================
# Field parsing
# ============================================================================

def parse_price(item: CatalogueItem) -> float:
    """Numeric current price; missing or unparsable prices sort as 0."""
    try:
        value = float(item.price)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def parse_timestamp(value: str) -> datetime:
    """Parse a WooCommerce ISO-8601 timestamp as UTC; invalid → epoch."""
    if not value:
        return EPOCH
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def created_at(item: CatalogueItem) -> datetime:
    """Creation time, preferring the GMT field upstream provides."""
    return parse_timestamp(item.date_created_gmt or item.date_created)


def title_key(name: str) -> Tuple[str, str]:
    """
    Accent- and case-insensitive collation ('Étagère' files under E) with a
    deterministic tiebreak on the raw name.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()
    return (folded, name)



# ============================================================================
# Sorting and pagination
# ============================================================================

_SORT_KEYS: Dict[str, Callable[[CatalogueItem], Any]] = {
    ORDERBY_DATE: created_at,
    ORDERBY_PRICE: parse_price,
    ORDERBY_TITLE: lambda item: title_key(item.name),
}


def sort_products(items: Sequence[CatalogueItem], orderby: str = ORDERBY_DATE,
                  order: str = "desc") -> List[CatalogueItem]:
    """
    Sort by date, price or title. Unknown `orderby` sorts by date; any `order`
    other than 'asc' is descending. Ties keep their snapshot order.
    """
    items = _require_items(items)
    orderby = _require_str(orderby, "orderby").lower()
    order = _require_str(order, "order").lower()
    key = _SORT_KEYS.get(orderby, created_at)
    return sorted(items, key=key, reverse=(order != "asc"))


def paginate(items: Sequence[CatalogueItem], page: int, per_page: int) -> ProductPage:
    """
    1-indexed page slice. total_pages = ceil(total / per_page).

    Pages past the end (or below 1) yield an empty slice rather than an error.
    """
    items = _require_items(items)
    page = _require_int(page, "page")
    per_page = _require_int(per_page, "per_page")
    if per_page < 1:
        raise InvalidArgument(f"per_page must be at least 1, got {per_page}")

    total = len(items)
    total_pages = math.ceil(total / per_page)
    if page < 1:
        sliced: List[CatalogueItem] = []
    else:
        start = (page - 1) * per_page
        sliced = items[start:start + per_page]

    return ProductPage(
        products=sliced,
        total_products=total,
        total_pages=total_pages,
        page=page,
        per_page=per_page,
    )


def build_meta(page: int, per_page: int, total_pages: int, total_products: int) -> Dict[str, Any]:
    """Pagination meta block shared by every listing response."""
    return {
        "current_page": page,
        "per_page": per_page,
        "total_pages": total_pages,
        "total_products": total_products,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


# ============================================================================
# Category listing
# ============================================================================

def filter_by_category(items: Sequence[CatalogueItem], category_id: int) -> List[CatalogueItem]:
    """Items whose category memberships include `category_id`."""
    items = _require_items(items)
    category_id = _require_int(category_id, "category_id")
    return [item for item in items if any(cat.id == category_id for cat in item.categories)]


def products_by_category(items: Sequence[CatalogueItem], category_id: int, page: int = 1,
                         per_page: int = 12, orderby: str = ORDERBY_DATE,
                         order: str = "desc") -> ProductPage:
    matched = filter_by_category(items, category_id)
    return paginate(sort_products(matched, orderby, order), page, per_page)


# ============================================================================
# Attribute filtering
# ============================================================================

def normalize_option(option: str) -> Tuple[str, str]:
    """Lowercase form and lowercase-hyphenated form of an option name."""
    lowered = option.lower()
    return lowered, _WHITESPACE_RE.sub("-", lowered)


def parse_filter_tokens(value: Any) -> Set[str]:
    """
    'Black, White' → {'black', 'white'}. Lists of such strings are merged.
    Empty tokens are dropped.
    """
    if isinstance(value, (list, tuple)):
        parts: List[str] = []
        for entry in value:
            parts.extend(_require_str(entry, "filter value").split(","))
    else:
        parts = _require_str(value, "filter value").split(",")
    return {part.strip().lower() for part in parts if part.strip()}


def matches_attribute(item: CatalogueItem, attribute_slug: str, tokens: Set[str]) -> bool:
    """True if the item's attribute has at least one option matching a token."""
    for attr in item.attributes:
        if attr.slug != attribute_slug:
            continue
        for option in attr.options:
            lowered, hyphenated = normalize_option(option)
            if lowered in tokens or hyphenated in tokens:
                return True
        return False
    # Item lacks the attribute entirely
    return False


def active_filters(filters: Mapping[str, Any],
                   allowed: Iterable[str] = DEFAULT_FILTER_ATTRIBUTES) -> Dict[str, Set[str]]:
    """Recognized, non-empty filters as {attribute_slug: tokens}. Unknown keys are ignored."""
    if not isinstance(filters, Mapping):
        raise InvalidArgument(f"filters must be a mapping, got {type(filters).__name__}")
    allowed = set(allowed)
    active: Dict[str, Set[str]] = {}
    for key, value in filters.items():
        if key not in allowed or value is None:
            continue
        tokens = parse_filter_tokens(value)
        if tokens:
            active[key] = tokens
    return active


def filter_by_attributes(items: Sequence[CatalogueItem], filters: Mapping[str, Any],
                         allowed: Iterable[str] = DEFAULT_FILTER_ATTRIBUTES) -> List[CatalogueItem]:
    """AND across attribute keys, OR within one key's tokens."""
    items = _require_items(items)
    active = active_filters(filters, allowed)
    if not active:
        return items
    return [
        item for item in items
        if all(matches_attribute(item, slug, tokens) for slug, tokens in active.items())
    ]


def filtered_products(items: Sequence[CatalogueItem], filters: Mapping[str, Any], page: int = 1,
                      per_page: int = 12, orderby: str = ORDERBY_DATE, order: str = "desc",
                      allowed: Iterable[str] = DEFAULT_FILTER_ATTRIBUTES) -> ProductPage:
    matched = filter_by_attributes(items, filters, allowed)
    return paginate(sort_products(matched, orderby, order), page, per_page)


# ============================================================================
# Free-text search
# ============================================================================

def relevance_key(item: CatalogueItem, term: str) -> Tuple[int, str, str]:
    """
    Exact name match, then name prefix match, then alphabetical by name.
    `term` must already be lowercased.
    """
    name = item.name.lower()
    if name == term:
        tier = 0
    elif name.startswith(term):
        tier = 1
    else:
        tier = 2
    return (tier,) + title_key(name)


def search(items: Sequence[CatalogueItem], query: str,
           category_slug: Optional[str] = None) -> List[CatalogueItem]:
    """
    Case-insensitive substring match on name or slug, optionally restricted to
    a category slug, ordered by relevance. Blank queries match nothing.
    """
    items = _require_items(items)
    term = _require_str(query, "q").strip().lower()
    if not term:
        return []
    category = _require_str(category_slug, "category").strip().lower() if category_slug else ""

    matched = []
    for item in items:
        if term not in item.name.lower() and term not in item.slug.lower():
            continue
        if category and not any(cat.slug.lower() == category for cat in item.categories):
            continue
        matched.append(item)
    return sorted(matched, key=lambda item: relevance_key(item, term))


# ============================================================================
# New arrivals
# ============================================================================

def subtract_months(moment: datetime, months: int) -> datetime:
    """
    Calendar-month subtraction, clamping the day to the target month's length.

    May 31 minus 3 months → Feb 28 (or 29), never an overflow into March.
    """
    months = _require_int(months, "months")
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def new_arrivals(items: Sequence[CatalogueItem], now: datetime, months: int = 2) -> List[CatalogueItem]:
    """Items created at or after `now` minus `months`, newest first."""
    items = _require_items(items)
    if not isinstance(now, datetime):
        raise InvalidArgument(f"now must be a datetime, got {now!r}")
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = subtract_months(now, months)
    recent = [item for item in items if created_at(item) >= cutoff]
    return sorted(recent, key=created_at, reverse=True)


def find_by_slug(items: Sequence[CatalogueItem], slug: str) -> Optional[CatalogueItem]:
    items = _require_items(items)
    slug = _require_str(slug, "slug")
    for item in items:
        if item.slug == slug:
            return item
    return None
