"""
Catalogue caching policy: what gets cached, under which keys, for how long.

Architecture:
  WooCommerce → source of truth (products, categories, attribute terms)
  Redis       → snapshot store (whole-catalogue blobs, TTL-based expiry)

Every cache component owns one key prefix. clear_all() on a component
deletes everything under its prefix and nothing else.
"""

# ────────────────────────────────────────────────────────────────────────────
# Cache Policy Table
# ────────────────────────────────────────────────────────────────────────────
#
# Data Type          | Key Pattern          | TTL   | Refresh
# -------------------+----------------------+-------+-------------------------------
# Catalogue snapshot | products:all         | 24 h  | startup, daily, admin, lazy
# Popular products   | popular:products     | 24 h  | startup, daily, admin, lazy
# Facet options      | filter:options       | 24 h  | startup, daily, admin, lazy
# Category record    | category:{slug}      | 24 h  | startup, daily, admin, per-key
#
# ────────────────────────────────────────────────────────────────────────────
# Consistency Expectations
# ────────────────────────────────────────────────────────────────────────────
#
# - Browsing reads may be stale by up to one refresh interval (24 h) or until
#   an admin forces a refresh. Checkout never reads from these keys.
# - Snapshots are replaced wholesale. There is no incremental update, so a
#   reader sees either the old catalogue or the new one, never a mix.
# - Facet options and category records refresh independently of the
#   catalogue snapshot and may briefly disagree with it.

PRODUCTS_PREFIX = "products:"
SNAPSHOT_KEY = "products:all"
POPULAR_PREFIX = "popular:"
POPULAR_KEY = "popular:products"

FILTER_PREFIX = "filter:"
FILTER_OPTIONS_KEY = "filter:options"

CATEGORY_PREFIX = "category:"


def category_key(slug: str) -> str:
    """Cache key for a single category record."""
    return f"{CATEGORY_PREFIX}{slug}"
