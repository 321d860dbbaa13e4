"""
Storefront catalogue cache.

Backend-for-frontend core for a WooCommerce storefront:
- Full-catalogue snapshot cached in Redis, refreshed daily
- In-memory filtering, search, sorting and pagination over the snapshot
- Facet option and category caches with independent lifecycles
"""

__version__ = '0.1.0'
