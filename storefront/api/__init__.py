"""
API module for the storefront catalogue.

REST endpoints for catalogue browsing, served from the cached snapshot
instead of per-request WooCommerce calls.
"""
