"""
Backing-store layer shared by every catalogue cache component.
"""
from storefront.cache.client import (
    CacheClient,
    RedisCacheClient,
    MemoryCacheClient,
    create_cache_client,
)

__all__ = [
    "CacheClient",
    "RedisCacheClient",
    "MemoryCacheClient",
    "create_cache_client",
]
