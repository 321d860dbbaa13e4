"""
Error taxonomy for the catalogue core.

UpstreamFetchFailure : network/HTTP/decoding error talking to WooCommerce.
BackingStoreFailure  : cache read/write error (never fatal; see cache.client).
InvalidArgument      : malformed query parameters reaching the query engine.
"""


class StorefrontError(RuntimeError):
    """Base class for all storefront core errors."""


class UpstreamFetchFailure(StorefrontError):
    """Raised when the upstream commerce API cannot be read."""

    def __init__(self, message: str, status_code: int = None, path: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class BackingStoreFailure(StorefrontError):
    """Raised by cache backends when the key-value store errors."""


class InvalidArgument(StorefrontError, ValueError):
    """Raised when the query engine receives malformed input."""
