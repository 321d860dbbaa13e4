"""
Configuration management for the storefront service.

Loads settings from YAML config file and provides typed access.
Connection settings and secrets come from the environment.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of storefront package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"

DEFAULT_FILTER_ATTRIBUTES = ["pa_material", "pa_room-type-usage", "pa_colour", "pa_finish"]

ONE_DAY = 60 * 60 * 24


@dataclass
class StorefrontConfig:
    """Configuration for the catalogue cache and its collaborators."""

    # Upstream WooCommerce REST API
    wc_site_url: str = ""
    wc_consumer_key: str = ""
    wc_consumer_secret: str = ""
    wc_api_version: str = "wc/v3"
    request_timeout: float = 30.0
    per_page: int = 100                     # Upstream maximum page size

    # Backing store
    cache_backend: str = "redis"            # "redis" or "memory"
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    # TTLs (seconds)
    ttl_catalogue: int = ONE_DAY
    ttl_popular: int = ONE_DAY
    ttl_facets: int = ONE_DAY
    ttl_categories: int = ONE_DAY

    # Query behaviour
    popular_limit: int = 12
    new_arrival_months: int = 2
    filter_attributes: List[str] = field(default_factory=lambda: list(DEFAULT_FILTER_ATTRIBUTES))

    # Scheduler
    refresh_on_startup: bool = True
    refresh_at: str = "03:00"               # Daily rebuild, local wall-clock HH:MM

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "StorefrontConfig":
        """Load configuration from YAML file, then apply environment overrides."""
        path = config_path or DEFAULT_CONFIG_PATH
        data = {}
        if path.exists():
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}

        upstream = data.get('upstream', {})
        cache = data.get('cache', {})
        ttl = cache.get('ttl', {})
        catalogue = data.get('catalogue', {})
        scheduler = data.get('scheduler', {})

        config = cls(
            wc_api_version=upstream.get('api_version', 'wc/v3'),
            request_timeout=float(upstream.get('request_timeout', 30.0)),
            per_page=int(upstream.get('per_page', 100)),
            cache_backend=cache.get('backend', 'redis'),
            ttl_catalogue=int(ttl.get('catalogue', ONE_DAY)),
            ttl_popular=int(ttl.get('popular', ONE_DAY)),
            ttl_facets=int(ttl.get('facets', ONE_DAY)),
            ttl_categories=int(ttl.get('categories', ONE_DAY)),
            popular_limit=int(catalogue.get('popular_limit', 12)),
            new_arrival_months=int(catalogue.get('new_arrival_months', 2)),
            filter_attributes=list(catalogue.get('filter_attributes', DEFAULT_FILTER_ATTRIBUTES)),
            refresh_on_startup=bool(scheduler.get('refresh_on_startup', True)),
            refresh_at=str(scheduler.get('refresh_at', '03:00')),
        )
        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Override connection settings from environment variables."""
        self.wc_site_url = os.getenv("WC_SITE_URL", self.wc_site_url).rstrip("/")
        self.wc_consumer_key = os.getenv("WC_CONSUMER_KEY", self.wc_consumer_key)
        self.wc_consumer_secret = os.getenv("WC_CONSUMER_SECRET", self.wc_consumer_secret)
        self.cache_backend = os.getenv("CACHE_BACKEND", self.cache_backend).lower()
        self.redis_url = os.getenv("REDIS_URL", self.redis_url)
        self.redis_host = os.getenv("REDIS_HOST", self.redis_host)
        self.redis_port = int(os.getenv("REDIS_PORT", str(self.redis_port)))
        self.redis_db = int(os.getenv("REDIS_DB", str(self.redis_db)))
        self.redis_password = os.getenv("REDIS_PASSWORD", self.redis_password)


# Global config instance
_config: Optional[StorefrontConfig] = None


def get_config() -> StorefrontConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = StorefrontConfig.from_yaml()
    return _config


def set_config(config: StorefrontConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
