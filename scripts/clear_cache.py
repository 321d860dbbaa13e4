#!/usr/bin/env python3
"""
Clear (and optionally rebuild) the storefront catalogue caches.

Deletes every key under each cache component's prefix:
  products:*  popular:*  filter:*  category:*

WooCommerce is the source of truth; anything deleted here is rebuilt on the
next read, on the next daily refresh, or immediately with --refresh.

Run: python scripts/clear_cache.py [--only catalogue --only facets] [--refresh]
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from storefront.core.services import build_services
from storefront.utils.logger import set_level

COMPONENTS = ("catalogue", "popular", "facets", "categories")


async def run(only, refresh: bool) -> int:
    services = build_services()
    try:
        if not await services.cache.ping():
            print(f"\n[WARN] Cache backend '{services.cache.backend_name}' not reachable.")
            return 1

        components = services.catalogue.components
        names = only or list(COMPONENTS)

        print("\n" + "=" * 50)
        total = 0
        for name in names:
            deleted = await components[name].clear()
            print(f"   Cleared {deleted} {name} cache entries")
            total += deleted
        print(f"   Total cache entries cleared: {total}")
        print("=" * 50)

        if refresh:
            print("\nRebuilding from WooCommerce...")
            failed = 0
            for name in names:
                try:
                    await services.catalogue.force_refresh(name)
                    print(f"   [OK] {name}")
                except Exception as e:
                    print(f"   [FAIL] {name}: {e}")
                    failed += 1
            return 1 if failed else 0
        return 0
    finally:
        await services.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Clear storefront catalogue caches")
    parser.add_argument("--only", action="append", choices=COMPONENTS,
                        help="Clear only this component (repeatable)")
    parser.add_argument("--refresh", action="store_true",
                        help="Rebuild the cleared components from upstream afterwards")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()
    if args.verbose:
        set_level("DEBUG")
    sys.exit(asyncio.run(run(args.only, args.refresh)))


if __name__ == "__main__":
    main()
