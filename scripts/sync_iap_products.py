#!/usr/bin/env python3
"""
Storefront IAP Catalog Sync

Pulls the Google Play in-app product catalog into the iapProducts collection.
Intended for cron or a container scheduler.

Usage:
    # One sync run (default - for cron)
    python3 scripts/sync_iap_products.py

    # Keep running, one sync every SYNC_INTERVAL_SECONDS
    python3 scripts/sync_iap_products.py --loop

    # Repair inconsistent product links after the sync
    python3 scripts/sync_iap_products.py --audit-links
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from storefront.config import settings
from storefront.db.session import close_engines
from storefront.observability import get_logger, setup_logging
from storefront.services.iap_link_audit import run_scheduled_link_audit
from storefront.services.iap_sync import run_scheduled_sync

logger = get_logger(__name__)


async def sync_once(audit_links: bool) -> dict[str, Any]:
    result = await run_scheduled_sync()
    if audit_links and result.get("success"):
        result["linkAudit"] = await run_scheduled_link_audit()
    return result


async def sync_forever(audit_links: bool) -> None:
    logger.info("iap_sync_loop_started", interval_seconds=settings.sync_interval_seconds)
    while True:
        result = await sync_once(audit_links)
        print(json.dumps(result), flush=True)
        await asyncio.sleep(settings.sync_interval_seconds)


async def main_async(args: argparse.Namespace) -> int:
    try:
        if args.loop:
            await sync_forever(args.audit_links)
            return 0

        result = await sync_once(args.audit_links)
        print(json.dumps(result, indent=2))
        return 0 if result.get("success") else 1
    finally:
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync the Google Play IAP catalog")
    parser.add_argument("--loop", action="store_true", help="Run on the configured interval")
    parser.add_argument(
        "--audit-links", action="store_true", help="Repair product links after syncing"
    )
    args = parser.parse_args()

    setup_logging()
    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        logger.info("iap_sync_loop_stopped")


if __name__ == "__main__":
    main()
