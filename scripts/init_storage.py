#!/usr/bin/env python3
"""
Initialize the health storage database.

This script prepares a database for the storage engine by:
1. Validating configuration
2. Creating the indexes of every collection (unique ones included)
3. Seeding the default app versions when the collection is empty

Run it once per deployment, before the service starts taking traffic.
It is safe to run again: existing indexes are confirmed, seeded versions
are left alone.

Usage:
    python scripts/init_storage.py

    # Indexes only:
    python scripts/init_storage.py --skip-seed
"""

import argparse
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.common.config import Config
from src.common.logger import set_global_debug_mode, setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the health storage database")
    parser.add_argument(
        "--skip-seed",
        action="store_true",
        help="Create indexes without seeding app versions",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.verbose else Config.LOG_LEVEL)
    if args.verbose:
        set_global_debug_mode(True)

    logger.info("=" * 60)
    logger.info("Health Storage Initialization")
    logger.info("=" * 60)

    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"✗ {e}")
        return 1

    from src.storage import get_storage_adapter, reset_storage_adapter

    adapter = get_storage_adapter(start=False)
    try:
        logger.info("\n[Step 1] Creating indexes...")
        created = adapter.ensure_indexes()
        logger.info(f"  ✓ {created} indexes in place")

        if args.skip_seed or not Config.SEED_APP_VERSIONS:
            logger.info("\n[Step 2] Skipping app version seed")
        else:
            logger.info("\n[Step 2] Seeding app versions...")
            seeded = adapter.repos.app_versions.seed_defaults()
            logger.info(f"  ✓ {seeded} app versions seeded")
    finally:
        reset_storage_adapter()

    logger.info("\nDone.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
