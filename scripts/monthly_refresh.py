#!/usr/bin/env python3
"""
DevClip Monthly Credit Refresh

Grants every account its tier's monthly allocation plus capped carryover and
resets the used counter. Intended to run from cron on the first of the month.

Usage:
    # Refresh all accounts
    python3 scripts/monthly_refresh.py

    # Show what would change without writing
    python3 scripts/monthly_refresh.py --dry-run
"""

import argparse
import asyncio
import sys

from devclip.db.session import close_engines, get_write_session
from devclip.observability import get_logger, setup_logging
from devclip.services.refresh import refresh_all_accounts

logger = get_logger(__name__)


async def run(dry_run: bool) -> int:
    try:
        report = await refresh_all_accounts(get_write_session, dry_run=dry_run)
    finally:
        await close_engines()
    return 1 if report.failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Refresh monthly credits for all accounts")
    parser.add_argument(
        "--dry-run", action="store_true", help="Compute new balances without writing them"
    )
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(run(args.dry_run)))


if __name__ == "__main__":
    main()
