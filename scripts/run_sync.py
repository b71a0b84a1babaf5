"""
Run the contact sync from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
import os

from contact_sync.services.sync_service import get_sync_driver


def main() -> int:
    parser = argparse.ArgumentParser(description="Google Contacts -> Notion sync.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one time-boxed sync pass.")
    run_parser.add_argument(
        "--force-refresh",
        action="store_true",
        help="Discard the checkpoint and re-read synced contacts from Notion.",
    )
    run_parser.add_argument(
        "--reset-dead-letters",
        action="store_true",
        help="Empty the dead-letter log so rejected contacts are attempted again.",
    )

    status_parser = subparsers.add_parser("status", help="Report sync progress.")
    status_parser.add_argument(
        "--live",
        action="store_true",
        help="Query Notion instead of trusting the checkpoint.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    driver = get_sync_driver()
    if args.command == "run":
        summary = driver.run_once(
            force_refresh=args.force_refresh,
            reset_dead_letters=args.reset_dead_letters,
        )
        payload = {
            "created": summary.created,
            "failed": summary.failed,
            "dead_lettered": summary.dead_lettered,
            "elapsed_seconds": round(summary.elapsed_seconds, 2),
            "total": summary.total,
            "synced": summary.synced,
            "remaining": summary.remaining,
            "timed_out": summary.timed_out,
            "skipped": summary.skipped,
            "lease_lost": summary.lease_lost,
        }
    else:
        status = driver.check_status(live=args.live)
        payload = {
            "total": status.total,
            "synced": status.synced,
            "remaining": status.remaining,
            "dead_lettered": status.dead_lettered,
            "percent": status.percent,
        }
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
