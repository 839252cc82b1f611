"""Plan expiry worker.

Usage:
    python -m finbot.workers.expire_plans --once
    python -m finbot.workers.expire_plans --loop

Environment flags:
- FINBOT_EXPIRE_PLANS_LOOP_SECONDS (default 3600)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import time

from finbot.core.config import settings
from finbot.core.logging import configure_logging
from finbot.features.accounts.expiry import expire_plans


DEFAULT_LOOP_SECONDS = int(os.getenv("FINBOT_EXPIRE_PLANS_LOOP_SECONDS", "3600") or 3600)


def main() -> None:
    parser = argparse.ArgumentParser(description="Plan expiry worker")
    parser.add_argument("--once", action="store_true", help="Sweep once and exit")
    parser.add_argument("--loop", action="store_true", help="Run in continuous loop")
    parser.add_argument(
        "--sleep",
        type=int,
        default=DEFAULT_LOOP_SECONDS,
        help="Seconds to sleep between sweeps (when --loop)",
    )
    args = parser.parse_args()
    configure_logging(settings.ENV)

    if args.once:
        updated = asyncio.run(expire_plans())
        print(f"[expire-worker] Updated: {updated}")
        return

    print(f"[expire-worker] Starting loop (sleep={args.sleep}s). CTRL+C to stop.")
    try:
        while True:
            updated = asyncio.run(expire_plans())
            if updated:
                print(f"[expire-worker] Cleared {updated} lapsed plans")
            time.sleep(args.sleep)
    except KeyboardInterrupt:
        print("[expire-worker] Stopped")


if __name__ == "__main__":
    main()
