"""Reminder scanner worker.

Usage:
    python -m finbot.workers.reminder_scanner --once
    python -m finbot.workers.reminder_scanner --loop

Environment flags:
- FINBOT_REMINDER_LOOP_SECONDS (default 300)
- REMINDER_UTC_OFFSET_HOURS / REMINDER_WINDOW_MINUTES (see Settings)
"""
from __future__ import annotations

import argparse
import asyncio
import os
import time

from finbot.core.config import settings
from finbot.core.errors import SchedulerJobError
from finbot.core.logging import configure_logging
from finbot.features.reminders.service import ReminderScanner


DEFAULT_LOOP_SECONDS = int(os.getenv("FINBOT_REMINDER_LOOP_SECONDS", "300") or 300)


async def _process_once() -> int:
    return await ReminderScanner().run()


def main() -> None:
    parser = argparse.ArgumentParser(description="Appointment reminder worker")
    parser.add_argument("--once", action="store_true", help="Scan once and exit")
    parser.add_argument("--loop", action="store_true", help="Run in continuous loop")
    parser.add_argument(
        "--sleep",
        type=int,
        default=DEFAULT_LOOP_SECONDS,
        help="Seconds to sleep between scans (when --loop)",
    )
    args = parser.parse_args()
    configure_logging(settings.ENV)

    if args.once:
        triggered = asyncio.run(_process_once())
        print(f"[reminder-worker] Triggered: {triggered}")
        return

    # Default to loop mode when not explicitly once
    print(f"[reminder-worker] Starting loop (sleep={args.sleep}s). CTRL+C to stop.")
    try:
        while True:
            try:
                triggered = asyncio.run(_process_once())
            except SchedulerJobError as exc:
                # Next tick retries
                print(f"[reminder-worker] Scan aborted: {exc.message}")
                triggered = 0
            if triggered:
                print(f"[reminder-worker] Triggered {triggered} reminders")
            time.sleep(args.sleep)
    except KeyboardInterrupt:
        print("[reminder-worker] Stopped")


if __name__ == "__main__":
    main()
