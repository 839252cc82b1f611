"""
Scheduled trigger routes.

- POST /api/cron/reminders: one reminder scan, returns {triggered}
- POST /api/cron/expire-plans: one expiry sweep, returns {updated}

Guarded by `Authorization: Bearer <CRON_SECRET>` when CRON_SECRET is set.
"""
from fastapi import APIRouter, Depends

from finbot.core.admin_auth import require_cron_secret
from finbot.core.logging import log_event
from finbot.features.accounts.expiry import expire_plans
from finbot.features.reminders.service import ReminderScanner


router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


def get_reminder_scanner() -> ReminderScanner:
    return ReminderScanner()


@router.post("/reminders")
async def trigger_reminders(scanner: ReminderScanner = Depends(get_reminder_scanner)):
    triggered = await scanner.run()
    log_event("info", "cron.reminders", extra={"count": triggered})
    return {"triggered": triggered}


@router.post("/expire-plans")
async def trigger_expire_plans():
    updated = await expire_plans()
    log_event("info", "cron.expire_plans", extra={"count": updated})
    return {"updated": updated}
