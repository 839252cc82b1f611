"""Plan expiry sweep: clears lapsed entitlements and announces them."""

from datetime import datetime
from typing import Optional

from finbot.core.database import utc_now
from finbot.core.logging import log_event
from finbot.features.accounts import store
from finbot.features.webhooks.dispatcher import WebhookDispatcher
from finbot.models.account import Account, PlanTier
from finbot.models.webhook_subscription import EventType


def expiry_event_for(account: Account) -> EventType:
    if account.plan_tier == PlanTier.TRIAL:
        return EventType.TRIAL_EXPIROU
    return EventType.PLANO_EXPIROU


async def expire_plans(
    dispatcher: Optional[WebhookDispatcher] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Reset every non-admin account whose plan expired before `now` to none/null.

    Emits trial_expirou or plano_expirou per cleared account and returns how
    many accounts were cleared. Admin accounts keep their plan.
    """
    dispatcher = dispatcher or WebhookDispatcher()
    now = now or utc_now()

    updated = 0
    for account in store.list_lapsed_accounts(now):
        store.clear_entitlement(account.id)
        updated += 1
        event = expiry_event_for(account)
        log_event("info", "plans.expired", user_id=account.id, event_type=event.value)
        await dispatcher.dispatch(
            event.value,
            {
                "id": account.id,
                "email": account.email,
                "nome": account.name,
                "whatsapp": account.phone,
                "expirou_em": now.isoformat(),
                "plan_expiration": account.plan_expires_at.isoformat() if account.plan_expires_at else None,
            },
        )
    return updated
