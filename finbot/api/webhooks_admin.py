"""
Admin endpoints for webhook subscriptions.

Requires X-Admin-Key. Records are exposed as {id, url, evento, criado_em}.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from finbot.core.admin_auth import AdminActor, require_admin
from finbot.core.database import get_db
from finbot.core.logging import log_event
from finbot.features.webhooks import registry


router = APIRouter(prefix="/v1/admin/webhooks", tags=["admin-webhooks"])


class CreateSubscriptionRequest(BaseModel):
    url: str
    evento: str


class UpdateSubscriptionRequest(BaseModel):
    url: Optional[str] = None
    evento: Optional[str] = None


@router.get("")
def list_webhooks(
    evento: Optional[str] = Query(None),
    admin: AdminActor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    subscriptions = registry.list_subscriptions(db, evento)
    return {"webhooks": [sub.to_public() for sub in subscriptions]}


@router.post("", status_code=201)
def create_webhook(
    request: CreateSubscriptionRequest,
    admin: AdminActor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    subscription = registry.create_subscription(db, request.url, request.evento)
    log_event(
        "info",
        "admin.webhook_created",
        event_type=subscription.event_type,
        extra={"actor": admin.actor_id, "url": subscription.url},
    )
    return subscription.to_public()


@router.patch("/{subscription_id}")
def update_webhook(
    subscription_id: str,
    request: UpdateSubscriptionRequest,
    admin: AdminActor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    subscription = registry.update_subscription(db, subscription_id, request.model_dump(exclude_none=True))
    log_event("info", "admin.webhook_updated", extra={"actor": admin.actor_id, "subscription_id": subscription_id})
    return subscription.to_public()


@router.delete("/{subscription_id}", status_code=204)
def delete_webhook(
    subscription_id: str,
    admin: AdminActor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    registry.delete_subscription(db, subscription_id)
    log_event("info", "admin.webhook_deleted", extra={"actor": admin.actor_id, "subscription_id": subscription_id})
    return Response(status_code=204)
