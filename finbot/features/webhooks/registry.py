"""Webhook subscription registry.

Operators route one internal event type to one external URL per row. There is
no reachability check at registration time.
"""
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from finbot.core.database import utc_now, ensure_utc, webhook_subscriptions
from finbot.core.errors import NotFoundError, ValidationError
from finbot.models.webhook_subscription import EVENT_TYPES, WebhookSubscription


def _validate_url(url: Optional[str]) -> str:
    cleaned = (url or "").strip()
    if not cleaned:
        raise ValidationError("url is required")
    return cleaned


def _validate_event_type(event_type: Optional[str]) -> str:
    cleaned = (event_type or "").strip()
    if cleaned not in EVENT_TYPES:
        raise ValidationError(
            f"unknown event type: {cleaned or '<empty>'} (expected one of {', '.join(sorted(EVENT_TYPES))})"
        )
    return cleaned


def _row_to_subscription(row) -> WebhookSubscription:
    return WebhookSubscription(
        id=row.id,
        url=row.url,
        event_type=row.event_type,
        created_at=ensure_utc(row.created_at),
    )


def list_subscriptions(db: Session, event_type: Optional[str] = None) -> List[WebhookSubscription]:
    query = select(webhook_subscriptions).order_by(webhook_subscriptions.c.created_at)
    if event_type:
        query = query.where(webhook_subscriptions.c.event_type == event_type)
    rows = db.execute(query).fetchall()
    return [_row_to_subscription(row) for row in rows]


def get_subscription(db: Session, subscription_id: str) -> WebhookSubscription:
    row = db.execute(
        select(webhook_subscriptions).where(webhook_subscriptions.c.id == subscription_id)
    ).fetchone()
    if not row:
        raise NotFoundError(f"webhook subscription not found: {subscription_id}")
    return _row_to_subscription(row)


def create_subscription(db: Session, url: str, event_type: str) -> WebhookSubscription:
    subscription = WebhookSubscription(
        id=str(uuid.uuid4()),
        url=_validate_url(url),
        event_type=_validate_event_type(event_type),
        created_at=utc_now(),
    )
    db.execute(
        insert(webhook_subscriptions).values(
            id=subscription.id,
            url=subscription.url,
            event_type=subscription.event_type,
            created_at=subscription.created_at,
        )
    )
    db.commit()
    return subscription


def update_subscription(db: Session, subscription_id: str, fields: Dict[str, Any]) -> WebhookSubscription:
    """Partial update. Accepts `url` and `event_type` (or its wire name `evento`)."""
    changes: Dict[str, Any] = {}
    if fields.get("url") is not None:
        changes["url"] = _validate_url(fields["url"])
    event_type = fields.get("event_type", fields.get("evento"))
    if event_type is not None:
        changes["event_type"] = _validate_event_type(event_type)

    current = get_subscription(db, subscription_id)
    if not changes:
        return current

    db.execute(
        update(webhook_subscriptions)
        .where(webhook_subscriptions.c.id == subscription_id)
        .values(**changes)
    )
    db.commit()
    return current.model_copy(update=changes)


def delete_subscription(db: Session, subscription_id: str) -> None:
    result = db.execute(
        delete(webhook_subscriptions).where(webhook_subscriptions.c.id == subscription_id)
    )
    db.commit()
    if result.rowcount == 0:
        raise NotFoundError(f"webhook subscription not found: {subscription_id}")
