"""Webhook fan-out.

Looks up the subscriptions for an event and POSTs to each of them
concurrently. Delivery is best-effort: no retries, no persisted receipts, no
ordering between subscribers. A failing endpoint is logged and recorded in
its DeliveryResult; it never reaches the caller or the other endpoints.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from finbot.core.config import settings
from finbot.core.database import get_db_session, utc_now
from finbot.core.errors import DeliveryError
from finbot.core.logging import log_event
from finbot.features.webhooks import registry
from finbot.models.webhook_subscription import WebhookSubscription


@dataclass(frozen=True)
class DeliveryResult:
    subscription_id: str
    url: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def build_envelope(event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "evento": event_type,
        "dados": payload,
        "timestamp": utc_now().isoformat(),
    }


def _load_subscriptions(event_type: str) -> List[WebhookSubscription]:
    with get_db_session() as session:
        return registry.list_subscriptions(session, event_type)


class WebhookDispatcher:
    """
    Args:
        timeout_seconds: per-request bound (defaults to WEBHOOK_TIMEOUT_SECONDS)
        transport: optional httpx transport, tests pass an httpx.MockTransport
        subscription_loader: event_type -> subscriptions, defaults to the registry
    """

    def __init__(
        self,
        *,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        subscription_loader: Optional[Callable[[str], Sequence[WebhookSubscription]]] = None,
    ):
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self.transport = transport
        self.subscription_loader = subscription_loader or _load_subscriptions

    def _client(self) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"timeout": self.timeout_seconds}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.AsyncClient(**kwargs)

    async def dispatch(self, event_type: str, payload: Dict[str, Any]) -> List[DeliveryResult]:
        """Fan out `{evento, dados, timestamp}` to every subscriber of event_type."""
        try:
            subscriptions = list(self.subscription_loader(event_type))
        except Exception as exc:
            log_event(
                "error",
                "webhook.subscriptions_lookup_failed",
                event_type=event_type,
                error_code="storage_error",
                extra={"error": str(exc)},
            )
            return []

        if not subscriptions:
            return []

        return await self.deliver(subscriptions, build_envelope(event_type, payload), event_type=event_type)

    async def deliver(
        self,
        subscriptions: Sequence[WebhookSubscription],
        body: Dict[str, Any],
        *,
        event_type: Optional[str] = None,
    ) -> List[DeliveryResult]:
        """POST the same body to each subscription concurrently."""
        if not subscriptions:
            return []
        async with self._client() as client:
            results = await asyncio.gather(
                *(self._deliver_one(client, sub, body, event_type) for sub in subscriptions)
            )
        return list(results)

    async def _deliver_one(
        self,
        client: httpx.AsyncClient,
        subscription: WebhookSubscription,
        body: Dict[str, Any],
        event_type: Optional[str],
    ) -> DeliveryResult:
        status_code = None
        try:
            # httpx timeouts apply per phase, this bounds the whole exchange
            response = await asyncio.wait_for(
                client.post(subscription.url, json=body), timeout=self.timeout_seconds
            )
            status_code = response.status_code
            if not response.is_success:
                raise DeliveryError(f"subscriber answered HTTP {status_code}")
        except Exception as exc:
            log_event(
                "warning",
                "webhook.delivery_failed",
                event_type=event_type,
                error_code=DeliveryError.code,
                extra={"url": subscription.url, "status": status_code, "error": str(exc) or type(exc).__name__},
            )
            return DeliveryResult(
                subscription_id=subscription.id,
                url=subscription.url,
                ok=False,
                status_code=status_code,
                error=str(exc) or type(exc).__name__,
            )

        log_event(
            "info",
            "webhook.delivered",
            event_type=event_type,
            extra={"url": subscription.url, "status": status_code},
        )
        return DeliveryResult(
            subscription_id=subscription.id,
            url=subscription.url,
            ok=True,
            status_code=status_code,
        )
