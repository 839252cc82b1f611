"""
Payment provider webhook handler.

Translates an approved purchase, renewal, cancellation or refund into an
account entitlement change. Authentication is a shared secret carried in the
request body; the secret is injected through PaymentWebhookConfig and never
read from the environment here.

Provider retry semantics depend on the status code: 400/401 are final,
5xx may be retried by the provider.
"""
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from finbot.core.config import PaymentWebhookConfig
from finbot.core.database import utc_now
from finbot.core.errors import (
    AppError,
    AuthError,
    MethodNotAllowedError,
    UnsupportedEventError,
    ValidationError,
    error_payload,
)
from finbot.core.logging import get_request_id, log_event
from finbot.features.accounts import store
from finbot.features.payments.payload import PurchaseData, customer_email, extract_purchase
from finbot.features.plans.classifier import classify
from finbot.features.webhooks.dispatcher import WebhookDispatcher
from finbot.models.account import Account, PlanTier
from finbot.models.sale import SaleLedgerEntry
from finbot.models.webhook_subscription import EventType


PROVISIONING_EVENTS = frozenset({"purchase_approved", "subscription_renewed"})
CANCELLATION_EVENTS = frozenset({"subscription_canceled", "refund"})

ACTION_CREATED = "user_created"
ACTION_UPDATED = "user_updated"

SUCCESS_MESSAGES = {
    "purchase_approved": "Webhook processado com sucesso",
    "subscription_renewed": "Webhook processado com sucesso",
    "subscription_canceled": "Cancelamento processado com sucesso",
    "refund": "Reembolso processado com sucesso",
}


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of the secondary sale-ledger write. Callers may ignore it."""
    ok: bool
    entry: Optional[SaleLedgerEntry] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ProvisionResult:
    account: Account
    action: str
    plan_tier: PlanTier
    duration_days: int
    ledger: LedgerResult

    @property
    def user_id(self) -> str:
        return self.account.id


def _error_response(exc: AppError, details: Optional[str] = None) -> WebhookResponse:
    return WebhookResponse(
        status_code=exc.status_code,
        payload=error_payload(exc.code, exc.message, get_request_id(), details),
    )


class PaymentWebhookHandler:
    def __init__(
        self,
        config: PaymentWebhookConfig,
        dispatcher: Optional[WebhookDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.dispatcher = dispatcher or WebhookDispatcher()
        self.clock = clock

    def authenticate(self, secret: Any) -> None:
        """Constant-time secret check. An unconfigured secret rejects everything."""
        expected = self.config.shared_secret
        if not expected or not isinstance(secret, str) or not secret:
            raise AuthError("Acesso negado: secret inválido")
        if not hmac.compare_digest(secret.encode("utf-8"), expected.encode("utf-8")):
            raise AuthError("Acesso negado: secret inválido")

    async def handle(self, method: str, body: Any) -> WebhookResponse:
        if (method or "").upper() != "POST":
            return _error_response(MethodNotAllowedError("Método não permitido"))

        if not isinstance(body, dict) or not body:
            return _error_response(ValidationError("Body da requisição é obrigatório"))

        try:
            self.authenticate(body.get("secret"))
        except AuthError as exc:
            log_event("warning", "payment_webhook.unauthorized", error_code=exc.code)
            return _error_response(exc)

        event = body.get("event")
        if event not in PROVISIONING_EVENTS and event not in CANCELLATION_EVENTS:
            log_event("warning", "payment_webhook.unsupported_event", extra={"event": event})
            return _error_response(UnsupportedEventError(f"Evento não suportado: {event}"))

        data = body.get("data")
        if not isinstance(data, dict):
            return _error_response(ValidationError("Campo data é obrigatório"))

        try:
            if event in PROVISIONING_EVENTS:
                result = await self.provision(data)
                return WebhookResponse(
                    status_code=200,
                    payload={
                        "success": True,
                        "message": SUCCESS_MESSAGES[event],
                        "user_id": result.user_id,
                        "action": result.action,
                    },
                )

            self.cancel(data)
            return WebhookResponse(
                status_code=200,
                payload={"success": True, "message": SUCCESS_MESSAGES[event]},
            )
        except Exception as exc:
            log_event(
                "error",
                "payment_webhook.failed",
                error_code=getattr(exc, "code", "internal_error"),
                extra={"event": event, "error": str(exc)},
            )
            return _error_response(
                AppError("Erro interno do servidor", code="internal_error", status_code=500),
                details=str(exc),
            )

    async def provision(self, data: Dict[str, Any]) -> ProvisionResult:
        """
        Grant or extend the plan bought in `data`.

        Raises:
            ValidationError: customer email missing
            StorageError: the account write failed (ledger is not reached)
        """
        purchase = extract_purchase(data)
        tier, days = classify(purchase.offer_label, purchase.product_label, purchase.amount_minor_units)
        expires_at = self.clock() + timedelta(days=days)

        account, action = self._upsert_account(purchase, tier, expires_at)
        ledger = self.record_sale(purchase, tier, days)

        log_event(
            "info",
            "payment_webhook.provisioned",
            user_id=account.id,
            extra={"action": action, "plan_tier": tier.value, "days": days, "ledger_ok": ledger.ok},
        )

        await self.dispatcher.dispatch(
            EventType.VENDA_REALIZADA.value,
            {
                "id": account.id,
                "email": account.email,
                "nome": account.name,
                "whatsapp": account.phone,
                "plano": tier.value,
                "valor": float(purchase.amount),
                "produto": purchase.product_label,
                "transaction_id": purchase.transaction_id,
            },
        )
        if action == ACTION_CREATED:
            await self.dispatcher.dispatch(
                EventType.CRIOU_CONTA.value,
                {
                    "id": account.id,
                    "email": account.email,
                    "nome": account.name,
                    "whatsapp": account.phone,
                    "plano": tier.value,
                    "plan_expiration": expires_at.isoformat(),
                    "origem": "pagamento",
                },
            )

        return ProvisionResult(
            account=account,
            action=action,
            plan_tier=tier,
            duration_days=days,
            ledger=ledger,
        )

    def _upsert_account(self, purchase: PurchaseData, tier: PlanTier, expires_at: datetime):
        existing = store.get_account_by_email(purchase.email)
        if existing is None:
            try:
                account = store.create_account(
                    purchase.email,
                    name=purchase.name,
                    phone=purchase.phone,
                    plan_tier=tier,
                    plan_expires_at=expires_at,
                )
                return account, ACTION_CREATED
            except store.DuplicateAccountError:
                # Concurrent delivery of the same purchase created it first
                existing = store.get_account_by_email(purchase.email)
                if existing is None:
                    raise

        account = store.grant_plan(
            existing,
            tier,
            expires_at,
            name=purchase.name,
            phone=purchase.phone,
        )
        return account, ACTION_UPDATED

    def record_sale(self, purchase: PurchaseData, tier: PlanTier, days: int) -> LedgerResult:
        """Append to the sale ledger. Failures are logged, never raised."""
        try:
            entry = store.append_sale(
                email=purchase.email,
                plan_tier=tier,
                duration_days=days,
                amount=purchase.amount,
                transaction_id=purchase.transaction_id,
                product_label=purchase.product_label,
                offer_label=purchase.offer_label,
                sold_at=self.clock(),
            )
        except Exception as exc:
            log_event(
                "error",
                "payment_webhook.ledger_append_failed",
                error_code=getattr(exc, "code", "storage_error"),
                extra={"email": purchase.email, "transaction_id": purchase.transaction_id, "error": str(exc)},
            )
            return LedgerResult(ok=False, error=str(exc))
        return LedgerResult(ok=True, entry=entry)

    def cancel(self, data: Dict[str, Any]) -> Optional[Account]:
        """
        Clear the entitlement for data.customer.email.

        Unknown emails are a no-op. Returns the account that was cleared, if any.
        """
        email = customer_email(data)
        account = store.get_account_by_email(email)
        if account is None:
            log_event("info", "payment_webhook.cancel_unknown_account", extra={"email": email})
            return None
        store.clear_entitlement(account.id)
        log_event("info", "payment_webhook.entitlement_cleared", user_id=account.id)
        return account.model_copy(update={"plan_tier": PlanTier.NONE, "plan_expires_at": None})


def build_handler(dispatcher: Optional[WebhookDispatcher] = None) -> PaymentWebhookHandler:
    """Handler wired from process settings (used by the HTTP route)."""
    return PaymentWebhookHandler(PaymentWebhookConfig.from_settings(), dispatcher=dispatcher)
