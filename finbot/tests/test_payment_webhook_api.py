"""HTTP surface of the payment webhook."""

import pytest
from fastapi.testclient import TestClient

from finbot.api.payments import get_payment_handler
from finbot.core.config import PaymentWebhookConfig
from finbot.features.accounts import store
from finbot.features.payments.service import PaymentWebhookHandler
from finbot.main import app
from finbot.tests.mocks import FakeDispatcher

client = TestClient(app)

BODY = {
    "secret": "X",
    "event": "purchase_approved",
    "data": {
        "customer": {"email": "a@b.com", "name": "Ana", "phone": "+5511988887777"},
        "offer": {"name": "Plano Ouro Anual"},
        "transaction": {"id": "tx-1", "amount": 19990},
    },
}


@pytest.fixture
def dispatcher():
    fake = FakeDispatcher()
    app.dependency_overrides[get_payment_handler] = lambda: PaymentWebhookHandler(
        PaymentWebhookConfig(shared_secret="X"), dispatcher=fake
    )
    yield fake
    app.dependency_overrides.pop(get_payment_handler, None)


def test_purchase_approved(dispatcher):
    resp = client.post("/api/webhooks/payment", json=BODY)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["action"] == "user_created"
    assert body["user_id"] == store.get_account_by_email("a@b.com").id
    assert dispatcher.events() == ["venda_realizada", "criou_conta"]


def test_bad_secret(dispatcher):
    resp = client.post("/api/webhooks/payment", json={**BODY, "secret": "wrong"})

    assert resp.status_code == 401
    assert resp.json()["error"]["request_id"] == resp.headers["x-request-id"]
    assert store.get_account_by_email("a@b.com") is None
    assert dispatcher.dispatched == []


@pytest.mark.parametrize("method", ["get", "put", "delete"])
def test_other_methods_not_allowed(dispatcher, method):
    resp = getattr(client, method)("/api/webhooks/payment")
    assert resp.status_code == 405
    assert resp.json()["error"]["code"] == "method_not_allowed"


def test_invalid_json_body(dispatcher):
    resp = client.post(
        "/api/webhooks/payment",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400


def test_empty_body(dispatcher):
    resp = client.post("/api/webhooks/payment")
    assert resp.status_code == 400


def test_settings_secret_is_used_by_default(webhook_secret):
    resp = client.post("/api/webhooks/payment", json={**BODY, "event": "refund"})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Reembolso processado com sucesso"
