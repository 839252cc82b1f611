"""Scheduled trigger routes."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from finbot.api.cron import get_reminder_scanner
from finbot.core.config import settings
from finbot.core.database import utc_now
from finbot.core.errors import SchedulerJobError
from finbot.features.accounts import store
from finbot.main import app
from finbot.models.account import PlanTier

client = TestClient(app)


class _StubScanner:
    def __init__(self, result=3, error=None):
        self.result = result
        self.error = error

    async def run(self):
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def no_cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", None)


@pytest.fixture
def stub_scanner():
    def install(scanner):
        app.dependency_overrides[get_reminder_scanner] = lambda: scanner
    yield install
    app.dependency_overrides.pop(get_reminder_scanner, None)


def test_reminders_returns_triggered_count(no_cron_secret, stub_scanner):
    stub_scanner(_StubScanner(result=3))
    resp = client.post("/api/cron/reminders")
    assert resp.status_code == 200
    assert resp.json() == {"triggered": 3}


def test_reminders_with_real_scanner_and_nothing_due(no_cron_secret):
    resp = client.post("/api/cron/reminders")
    assert resp.json() == {"triggered": 0}


def test_scan_failure_is_500(no_cron_secret, stub_scanner):
    stub_scanner(_StubScanner(error=SchedulerJobError("failed to load appointments")))
    resp = client.post("/api/cron/reminders")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "scheduler_job_failed"


def test_cron_secret_required_when_configured(monkeypatch, stub_scanner):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    stub_scanner(_StubScanner(result=1))

    assert client.post("/api/cron/reminders").status_code == 401
    assert client.post("/api/cron/reminders", headers={"Authorization": "Bearer nope"}).status_code == 401
    ok = client.post("/api/cron/reminders", headers={"Authorization": "Bearer s3cret"})
    assert ok.json() == {"triggered": 1}


def test_expire_plans_route(no_cron_secret):
    store.create_account("old@x.com", plan_tier=PlanTier.BRONZE, plan_expires_at=utc_now() - timedelta(days=1))
    store.create_account("new@x.com", plan_tier=PlanTier.BRONZE, plan_expires_at=utc_now() + timedelta(days=1))

    resp = client.post("/api/cron/expire-plans")

    assert resp.json() == {"updated": 1}
    assert store.get_account_by_email("old@x.com").plan_tier == PlanTier.NONE
