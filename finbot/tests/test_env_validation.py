import logging

import pytest

from finbot.core.config import PaymentWebhookConfig, ReminderConfig, Settings, validate_config
from finbot.core.errors import error_payload


def test_missing_required_keys_warn_in_lenient_mode(caplog):
    cfg = Settings(DATABASE_URL=None, PAYMENT_WEBHOOK_SECRET=None)
    with caplog.at_level(logging.WARNING, logger="finbot"):
        assert validate_config(strict=False, settings_obj=cfg) is True
    assert any("PAYMENT_WEBHOOK_SECRET" in r.getMessage() for r in caplog.records)


def test_missing_required_keys_raise_in_strict_mode():
    cfg = Settings(DATABASE_URL="sqlite://", PAYMENT_WEBHOOK_SECRET=None)
    with pytest.raises(RuntimeError) as exc:
        validate_config(strict=True, settings_obj=cfg)
    assert "PAYMENT_WEBHOOK_SECRET" in str(exc.value)
    assert "DATABASE_URL" not in str(exc.value)


def test_config_objects_come_from_settings():
    cfg = Settings(PAYMENT_WEBHOOK_SECRET="abc", REMINDER_UTC_OFFSET_HOURS=-2, REMINDER_WINDOW_MINUTES=30)
    assert PaymentWebhookConfig.from_settings(cfg).shared_secret == "abc"
    assert ReminderConfig.from_settings(cfg) == ReminderConfig(utc_offset_hours=-2, window_minutes=30)


def test_empty_secret_is_treated_as_unconfigured():
    assert PaymentWebhookConfig.from_settings(Settings(PAYMENT_WEBHOOK_SECRET="")).shared_secret is None


def test_error_payload_shape():
    payload = error_payload("unauthorized", "bad secret", "rid-1")
    assert payload == {
        "success": False,
        "error": {"code": "unauthorized", "message": "bad secret", "request_id": "rid-1"},
        "detail": "bad secret",
    }
    assert error_payload("internal_error", "boom", None, details="x")["details"] == "x"
