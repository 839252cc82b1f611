import logging
from dataclasses import dataclass

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Payment provider webhook (shared secret sent in the request body)
    PAYMENT_WEBHOOK_SECRET: Optional[str] = None

    # Outbound fan-out
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Reminder scanner
    REMINDER_UTC_OFFSET_HOURS: int = -3  # fixed offset, no DST
    REMINDER_WINDOW_MINUTES: int = 60

    # Scheduled trigger protection (Authorization: Bearer <CRON_SECRET>)
    CRON_SECRET: Optional[str] = None

    # Admin access for subscription management
    ADMIN_KEY: Optional[str] = None

    # App URLs
    BASE_URL: str = "http://localhost:8000"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


@dataclass(frozen=True)
class PaymentWebhookConfig:
    """Values the payment webhook handler needs, resolved once at startup."""
    shared_secret: Optional[str]

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "PaymentWebhookConfig":
        cfg = cfg or settings
        return cls(shared_secret=cfg.PAYMENT_WEBHOOK_SECRET or None)


@dataclass(frozen=True)
class ReminderConfig:
    utc_offset_hours: int = -3
    window_minutes: int = 60

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "ReminderConfig":
        cfg = cfg or settings
        return cls(
            utc_offset_hours=cfg.REMINDER_UTC_OFFSET_HOURS,
            window_minutes=cfg.REMINDER_WINDOW_MINUTES,
        )


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("finbot")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "PAYMENT_WEBHOOK_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
