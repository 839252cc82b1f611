"""
Reminder scanner.

Finds appointments starting within the next window (local reference time,
fixed UTC offset without DST) and sends one `compromisso` notification per
appointment to every subscriber. Each appointment is claimed before delivery,
so overlapping scans cannot notify twice.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

from finbot.core.config import ReminderConfig
from finbot.core.database import get_db_session, utc_now
from finbot.core.errors import SchedulerJobError
from finbot.core.logging import log_event
from finbot.features.appointments import store as appointment_store
from finbot.features.webhooks import registry
from finbot.features.webhooks.dispatcher import WebhookDispatcher
from finbot.models.appointment import Appointment
from finbot.models.webhook_subscription import EventType, WebhookSubscription


TIME_FORMATS = ("%H:%M:%S", "%H:%M")


def reference_timezone(utc_offset_hours: int) -> tzinfo:
    return timezone(timedelta(hours=utc_offset_hours))


def appointment_instant(date_text: Optional[str], time_text: Optional[str], tz: tzinfo) -> Optional[datetime]:
    """Combine local date and time-of-day into an aware datetime; None if malformed."""
    if not date_text or not time_text:
        return None
    try:
        day = datetime.strptime(date_text.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None
    for fmt in TIME_FORMATS:
        try:
            moment = datetime.strptime(time_text.strip(), fmt).time()
        except ValueError:
            continue
        return datetime.combine(day, moment, tzinfo=tz)
    return None


class ReminderScanner:
    def __init__(
        self,
        config: Optional[ReminderConfig] = None,
        dispatcher: Optional[WebhookDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or ReminderConfig.from_settings()
        self.dispatcher = dispatcher or WebhookDispatcher()
        self.clock = clock
        self.tz = reference_timezone(self.config.utc_offset_hours)

    def _load_pending(self) -> List[Appointment]:
        try:
            return appointment_store.list_pending_reminders()
        except Exception as exc:
            raise SchedulerJobError(f"failed to load appointments: {exc}") from exc

    def _load_subscriptions(self) -> List[WebhookSubscription]:
        try:
            with get_db_session() as session:
                return registry.list_subscriptions(session, EventType.COMPROMISSO.value)
        except Exception as exc:
            raise SchedulerJobError(f"failed to load compromisso subscriptions: {exc}") from exc

    def select_due(self, pending: List[Appointment], now: datetime) -> List[Appointment]:
        """Appointments whose instant falls in (now, now + window]."""
        now = now.astimezone(self.tz)
        horizon = now + timedelta(minutes=self.config.window_minutes)
        due = []
        for appointment in pending:
            instant = appointment_instant(appointment.date, appointment.time, self.tz)
            if instant is None:
                log_event(
                    "debug",
                    "reminder.skipped_malformed",
                    extra={"appointment_id": appointment.id, "date": appointment.date, "time": appointment.time},
                )
                continue
            if now < instant <= horizon:
                due.append(appointment)
        return due

    async def run(self) -> int:
        """
        One scan. Returns the number of appointments notified and marked.

        Raises:
            SchedulerJobError: appointments or subscriptions could not be loaded
        """
        pending = self._load_pending()
        subscriptions = self._load_subscriptions()
        due = self.select_due(pending, self.clock())

        processed = 0
        for appointment in due:
            try:
                claimed = appointment_store.claim_reminder(appointment.id)
            except Exception as exc:
                log_event(
                    "error",
                    "reminder.claim_failed",
                    user_id=appointment.user_id,
                    error_code="storage_error",
                    extra={"appointment_id": appointment.id, "error": str(exc)},
                )
                continue
            if not claimed:
                continue

            await self.dispatcher.deliver(
                subscriptions,
                appointment.to_reminder_payload(),
                event_type=EventType.COMPROMISSO.value,
            )
            processed += 1

        if processed:
            log_event(
                "info",
                "reminder.scan_complete",
                event_type=EventType.COMPROMISSO.value,
                extra={"count": processed, "subscribers": len(subscriptions)},
            )
        return processed
