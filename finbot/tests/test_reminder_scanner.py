"""Reminder scanner: window selection, claim-before-notify and failure policy."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import insert, select

from finbot.core.config import ReminderConfig
from finbot.core.database import appointments, get_db_session
from finbot.core.errors import SchedulerJobError
from finbot.features.appointments import store as appointment_store
from finbot.features.reminders.service import ReminderScanner, appointment_instant, reference_timezone
from finbot.features.webhooks import registry
from finbot.features.webhooks.dispatcher import WebhookDispatcher
from finbot.tests.mocks import SubscriberSink


NOW = datetime(2026, 5, 10, 15, 0, tzinfo=timezone.utc)
LOCAL = reference_timezone(-3)
HOOK = "https://reminders.example.com/hook"


def _add_appointment(minutes_from_now=None, *, date=None, time=None, reminder_sent=False, fmt="%H:%M"):
    if minutes_from_now is not None:
        local = NOW.astimezone(LOCAL) + timedelta(minutes=minutes_from_now)
        date = local.strftime("%Y-%m-%d")
        time = local.strftime(fmt)
    appointment_id = str(uuid.uuid4())
    with get_db_session() as session:
        session.execute(
            insert(appointments).values(
                id=appointment_id,
                user_id="user-1",
                title="Dentista",
                description="Consulta",
                date=date,
                time=time,
                location="Centro",
                category="saude",
                reminder_sent=reminder_sent,
                created_at=NOW,
                updated_at=NOW,
            )
        )
    return appointment_id


def _reminder_sent(appointment_id):
    with get_db_session() as session:
        return session.execute(
            select(appointments.c.reminder_sent).where(appointments.c.id == appointment_id)
        ).scalar()


def _scanner(sink):
    return ReminderScanner(
        config=ReminderConfig(utc_offset_hours=-3, window_minutes=60),
        dispatcher=WebhookDispatcher(transport=sink.transport),
        clock=lambda: NOW,
    )


@pytest.fixture
def subscribed():
    with get_db_session() as session:
        registry.create_subscription(session, HOOK, "compromisso")


@pytest.mark.asyncio
async def test_window_selection(subscribed):
    soon = _add_appointment(59)
    late = _add_appointment(61)
    edge = _add_appointment(60)
    past = _add_appointment(-5)
    already = _add_appointment(30, reminder_sent=True)
    sink = SubscriberSink()

    count = await _scanner(sink).run()

    assert count == 2
    assert _reminder_sent(soon) is True
    assert _reminder_sent(edge) is True
    assert _reminder_sent(late) is False
    assert _reminder_sent(past) is False
    notified = {body["id"] for body in sink.bodies_for(HOOK)}
    assert notified == {soon, edge}
    assert already not in notified


@pytest.mark.asyncio
async def test_appointment_at_now_is_not_upcoming(subscribed):
    now_appt = _add_appointment(0)
    assert await _scanner(SubscriberSink()).run() == 0
    assert _reminder_sent(now_appt) is False


@pytest.mark.asyncio
async def test_payload_is_the_bare_appointment(subscribed):
    appt = _add_appointment(15, fmt="%H:%M:%S")
    sink = SubscriberSink()

    await _scanner(sink).run()

    [body] = sink.bodies_for(HOOK)
    assert body["id"] == appt
    assert body["user_id"] == "user-1"
    assert body["title"] == "Dentista"
    assert len(body["time"]) == 5
    assert set(body) == {
        "id", "user_id", "title", "description", "date", "time",
        "location", "category", "created_at", "updated_at",
    }


@pytest.mark.asyncio
async def test_second_scan_does_not_notify_again(subscribed):
    _add_appointment(10)
    sink = SubscriberSink()
    scanner = _scanner(sink)

    assert await scanner.run() == 1
    assert await scanner.run() == 0
    assert len(sink.calls) == 1


@pytest.mark.asyncio
async def test_marked_even_without_subscribers():
    appt = _add_appointment(10)
    sink = SubscriberSink()

    assert await _scanner(sink).run() == 1
    assert _reminder_sent(appt) is True
    assert sink.calls == []


@pytest.mark.asyncio
async def test_marked_even_when_delivery_fails(subscribed):
    appt = _add_appointment(10)
    sink = SubscriberSink(failures={HOOK: 500})

    assert await _scanner(sink).run() == 1
    assert _reminder_sent(appt) is True


@pytest.mark.asyncio
async def test_malformed_dates_are_skipped(subscribed):
    bad_date = _add_appointment(date="10/05/2026", time="12:10")
    no_time = _add_appointment(date="2026-05-10", time=None)
    bad_time = _add_appointment(date="2026-05-10", time="meio-dia")

    assert await _scanner(SubscriberSink()).run() == 0
    for appt in (bad_date, no_time, bad_time):
        assert _reminder_sent(appt) is False


@pytest.mark.asyncio
async def test_lost_claim_is_not_notified(subscribed, monkeypatch):
    _add_appointment(10)
    monkeypatch.setattr(appointment_store, "claim_reminder", lambda appointment_id: False)
    sink = SubscriberSink()

    assert await _scanner(sink).run() == 0
    assert sink.calls == []


@pytest.mark.asyncio
async def test_load_failure_aborts_scan(monkeypatch):
    def boom():
        raise RuntimeError("appointments unavailable")

    monkeypatch.setattr(appointment_store, "list_pending_reminders", boom)

    with pytest.raises(SchedulerJobError):
        await _scanner(SubscriberSink()).run()


def test_claim_is_single_winner():
    appt = _add_appointment(10)
    assert appointment_store.claim_reminder(appt) is True
    assert appointment_store.claim_reminder(appt) is False


def test_appointment_instant_uses_fixed_offset():
    instant = appointment_instant("2026-05-10", "12:30", LOCAL)
    assert instant.astimezone(timezone.utc) == datetime(2026, 5, 10, 15, 30, tzinfo=timezone.utc)
    assert appointment_instant("2026-02-30", "12:30", LOCAL) is None
    assert appointment_instant("", "12:30", LOCAL) is None
