"""Appointment reads and the reminder claim used by the scanner."""

from typing import List

from sqlalchemy import and_, select, update

from finbot.core.database import appointments, ensure_utc, get_db_session, utc_now
from finbot.models.appointment import Appointment


def _row_to_appointment(row) -> Appointment:
    return Appointment(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        date=row.date,
        time=row.time,
        location=row.location,
        category=row.category,
        reminder_sent=bool(row.reminder_sent),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def list_pending_reminders() -> List[Appointment]:
    with get_db_session() as session:
        rows = session.execute(
            select(appointments)
            .where(appointments.c.reminder_sent.is_(False))
            .order_by(appointments.c.date, appointments.c.time)
        ).fetchall()
    return [_row_to_appointment(row) for row in rows]


def claim_reminder(appointment_id: str) -> bool:
    """
    Flip reminder_sent false -> true.

    Returns True only for the caller whose update changed the row, so two
    overlapping scans never both notify for the same appointment.
    """
    with get_db_session() as session:
        result = session.execute(
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.reminder_sent.is_(False),
                )
            )
            .values(reminder_sent=True, updated_at=utc_now())
        )
    return result.rowcount == 1
