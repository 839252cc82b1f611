"""
finbot/features/accounts/store.py

Entitlement store: accounts (with the embedded plan entitlement) and the
append-only sale ledger.

Every writer keeps plan_tier == 'none' paired with plan_expires_at NULL.
SQLAlchemy failures are re-raised as StorageError so callers can tell a
storage outage apart from bad input.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, insert, update, and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from finbot.core.database import get_db_session, accounts, sales, utc_now, ensure_utc
from finbot.core.errors import StorageError
from finbot.models.account import Account, PlanTier
from finbot.models.sale import SaleLedgerEntry


class DuplicateAccountError(StorageError):
    """Another writer created the same email first."""
    code = "duplicate_account"


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        name=row.name,
        phone=row.phone,
        is_admin=bool(row.is_admin),
        blocked=bool(row.blocked),
        plan_tier=PlanTier(row.plan_tier or PlanTier.NONE.value),
        plan_expires_at=ensure_utc(row.plan_expires_at),
        created_at=ensure_utc(row.created_at),
    )


def _row_to_sale(row) -> SaleLedgerEntry:
    return SaleLedgerEntry(
        id=row.id,
        email=row.email,
        plan_tier=PlanTier(row.plan_tier),
        duration_label=row.duration_label,
        amount=Decimal(str(row.amount)),
        sold_at=ensure_utc(row.sold_at),
        transaction_id=row.transaction_id,
        product_label=row.product_label,
        offer_label=row.offer_label,
    )


def get_account_by_email(email: str) -> Optional[Account]:
    """Case-insensitive lookup, also matches rows stored with mixed case."""
    normalized = Account.normalize_email(email)
    if not normalized:
        return None
    try:
        with get_db_session() as session:
            row = session.execute(
                select(accounts).where(func.lower(accounts.c.email) == normalized)
            ).fetchone()
    except SQLAlchemyError as exc:
        raise StorageError(f"account lookup failed: {exc}") from exc
    return _row_to_account(row) if row else None


def get_account(account_id: str) -> Optional[Account]:
    try:
        with get_db_session() as session:
            row = session.execute(
                select(accounts).where(accounts.c.id == account_id)
            ).fetchone()
    except SQLAlchemyError as exc:
        raise StorageError(f"account lookup failed: {exc}") from exc
    return _row_to_account(row) if row else None


def create_account(
    email: str,
    *,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    plan_tier: PlanTier = PlanTier.NONE,
    plan_expires_at: Optional[datetime] = None,
) -> Account:
    """
    Insert a new non-admin, unblocked account.

    Raises:
        DuplicateAccountError: email already taken (concurrent creation)
        StorageError: any other write failure
    """
    if plan_tier == PlanTier.NONE:
        plan_expires_at = None
    account_id = str(uuid.uuid4())
    values = {
        "id": account_id,
        "email": Account.normalize_email(email),
        "name": name or None,
        "phone": phone or None,
        "is_admin": False,
        "blocked": False,
        "plan_tier": plan_tier.value,
        "plan_expires_at": plan_expires_at,
        "created_at": utc_now(),
    }
    try:
        with get_db_session() as session:
            session.execute(insert(accounts).values(**values))
    except IntegrityError as exc:
        raise DuplicateAccountError(f"account already exists: {values['email']}") from exc
    except SQLAlchemyError as exc:
        raise StorageError(f"account insert failed: {exc}") from exc
    return Account(**values)


def grant_plan(
    account: Account,
    plan_tier: PlanTier,
    plan_expires_at: datetime,
    *,
    name: Optional[str] = None,
    phone: Optional[str] = None,
) -> Account:
    """
    Overwrite the entitlement and backfill missing contact fields.

    name/phone are only written when the incoming value is non-empty and the
    stored one is empty.
    """
    changes = {
        "plan_tier": plan_tier.value,
        "plan_expires_at": None if plan_tier == PlanTier.NONE else plan_expires_at,
    }
    if name and not account.name:
        changes["name"] = name
    if phone and not account.phone:
        changes["phone"] = phone
    try:
        with get_db_session() as session:
            session.execute(
                update(accounts).where(accounts.c.id == account.id).values(**changes)
            )
    except SQLAlchemyError as exc:
        raise StorageError(f"account update failed: {exc}") from exc
    changes["plan_tier"] = plan_tier
    return account.model_copy(update=changes)


def clear_entitlement(account_id: str) -> None:
    try:
        with get_db_session() as session:
            session.execute(
                update(accounts)
                .where(accounts.c.id == account_id)
                .values(plan_tier=PlanTier.NONE.value, plan_expires_at=None)
            )
    except SQLAlchemyError as exc:
        raise StorageError(f"entitlement clear failed: {exc}") from exc


def list_lapsed_accounts(now: Optional[datetime] = None) -> List[Account]:
    """Non-admin accounts holding a plan whose expiry is in the past."""
    now = now or utc_now()
    try:
        with get_db_session() as session:
            rows = session.execute(
                select(accounts).where(
                    and_(
                        accounts.c.plan_tier != PlanTier.NONE.value,
                        accounts.c.is_admin.is_(False),
                        accounts.c.plan_expires_at.is_not(None),
                        accounts.c.plan_expires_at < now,
                    )
                )
            ).fetchall()
    except SQLAlchemyError as exc:
        raise StorageError(f"lapsed account scan failed: {exc}") from exc
    return [_row_to_account(row) for row in rows]


def append_sale(
    *,
    email: str,
    plan_tier: PlanTier,
    duration_days: int,
    amount: Decimal,
    transaction_id: Optional[str] = None,
    product_label: Optional[str] = None,
    offer_label: Optional[str] = None,
    sold_at: Optional[datetime] = None,
) -> SaleLedgerEntry:
    values = {
        "email": Account.normalize_email(email),
        "plan_tier": plan_tier.value,
        "duration_label": SaleLedgerEntry.duration_label_for(duration_days),
        "amount": amount,
        "sold_at": sold_at or utc_now(),
        "transaction_id": transaction_id or None,
        "product_label": product_label or None,
        "offer_label": offer_label or None,
    }
    try:
        with get_db_session() as session:
            result = session.execute(insert(sales).values(**values))
            sale_id = result.inserted_primary_key[0]
    except SQLAlchemyError as exc:
        raise StorageError(f"sale append failed: {exc}") from exc
    return SaleLedgerEntry(id=sale_id, **values)


def list_sales(email: Optional[str] = None) -> List[SaleLedgerEntry]:
    query = select(sales).order_by(sales.c.sold_at, sales.c.id)
    if email:
        query = query.where(func.lower(sales.c.email) == Account.normalize_email(email))
    with get_db_session() as session:
        rows = session.execute(query).fetchall()
    return [_row_to_sale(row) for row in rows]
