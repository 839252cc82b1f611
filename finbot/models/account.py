"""
finbot/models/account.py

Paying end user with the embedded plan entitlement.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class PlanTier(str, Enum):
    NONE = "none"
    TRIAL = "trial"
    BRONZE = "bronze"
    OURO = "ouro"


class Account(BaseModel):
    """
    Account keyed by case-folded email.

    Invariant: plan_tier == NONE implies plan_expires_at is None.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    created_at: datetime
    name: Optional[str] = None
    phone: Optional[str] = None
    is_admin: bool = False
    blocked: bool = False
    plan_tier: PlanTier = PlanTier.NONE
    plan_expires_at: Optional[datetime] = None

    @staticmethod
    def normalize_email(email: Optional[str]) -> str:
        return (email or "").strip().lower()
