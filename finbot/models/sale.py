from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict

from finbot.models.account import PlanTier


class SaleLedgerEntry(BaseModel):
    """Append-only record of an approved purchase or renewal."""
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    plan_tier: PlanTier
    duration_label: str
    amount: Decimal
    sold_at: datetime
    transaction_id: Optional[str] = None
    product_label: Optional[str] = None
    offer_label: Optional[str] = None

    @staticmethod
    def duration_label_for(days: int) -> str:
        return f"{days} dias"
