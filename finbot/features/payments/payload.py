"""Field extraction for the payment provider's webhook body."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from finbot.core.errors import ValidationError
from finbot.models.account import Account


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _minor_units(value: Any) -> Optional[int]:
    """Integer minor units, or None when the value is absent or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(Decimal(str(value).strip()))
    except (ArithmeticError, ValueError):
        return None


def _first_amount(*candidates: Any) -> int:
    """First candidate with a non-zero numeric value; zero and junk fall through."""
    for candidate in candidates:
        value = _minor_units(candidate)
        if value:
            return value
    return 0


@dataclass(frozen=True)
class PurchaseData:
    email: str
    name: Optional[str]
    phone: Optional[str]
    product_label: Optional[str]
    offer_label: Optional[str]
    amount_minor_units: int
    transaction_id: Optional[str]

    @property
    def amount(self) -> Decimal:
        """Currency units (minor units / 100)."""
        return (Decimal(self.amount_minor_units) / Decimal(100)).quantize(Decimal("0.01"))


def customer_email(data: Dict[str, Any]) -> str:
    """Case-folded customer email; raises ValidationError when missing."""
    email = Account.normalize_email(_text(_section(data, "customer").get("email")))
    if not email:
        raise ValidationError("customer email is required")
    return email


def extract_purchase(data: Dict[str, Any]) -> PurchaseData:
    customer = _section(data, "customer")
    product = _section(data, "product")
    offer = _section(data, "offer")
    transaction = _section(data, "transaction")

    return PurchaseData(
        email=customer_email(data),
        name=_text(customer.get("name")),
        phone=_text(customer.get("phone")),
        product_label=_text(product.get("name")),
        offer_label=_text(offer.get("name")) or _text(data.get("offerName")),
        amount_minor_units=_first_amount(product.get("price"), transaction.get("amount"), data.get("amount")),
        transaction_id=_text(transaction.get("id")) or _text(data.get("id")),
    )
