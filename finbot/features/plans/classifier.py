"""
finbot/features/plans/classifier.py

Maps a free-text product/offer label (and a fallback price) to a plan tier
and a duration in days.

Pure and total: every input yields a tier and a duration, nothing here
touches the database or the network.
"""

import unicodedata
from typing import Optional, Tuple

from finbot.models.account import PlanTier


TRIAL_DAYS = 7

# First match wins, in this order
TIER_KEYWORDS = (
    (PlanTier.OURO, ("ouro", "gold", "premium")),
    (PlanTier.BRONZE, ("bronze", "basico", "basic")),
    (PlanTier.TRIAL, ("trial",)),
)

# Labels are compared with whitespace removed, so "1 mes" is matched as "1mes".
# Semester comes before year so "semiannual" is not read as "annual".
DURATION_KEYWORDS = (
    (30, ("1mes", "mensal", "monthly", "1month")),
    (90, ("3mes", "trimestral", "quarterly", "3month")),
    (180, ("6mes", "semestral", "semiannual", "semianual", "6month")),
    (365, ("1ano", "anual", "12mes", "annual", "yearly", "12month")),
)

DEFAULT_DAYS = {
    PlanTier.OURO: 365,
    PlanTier.BRONZE: 30,
}

# Amount fallback threshold, in currency units
OURO_MIN_AMOUNT = 100


def normalize_label(label: Optional[str]) -> str:
    """Lowercase, strip accents and drop all whitespace."""
    if not label:
        return ""
    decomposed = unicodedata.normalize("NFKD", label)
    without_accents = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(without_accents.lower().split())


def _contains_any(label: str, keywords) -> bool:
    return any(keyword in label for keyword in keywords)


def detect_tier(label: str, amount_minor_units: int) -> PlanTier:
    for tier, keywords in TIER_KEYWORDS:
        if _contains_any(label, keywords):
            return tier
    if amount_minor_units / 100 >= OURO_MIN_AMOUNT:
        return PlanTier.OURO
    return PlanTier.BRONZE


def detect_duration(label: str, tier: PlanTier) -> int:
    if tier == PlanTier.TRIAL or "trial" in label:
        return TRIAL_DAYS
    for days, keywords in DURATION_KEYWORDS:
        if _contains_any(label, keywords):
            return days
    return DEFAULT_DAYS.get(tier, 30)


def classify(offer_label: Optional[str], product_label: Optional[str], amount_minor_units: int) -> Tuple[PlanTier, int]:
    """
    Classify a purchase into (tier, duration_days).

    The offer label wins over the product label when present. Any label
    mentioning "trial" lasts 7 days whatever else it says.

    Examples:
        classify("Plano Ouro Anual", "", 19990) -> (PlanTier.OURO, 365)
        classify("", "Bronze Trimestral", 0)   -> (PlanTier.BRONZE, 90)
        classify("", "", 15000)                -> (PlanTier.OURO, 365)
    """
    label = normalize_label(offer_label) or normalize_label(product_label)
    tier = detect_tier(label, amount_minor_units or 0)
    return tier, detect_duration(label, tier)
