"""
Subscription tiers, feature gating and pricing utilities.
"""

from datetime import datetime
from typing import Optional

from .models import Restaurant

TIER_ORDER = {"starter": 1, "growth": 2, "pro": 3}

# Prices in dollars
TIER_PRICES = {
    "starter": {"monthly": 99, "annual": 990},
    "growth": {"monthly": 199, "annual": 1990},
    "pro": {"monthly": 299, "annual": 2990},
}

# Minimum tier per feature; features missing here are denied
FEATURE_MIN_TIER = {
    "ai_assistant": "pro",
    "financial_intelligence": "growth",
    "inventory_automation": "growth",
    "scheduling": "growth",
    "ai_alerts": "growth",
    "multi_location_dashboard": "growth",
    "recipe_profitability": "growth",
    "basic_pnl": "starter",
    "basic_inventory": "starter",
    "labor_tracking": "starter",
    "pos_integration": "starter",
    "bank_sync": "starter",
}

TRIAL_DAYS = 14
TRIAL_TIER = "growth"


def get_effective_tier(restaurant: Restaurant, now: Optional[datetime] = None) -> Optional[str]:
    """
    Resolve the tier a restaurant can use right now.
    Returns None when a trial has expired without a paid subscription.
    """
    now = now or datetime.utcnow()
    status = restaurant.subscription_status

    if status == "grandfathered":
        if restaurant.grandfathered_until and restaurant.grandfathered_until < now:
            return "starter"
        return "pro"

    if status == "trialing":
        if restaurant.trial_ends_at and restaurant.trial_ends_at < now:
            return None
        return restaurant.subscription_tier or TRIAL_TIER

    if status in ("canceled", "past_due"):
        return "starter"

    return restaurant.subscription_tier


def tier_meets(tier: Optional[str], required: str) -> bool:
    if not tier:
        return False
    return TIER_ORDER.get(tier, 0) >= TIER_ORDER[required]


def has_feature(restaurant: Restaurant, feature: str, now: Optional[datetime] = None) -> bool:
    required = FEATURE_MIN_TIER.get(feature)
    if required is None:
        return False
    return tier_meets(get_effective_tier(restaurant, now), required)


def get_feature_flags(restaurant: Restaurant, now: Optional[datetime] = None) -> dict:
    return {feature: has_feature(restaurant, feature, now) for feature in FEATURE_MIN_TIER}


def volume_discount_percent(location_count: int) -> int:
    """Multi-location discount applied to every location's price"""
    if location_count >= 11:
        return 15
    if location_count >= 6:
        return 10
    if location_count >= 3:
        return 5
    return 0


def get_price(tier: Optional[str], period: Optional[str], location_count: int = 1) -> Optional[float]:
    """Per-location price after volume discount"""
    if not tier or tier not in TIER_PRICES:
        return None
    base = TIER_PRICES[tier]["annual" if period == "annual" else "monthly"]
    discount = volume_discount_percent(location_count)
    return round(base * (100 - discount) / 100, 2)
