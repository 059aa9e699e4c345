"""Billing domain schemas - Pydantic models for responses"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SubscriptionResponse(BaseModel):
    """Current subscription state of one restaurant"""

    success: bool = True
    restaurant_id: str
    subscription_tier: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_period: Optional[str] = None
    effective_tier: Optional[str] = None
    features: dict[str, bool]
    price: Optional[float] = None
    volume_discount_percent: int = 0
    location_count: int = 1
    trial_ends_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None
    subscription_cancel_at: Optional[datetime] = None
