"""Restaurant domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from dateutil import tz
from pydantic import BaseModel, field_validator


class RestaurantCreate(BaseModel):
    """Schema for creating a restaurant"""

    name: str
    timezone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Restaurant name is required")
        return v.strip()

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        if v and tz.gettz(v) is None:
            raise ValueError(f"Unknown timezone: {v}")
        return v


class RestaurantResponse(BaseModel):
    id: str
    name: str
    timezone: Optional[str] = None
    role: str
    subscription_status: Optional[str] = None
    subscription_tier: Optional[str] = None
    effective_tier: Optional[str] = None
    trial_ends_at: Optional[datetime] = None
    features: dict[str, bool] = {}
