"""POS schemas - Pydantic models for manual sync"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, field_validator

from .unified_sync import POS_SYSTEMS


class POSSyncRequest(BaseModel):
    pos_system: Optional[str] = None  # None syncs every vendor
    # Clover only: pull orders from the API before syncing
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("pos_system")
    @classmethod
    def validate_pos_system(cls, v):
        if v is not None and v not in POS_SYSTEMS:
            raise ValueError("pos_system must be square, toast or clover")
        return v
