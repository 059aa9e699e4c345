"""Rules domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .matching import APPLIES_TO, MATCH_TYPES, TRANSACTION_TYPES


def _check_match_type(v):
    if v is not None and v not in MATCH_TYPES:
        raise ValueError(f"Match type must be one of: {', '.join(sorted(MATCH_TYPES))}")
    return v


class RuleBase(BaseModel):
    description_pattern: Optional[str] = None
    description_match_type: Optional[str] = "contains"
    amount_min: Optional[float] = None
    amount_max: Optional[float] = None
    supplier_id: Optional[str] = None
    transaction_type: Optional[str] = "any"
    pos_category: Optional[str] = None
    item_name_pattern: Optional[str] = None
    item_name_match_type: Optional[str] = "contains"
    category_id: Optional[str] = None
    priority: Optional[int] = 0
    is_active: Optional[bool] = True
    auto_apply: Optional[bool] = False
    is_split_rule: Optional[bool] = False
    split_categories: Optional[list[dict]] = None

    @field_validator("description_match_type", "item_name_match_type")
    @classmethod
    def validate_match_type(cls, v):
        return _check_match_type(v)

    @field_validator("transaction_type")
    @classmethod
    def validate_transaction_type(cls, v):
        if v is not None and v not in TRANSACTION_TYPES:
            raise ValueError("transaction_type must be debit, credit or any")
        return v


class RuleCreate(RuleBase):
    """Schema for creating a categorization rule"""

    rule_name: str
    applies_to: str = "bank_transactions"

    @field_validator("applies_to")
    @classmethod
    def validate_applies_to(cls, v):
        if v not in APPLIES_TO:
            raise ValueError("applies_to must be bank_transactions, pos_sales or both")
        return v


class RuleUpdate(RuleBase):
    """Schema for updating a categorization rule (all fields optional)"""

    rule_name: Optional[str] = None
    applies_to: Optional[str] = None
    description_match_type: Optional[str] = None
    transaction_type: Optional[str] = None
    item_name_match_type: Optional[str] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    auto_apply: Optional[bool] = None
    is_split_rule: Optional[bool] = None

    @field_validator("applies_to")
    @classmethod
    def validate_applies_to(cls, v):
        if v is not None and v not in APPLIES_TO:
            raise ValueError("applies_to must be bank_transactions, pos_sales or both")
        return v


class RuleResponse(BaseModel):
    id: str
    rule_name: str
    applies_to: str
    description_pattern: Optional[str] = None
    description_match_type: Optional[str] = None
    amount_min: Optional[float] = None
    amount_max: Optional[float] = None
    supplier_id: Optional[str] = None
    transaction_type: Optional[str] = None
    pos_category: Optional[str] = None
    item_name_pattern: Optional[str] = None
    item_name_match_type: Optional[str] = None
    category_id: Optional[str] = None
    priority: int
    is_active: bool
    auto_apply: bool
    apply_count: int
    last_applied_at: Optional[datetime] = None
    is_split_rule: bool
    split_categories: Optional[list[dict]] = None

    class Config:
        from_attributes = True
