"""Accounting domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, field_validator


class BankTransactionCreate(BaseModel):
    """Schema for recording a bank transaction (manual entry or bank feed)"""

    transaction_date: date
    amount: float
    description: Optional[str] = None
    merchant_name: Optional[str] = None
    connected_bank_id: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v == 0:
            raise ValueError("Amount cannot be zero")
        return round(v, 2)


class CategorizeRequest(BaseModel):
    category_id: str
    description: Optional[str] = None
    normalized_payee: Optional[str] = None
    supplier_id: Optional[str] = None


class ExcludeRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError("Reason is required")
        return v.strip()


class TransferRequest(BaseModel):
    transaction_id_1: str
    transaction_id_2: str


class SplitLine(BaseModel):
    category_id: str
    amount: float
    description: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("Split amounts must be positive")
        return v


class SplitRequest(BaseModel):
    splits: list[SplitLine]


class FiscalPeriodCreate(BaseModel):
    period_start: date
    period_end: date

    @field_validator("period_end")
    @classmethod
    def validate_period_end(cls, v, info):
        start = info.data.get("period_start")
        if start and v < start:
            raise ValueError("period_end must be on or after period_start")
        return v


class AccountResponse(BaseModel):
    id: str
    account_code: str
    account_name: str
    account_type: str
    account_subtype: Optional[str] = None
    normal_balance: str
    current_balance: float
    is_active: bool

    class Config:
        from_attributes = True


class BankTransactionResponse(BaseModel):
    id: str
    transaction_date: date
    amount: float
    description: Optional[str] = None
    merchant_name: Optional[str] = None
    normalized_payee: Optional[str] = None
    status: str
    is_categorized: bool
    category_id: Optional[str] = None
    suggested_category_id: Optional[str] = None
    ai_confidence: Optional[str] = None
    ai_reasoning: Optional[str] = None
    is_split: bool
    is_transfer: bool
    excluded_reason: Optional[str] = None

    class Config:
        from_attributes = True
