"""Pending outflow schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

PAYMENT_METHODS = {"check", "ach", "other"}


def _check_amount(v):
    if v is not None and v <= 0:
        raise ValueError("Amount must be greater than 0")
    return round(v, 2) if v is not None else v


def _check_payment_method(v):
    if v is not None and v not in PAYMENT_METHODS:
        raise ValueError("payment_method must be check, ach or other")
    return v


class PendingOutflowCreate(BaseModel):
    vendor_name: str
    amount: float
    category_id: Optional[str] = None
    payment_method: str = "check"
    reference_number: Optional[str] = None
    issue_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return _check_amount(v)

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v):
        return _check_payment_method(v)


class PendingOutflowUpdate(BaseModel):
    vendor_name: Optional[str] = None
    amount: Optional[float] = None
    category_id: Optional[str] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return _check_amount(v)

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v):
        return _check_payment_method(v)


class VoidRequest(BaseModel):
    reason: Optional[str] = None


class ConfirmMatchRequest(BaseModel):
    bank_transaction_id: str


class PendingOutflowResponse(BaseModel):
    id: str
    vendor_name: str
    amount: float
    category_id: Optional[str] = None
    payment_method: str
    reference_number: Optional[str] = None
    issue_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None
    status: str
    linked_bank_transaction_id: Optional[str] = None
    cleared_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    voided_reason: Optional[str] = None

    class Config:
        from_attributes = True
