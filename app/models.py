import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    # Matches the `sub` claim of the auth provider's access token
    id = Column(String(36), primary_key=True, index=True)
    email = Column(String(255), index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    restaurants = relationship("UserRestaurant", back_populates="user")


class Restaurant(Base):
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. America/Chicago
    # Subscription state (Stripe)
    subscription_tier = Column(String(20), nullable=True)  # starter, growth, pro
    subscription_status = Column(
        String(20), default="trialing", nullable=True
    )  # trialing, active, past_due, canceled, grandfathered
    subscription_period = Column(String(20), nullable=True)  # monthly, annual
    trial_ends_at = Column(DateTime, nullable=True)
    subscription_ends_at = Column(DateTime, nullable=True)
    subscription_cancel_at = Column(DateTime, nullable=True)
    grandfathered_until = Column(DateTime, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    members = relationship("UserRestaurant", back_populates="restaurant", cascade="all, delete-orphan")


class UserRestaurant(Base):
    """Role of a user at a restaurant"""

    __tablename__ = "user_restaurants"
    __table_args__ = (UniqueConstraint("user_id", "restaurant_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    role = Column(String(50), nullable=False)  # owner, manager, chef, staff, collaborator_*
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="restaurants")
    restaurant = relationship("Restaurant", back_populates="members")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class ChartOfAccount(Base):
    __tablename__ = "chart_of_accounts"
    __table_args__ = (UniqueConstraint("restaurant_id", "account_code"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    account_code = Column(String(20), nullable=False)
    account_name = Column(String(255), nullable=False)
    account_type = Column(String(20), nullable=False)  # asset, liability, equity, revenue, expense, cogs
    account_subtype = Column(String(50), nullable=True)
    normal_balance = Column(String(10), nullable=False, default="debit")  # debit or credit
    current_balance = Column(Float, default=0.0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class FiscalPeriod(Base):
    __tablename__ = "fiscal_periods"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False)
    closed_at = Column(DateTime, nullable=True)
    closed_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    entry_number = Column(String(100), nullable=False)
    entry_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    reference_type = Column(String(50), nullable=True)  # bank_transaction, reclassification, bank_transfer, bank_split
    reference_id = Column(String(36), nullable=True, index=True)
    total_debit = Column(Float, default=0.0, nullable=False)
    total_credit = Column(Float, default=0.0, nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    lines = relationship(
        "JournalEntryLine", back_populates="journal_entry", cascade="all, delete-orphan"
    )


class JournalEntryLine(Base):
    __tablename__ = "journal_entry_lines"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    journal_entry_id = Column(
        String(36), ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=False, index=True)
    debit_amount = Column(Float, default=0.0, nullable=False)
    credit_amount = Column(Float, default=0.0, nullable=False)
    description = Column(Text, nullable=True)

    journal_entry = relationship("JournalEntry", back_populates="lines")


class BankTransaction(Base):
    __tablename__ = "bank_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    connected_bank_id = Column(String(36), nullable=True)
    transaction_date = Column(Date, nullable=False)
    amount = Column(Float, nullable=False)  # Negative = money out
    description = Column(Text, nullable=True)
    merchant_name = Column(String(255), nullable=True)
    normalized_payee = Column(String(255), nullable=True)
    status = Column(
        String(20), default="for_review", nullable=False
    )  # for_review, categorized, excluded, reconciled
    is_categorized = Column(Boolean, default=False, nullable=False)
    category_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=True)
    # AI suggestions (never applied automatically)
    suggested_category_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=True)
    ai_confidence = Column(String(10), nullable=True)  # high, medium, low
    ai_reasoning = Column(Text, nullable=True)
    is_split = Column(Boolean, default=False, nullable=False)
    is_transfer = Column(Boolean, default=False, nullable=False)
    transfer_pair_id = Column(String(36), nullable=True)
    is_reconciled = Column(Boolean, default=False, nullable=False)
    excluded_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    supplier_id = Column(String(36), ForeignKey("suppliers.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    splits = relationship(
        "BankTransactionSplit", back_populates="transaction", cascade="all, delete-orphan"
    )


class BankTransactionSplit(Base):
    __tablename__ = "bank_transaction_splits"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    transaction_id = Column(
        String(36), ForeignKey("bank_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    transaction = relationship("BankTransaction", back_populates="splits")


class TransactionReclassification(Base):
    __tablename__ = "transaction_reclassifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    transaction_id = Column(String(36), ForeignKey("bank_transactions.id"), nullable=False, index=True)
    old_category_id = Column(String(36), nullable=True)
    new_category_id = Column(String(36), nullable=False)
    original_journal_entry_id = Column(String(36), nullable=True)
    reclass_journal_entry_id = Column(String(36), nullable=False)
    reason = Column(Text, nullable=True)
    reclassified_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class CategorizationRule(Base):
    __tablename__ = "categorization_rules"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    rule_name = Column(String(255), nullable=False)
    applies_to = Column(String(20), default="bank_transactions", nullable=False)  # bank_transactions, pos_sales, both
    description_pattern = Column(Text, nullable=True)
    description_match_type = Column(String(20), default="contains", nullable=True)
    amount_min = Column(Float, nullable=True)
    amount_max = Column(Float, nullable=True)
    supplier_id = Column(String(36), ForeignKey("suppliers.id"), nullable=True)
    transaction_type = Column(String(10), default="any", nullable=True)  # debit, credit, any
    pos_category = Column(String(255), nullable=True)
    item_name_pattern = Column(Text, nullable=True)
    item_name_match_type = Column(String(20), default="contains", nullable=True)
    category_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=True)
    priority = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    auto_apply = Column(Boolean, default=False, nullable=False)
    apply_count = Column(Integer, default=0, nullable=False)
    last_applied_at = Column(DateTime, nullable=True)
    is_split_rule = Column(Boolean, default=False, nullable=False)
    # [{"category_id": ..., "percentage": 60} | {"category_id": ..., "amount": 12.5}, ...]
    split_categories = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PendingOutflow(Base):
    """A payment that was issued (check, ACH) but has not cleared the bank yet"""

    __tablename__ = "pending_outflows"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    vendor_name = Column(String(255), nullable=False)
    amount = Column(Float, nullable=False)  # Always positive
    category_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=True)
    payment_method = Column(String(20), default="check", nullable=False)  # check, ach, other
    reference_number = Column(String(100), nullable=True)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(
        String(20), default="pending", nullable=False
    )  # pending, stale_30, stale_60, stale_90, cleared, voided
    linked_bank_transaction_id = Column(String(36), ForeignKey("bank_transactions.id"), nullable=True)
    cleared_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)
    voided_reason = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
