"""
Unified sales and daily P&L models
"""

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
    Time,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class UnifiedSale(Base):
    """One POS line (sale, discount, tax, tip, refund...) regardless of vendor"""

    __tablename__ = "unified_sales"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "pos_system", "external_order_id", "external_item_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    pos_system = Column(String(20), nullable=False)  # square, toast, clover
    external_order_id = Column(String(255), nullable=False)
    external_item_id = Column(String(255), nullable=False)
    item_name = Column(String(255), nullable=False)
    quantity = Column(Float, default=1.0)
    unit_price = Column(Float, nullable=True)
    total_price = Column(Float, nullable=False, default=0.0)
    sale_date = Column(Date, nullable=False, index=True)
    sale_time = Column(Time, nullable=True)
    pos_category = Column(String(255), nullable=True)
    item_type = Column(String(20), default="sale", nullable=False)  # sale, discount, tax, tip, refund, service_charge
    adjustment_type = Column(String(20), nullable=True)  # discount, void, tax, tip, service_charge
    parent_sale_id = Column(String(36), ForeignKey("unified_sales.id"), nullable=True, index=True)
    category_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=True)
    suggested_category_id = Column(String(36), ForeignKey("chart_of_accounts.id"), nullable=True)
    ai_confidence = Column(String(10), nullable=True)
    ai_reasoning = Column(Text, nullable=True)
    is_categorized = Column(Boolean, default=False, nullable=False)
    is_split = Column(Boolean, default=False, nullable=False)
    raw_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    synced_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class DailySales(Base):
    __tablename__ = "daily_sales"
    __table_args__ = (UniqueConstraint("restaurant_id", "date", "source"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    source = Column(String(50), default="unified_sales", nullable=False)
    gross_revenue = Column(Float, default=0.0, nullable=False)
    discounts = Column(Float, default=0.0, nullable=False)
    comps = Column(Float, default=0.0, nullable=False)
    refunds = Column(Float, default=0.0, nullable=False)
    sales_tax = Column(Float, default=0.0, nullable=False)
    tips = Column(Float, default=0.0, nullable=False)
    service_charges = Column(Float, default=0.0, nullable=False)
    net_revenue = Column(Float, default=0.0, nullable=False)
    transaction_count = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class DailyFoodCosts(Base):
    __tablename__ = "daily_food_costs"
    __table_args__ = (UniqueConstraint("restaurant_id", "date", "source"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    source = Column(String(50), default="manual", nullable=False)
    purchases = Column(Float, default=0.0, nullable=False)
    inventory_adjustments = Column(Float, default=0.0, nullable=False)
    total_food_cost = Column(Float, default=0.0, nullable=False)


class DailyLaborCosts(Base):
    __tablename__ = "daily_labor_costs"
    __table_args__ = (UniqueConstraint("restaurant_id", "date", "source"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    source = Column(String(50), default="time_punches", nullable=False)
    hourly_wages = Column(Float, default=0.0, nullable=False)
    salary_wages = Column(Float, default=0.0, nullable=False)
    contractor_costs = Column(Float, default=0.0, nullable=False)
    benefits = Column(Float, default=0.0, nullable=False)
    total_labor_cost = Column(Float, default=0.0, nullable=False)
    total_hours = Column(Float, default=0.0, nullable=False)


class DailyPnL(Base):
    __tablename__ = "daily_pnl"
    __table_args__ = (UniqueConstraint("restaurant_id", "date"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    net_revenue = Column(Float, default=0.0, nullable=False)
    food_cost = Column(Float, default=0.0, nullable=False)
    labor_cost = Column(Float, default=0.0, nullable=False)
    prime_cost = Column(Float, default=0.0, nullable=False)
    gross_profit = Column(Float, default=0.0, nullable=False)
    food_cost_percentage = Column(Float, default=0.0, nullable=False)
    labor_cost_percentage = Column(Float, default=0.0, nullable=False)
    prime_cost_percentage = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
