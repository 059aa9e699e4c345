"""
Square Integration Models
Database models for Square connections and normalized order data
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, String, Text, UniqueConstraint

from .database import Base
from .models import generate_uuid


class SquareConnection(Base):
    """Store Square OAuth tokens and merchant information"""

    __tablename__ = "square_connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    merchant_id = Column(String(255), nullable=False, index=True)
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text, nullable=True)  # Encrypted
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SquareOrder(Base):
    __tablename__ = "square_orders"
    __table_args__ = (UniqueConstraint("restaurant_id", "order_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(String(255), nullable=False)
    location_id = Column(String(255), nullable=True)
    state = Column(String(20), nullable=True)  # OPEN, COMPLETED, CANCELED
    source = Column(String(100), nullable=True)
    total_money = Column(Float, nullable=True)
    total_tax_money = Column(Float, nullable=True)
    total_tip_money = Column(Float, nullable=True)
    total_discount_money = Column(Float, nullable=True)
    total_service_charge_money = Column(Float, nullable=True)
    created_at_pos = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    service_date = Column(Date, nullable=True, index=True)
    raw_json = Column(JSON, nullable=True)
    synced_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SquareOrderLineItem(Base):
    __tablename__ = "square_order_line_items"
    __table_args__ = (UniqueConstraint("restaurant_id", "order_id", "uid"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(String(255), nullable=False, index=True)
    uid = Column(String(255), nullable=False)
    catalog_object_id = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    variation_name = Column(String(255), nullable=True)
    category_id = Column(String(255), nullable=True)
    quantity = Column(Float, nullable=True)
    base_price_money = Column(Float, nullable=True)
    gross_sales_money = Column(Float, nullable=True)
    total_tax_money = Column(Float, nullable=True)
    total_discount_money = Column(Float, nullable=True)
    total_money = Column(Float, nullable=True)
    raw_json = Column(JSON, nullable=True)


class SquarePayment(Base):
    __tablename__ = "square_payments"
    __table_args__ = (UniqueConstraint("restaurant_id", "payment_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    payment_id = Column(String(255), nullable=False)
    order_id = Column(String(255), nullable=True, index=True)
    location_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=True)
    amount_money = Column(Float, nullable=True)
    tip_money = Column(Float, nullable=True)
    processing_fee_money = Column(Float, nullable=True)
    created_at_pos = Column(DateTime, nullable=True)
    raw_json = Column(JSON, nullable=True)


class SquareRefund(Base):
    __tablename__ = "square_refunds"
    __table_args__ = (UniqueConstraint("restaurant_id", "refund_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    refund_id = Column(String(255), nullable=False)
    payment_id = Column(String(255), nullable=True)
    order_id = Column(String(255), nullable=True, index=True)
    status = Column(String(20), nullable=True)  # PENDING, COMPLETED, REJECTED, FAILED
    amount_money = Column(Float, nullable=True)
    reason = Column(Text, nullable=True)
    created_at_pos = Column(DateTime, nullable=True)
    raw_json = Column(JSON, nullable=True)
