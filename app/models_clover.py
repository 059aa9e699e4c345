"""
Clover Integration Models
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, String, Text, UniqueConstraint

from .database import Base
from .models import generate_uuid


class CloverConnection(Base):
    __tablename__ = "clover_connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    merchant_id = Column(String(255), nullable=False, index=True)
    region = Column(String(10), default="na")  # na, eu, latam, apac
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text, nullable=True)  # Encrypted
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CloverOrder(Base):
    __tablename__ = "clover_orders"
    __table_args__ = (UniqueConstraint("restaurant_id", "order_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(String(255), nullable=False)
    merchant_id = Column(String(255), nullable=True)
    employee_id = Column(String(255), nullable=True)
    state = Column(String(20), nullable=True)  # open, locked (Clover sends lowercase)
    total = Column(Float, nullable=True)
    tax_amount = Column(Float, nullable=True)
    service_charge_amount = Column(Float, nullable=True)
    discount_amount = Column(Float, nullable=True)
    tip_amount = Column(Float, nullable=True)
    created_time = Column(DateTime, nullable=True)
    modified_time = Column(DateTime, nullable=True)
    closed_time = Column(DateTime, nullable=True)
    service_date = Column(Date, nullable=True, index=True)
    raw_json = Column(JSON, nullable=True)


class CloverOrderLineItem(Base):
    __tablename__ = "clover_order_line_items"
    __table_args__ = (UniqueConstraint("restaurant_id", "order_id", "line_item_id"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(String(255), nullable=False, index=True)
    line_item_id = Column(String(255), nullable=False)
    item_id = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    alternate_name = Column(String(255), nullable=True)
    price = Column(Float, nullable=True)
    unit_quantity = Column(Float, nullable=True)
    is_revenue = Column(Boolean, nullable=True)
    note = Column(Text, nullable=True)
    printed = Column(Boolean, default=False)
    category_id = Column(String(255), nullable=True)
    raw_json = Column(JSON, nullable=True)
