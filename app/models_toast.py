"""
Toast Integration Models
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, String, Text, UniqueConstraint

from .database import Base
from .models import generate_uuid


class ToastConnection(Base):
    __tablename__ = "toast_connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    restaurant_guid = Column(String(255), nullable=False, index=True)
    client_id = Column(String(255), nullable=True)
    client_secret = Column(Text, nullable=True)  # Encrypted
    access_token = Column(Text, nullable=True)  # Encrypted
    token_expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    last_sync_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ToastOrder(Base):
    __tablename__ = "toast_orders"
    __table_args__ = (UniqueConstraint("restaurant_id", "toast_order_guid"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    toast_order_guid = Column(String(255), nullable=False)
    toast_restaurant_guid = Column(String(255), nullable=True)
    order_number = Column(String(50), nullable=True)
    service_date = Column(Date, nullable=True, index=True)
    closed_date = Column(DateTime, nullable=True)
    total_amount = Column(Float, nullable=True)
    subtotal_amount = Column(Float, nullable=True)
    tax_amount = Column(Float, nullable=True)
    tip_amount = Column(Float, nullable=True)
    discount_amount = Column(Float, nullable=True)
    service_charge_amount = Column(Float, nullable=True)
    refund_amount = Column(Float, nullable=True)
    payment_status = Column(String(50), nullable=True)
    raw_json = Column(JSON, nullable=True)
    synced_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ToastOrderItem(Base):
    __tablename__ = "toast_order_items"
    __table_args__ = (UniqueConstraint("restaurant_id", "toast_order_guid", "toast_item_guid"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    toast_order_guid = Column(String(255), nullable=False, index=True)
    toast_item_guid = Column(String(255), nullable=False)
    item_name = Column(String(255), nullable=True)
    quantity = Column(Float, nullable=True)
    unit_price = Column(Float, nullable=True)
    total_price = Column(Float, nullable=True)
    menu_category = Column(String(255), nullable=True)
    discount_amount = Column(Float, default=0.0)
    voided = Column(Boolean, default=False)
    raw_json = Column(JSON, nullable=True)


class ToastPayment(Base):
    __tablename__ = "toast_payments"
    __table_args__ = (UniqueConstraint("restaurant_id", "toast_order_guid", "toast_payment_guid"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    toast_order_guid = Column(String(255), nullable=False, index=True)
    toast_payment_guid = Column(String(255), nullable=False)
    payment_type = Column(String(50), nullable=True)
    amount = Column(Float, nullable=True)
    tip_amount = Column(Float, nullable=True)
    payment_status = Column(String(50), nullable=True)  # CAPTURED, AUTHORIZED, DENIED, VOIDED
    refund_status = Column(String(20), nullable=True)  # NONE, PARTIAL, FULL
    refund_amount = Column(Float, nullable=True)
    payment_date = Column(Date, nullable=True)
    raw_json = Column(JSON, nullable=True)
