"""
Employee, time punch and Gusto payroll models
"""

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    position = Column(String(100), nullable=True)
    status = Column(String(20), default="active", nullable=False)  # active, inactive, terminated
    compensation_type = Column(
        String(20), default="hourly", nullable=False
    )  # hourly, salary, contractor, daily_rate
    # All money in cents
    hourly_rate = Column(Integer, default=0, nullable=False)
    salary_amount = Column(Integer, nullable=True)
    pay_period_type = Column(String(20), nullable=True)  # weekly, bi-weekly, semi-monthly, monthly
    contractor_payment_amount = Column(Integer, nullable=True)
    contractor_payment_interval = Column(String(20), nullable=True)  # weekly, bi-weekly, monthly, per-job
    daily_rate_amount = Column(Integer, nullable=True)
    hire_date = Column(Date, nullable=True)
    termination_date = Column(Date, nullable=True)
    gusto_employee_uuid = Column(String(255), nullable=True, index=True)
    gusto_onboarding_status = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class TimePunch(Base):
    __tablename__ = "time_punches"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False, index=True)
    punch_type = Column(String(20), nullable=False)  # clock_in, clock_out, break_start, break_end
    punch_time = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())


class GustoConnection(Base):
    __tablename__ = "gusto_connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    company_uuid = Column(String(255), nullable=False, unique=True)
    access_token = Column(String(2048), nullable=True)  # Encrypted
    onboarding_status = Column(String(50), default="pending")
    created_at = Column(DateTime, server_default=func.now())


class GustoWebhookEvent(Base):
    __tablename__ = "gusto_webhook_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    event_uuid = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(100), nullable=False)
    company_uuid = Column(String(255), nullable=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=True)
    raw_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class GustoPayrollRun(Base):
    __tablename__ = "gusto_payroll_runs"
    __table_args__ = (UniqueConstraint("restaurant_id", "gusto_payroll_uuid"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    gusto_payroll_uuid = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)  # pending, processed, approved
    pay_period_start = Column(Date, nullable=True)
    pay_period_end = Column(Date, nullable=True)
    check_date = Column(Date, nullable=True)
    synced_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
