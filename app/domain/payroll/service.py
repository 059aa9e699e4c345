"""Gusto webhook service - employee, payroll and company events"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_payroll import Employee, GustoConnection, GustoPayrollRun, GustoWebhookEvent
from ..pnl.service import upsert_by_keys

logger = logging.getLogger(__name__)

EMPLOYEE_STATUS_BY_EVENT = {
    "employee.updated": "updated_in_gusto",
    "employee.terminated": "terminated",
    "employee.rehired": "rehired",
}

PAYROLL_STATUS_BY_EVENT = {
    "payroll.submitted": "pending",
    "payroll.processed": "processed",
    "payroll.paid": "approved",
}


class GustoWebhookService:
    def __init__(self, db: Session):
        self.db = db

    def is_duplicate(self, event_uuid: Optional[str]) -> bool:
        if not event_uuid:
            return False
        return (
            self.db.query(GustoWebhookEvent.id).filter(GustoWebhookEvent.event_uuid == event_uuid).first()
            is not None
        )

    def restaurant_for_company(self, company_uuid: Optional[str]) -> Optional[str]:
        if not company_uuid:
            return None
        connection = self.db.query(GustoConnection).filter(GustoConnection.company_uuid == company_uuid).first()
        return connection.restaurant_id if connection else None

    def record_event(self, event: dict) -> Optional[str]:
        """Store the raw event and return the restaurant it belongs to"""
        restaurant_id = self.restaurant_for_company(event.get("company_uuid"))
        if not restaurant_id:
            logger.warning(f"⚠️ No restaurant found for Gusto company {event.get('company_uuid')}")

        self.db.add(
            GustoWebhookEvent(
                event_uuid=event.get("uuid"),
                event_type=event.get("event_type") or "unknown",
                company_uuid=event.get("company_uuid"),
                restaurant_id=restaurant_id,
                raw_payload=event,
            )
        )
        self.db.commit()
        return restaurant_id

    def process_event(self, event: dict, restaurant_id: Optional[str]) -> None:
        if not restaurant_id:
            logger.info("⏭️ Skipping Gusto event processing - no restaurant")
            return

        event_type = event.get("event_type")
        entity_uuid = event.get("entity_uuid")

        if event_type in EMPLOYEE_STATUS_BY_EVENT:
            updated = (
                self.db.query(Employee)
                .filter(Employee.restaurant_id == restaurant_id, Employee.gusto_employee_uuid == entity_uuid)
                .update({Employee.gusto_onboarding_status: EMPLOYEE_STATUS_BY_EVENT[event_type]})
            )
            logger.info(f"👤 {event_type} for Gusto employee {entity_uuid} ({updated} local rows)")
        elif event_type in PAYROLL_STATUS_BY_EVENT:
            self.upsert_payroll_run(restaurant_id, entity_uuid, PAYROLL_STATUS_BY_EVENT[event_type])
        elif event_type == "company.provisioned":
            self.db.query(GustoConnection).filter(
                GustoConnection.restaurant_id == restaurant_id,
                GustoConnection.company_uuid == entity_uuid,
            ).update({GustoConnection.onboarding_status: "completed"})
            logger.info(f"🏢 Gusto company {entity_uuid} provisioned")
        else:
            logger.info(f"ℹ️ Unhandled Gusto event type: {event_type}")
            return

        self.db.commit()

    def upsert_payroll_run(self, restaurant_id: str, payroll_uuid: str, status: str) -> GustoPayrollRun:
        # Period dates are placeholders until the payroll is fetched from Gusto
        today = date.today()
        run = upsert_by_keys(
            self.db,
            GustoPayrollRun,
            {"restaurant_id": restaurant_id, "gusto_payroll_uuid": payroll_uuid},
            {
                "status": status,
                "pay_period_start": today,
                "pay_period_end": today,
                "check_date": today,
                "synced_at": datetime.utcnow(),
            },
        )
        logger.info(f"💵 Payroll run {payroll_uuid} -> {status}")
        return run
