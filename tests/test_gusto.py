import json
import time

import pytest

from app import config
from app.models_payroll import Employee, GustoConnection, GustoPayrollRun, GustoWebhookEvent
from app.webhook_security import create_webhook_signature

GUSTO_SECRET = "gusto-verification-token"


@pytest.fixture
def gusto_secret(monkeypatch):
    monkeypatch.setattr(config, "GUSTO_WEBHOOK_SECRET", GUSTO_SECRET)


@pytest.fixture
def gusto_company(db, restaurant):
    connection = GustoConnection(restaurant_id=restaurant.id, company_uuid="company-1")
    db.add(connection)
    db.commit()
    return connection


def send_gusto(client, event):
    body = json.dumps(event).encode()
    timestamp = int(time.time())
    signature = create_webhook_signature(GUSTO_SECRET, body, "gusto", timestamp=timestamp)
    return client.post(
        "/webhooks/gusto",
        content=body,
        headers={"x-gusto-signature": signature, "x-gusto-timestamp": str(timestamp)},
    )


def test_unsigned_webhook_is_rejected(client, gusto_secret):
    response = client.post("/webhooks/gusto", content=b"{}")
    assert response.status_code == 401


def test_tampered_body_is_rejected(client, gusto_secret):
    timestamp = str(int(time.time()))
    signature = create_webhook_signature(GUSTO_SECRET, b'{"a": 1}', "gusto", timestamp=int(timestamp))
    response = client.post(
        "/webhooks/gusto",
        content=b'{"a": 2}',
        headers={"x-gusto-signature": signature, "x-gusto-timestamp": timestamp},
    )
    assert response.status_code == 401


def test_employee_terminated(client, db, restaurant, gusto_company, gusto_secret):
    employee = Employee(restaurant_id=restaurant.id, name="Sam Server", gusto_employee_uuid="emp-1")
    db.add(employee)
    db.commit()

    response = send_gusto(
        client,
        {
            "uuid": "evt-1",
            "event_type": "employee.terminated",
            "company_uuid": "company-1",
            "entity_uuid": "emp-1",
        },
    )

    assert response.json() == {"received": True}
    db.refresh(employee)
    assert employee.gusto_onboarding_status == "terminated"
    stored = db.query(GustoWebhookEvent).filter_by(event_uuid="evt-1").one()
    assert stored.restaurant_id == restaurant.id
    assert stored.raw_payload["entity_uuid"] == "emp-1"


def test_duplicate_event_is_skipped(client, db, gusto_company, gusto_secret):
    event = {"uuid": "evt-dup", "event_type": "employee.updated", "company_uuid": "company-1", "entity_uuid": "x"}

    assert send_gusto(client, event).json() == {"received": True}
    assert send_gusto(client, event).json() == {"received": True, "duplicate": True}
    assert db.query(GustoWebhookEvent).filter_by(event_uuid="evt-dup").count() == 1


def test_payroll_events_upsert_one_run(client, db, restaurant, gusto_company, gusto_secret):
    send_gusto(
        client,
        {"uuid": "evt-p1", "event_type": "payroll.submitted", "company_uuid": "company-1", "entity_uuid": "pay-1"},
    )
    send_gusto(
        client,
        {"uuid": "evt-p2", "event_type": "payroll.processed", "company_uuid": "company-1", "entity_uuid": "pay-1"},
    )

    runs = db.query(GustoPayrollRun).filter_by(restaurant_id=restaurant.id).all()
    assert len(runs) == 1
    assert runs[0].status == "processed"
    assert runs[0].check_date is not None


def test_company_provisioned(client, db, gusto_company, gusto_secret):
    send_gusto(
        client,
        {
            "uuid": "evt-c1",
            "event_type": "company.provisioned",
            "company_uuid": "company-1",
            "entity_uuid": "company-1",
        },
    )
    db.refresh(gusto_company)
    assert gusto_company.onboarding_status == "completed"


def test_unknown_company_is_recorded_but_not_processed(client, db, gusto_secret):
    response = send_gusto(
        client,
        {"uuid": "evt-u1", "event_type": "payroll.paid", "company_uuid": "nobody", "entity_uuid": "pay-9"},
    )

    assert response.json() == {"received": True}
    assert db.query(GustoWebhookEvent).filter_by(event_uuid="evt-u1").one().restaurant_id is None
    assert db.query(GustoPayrollRun).count() == 0
