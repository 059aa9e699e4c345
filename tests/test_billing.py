import json

import pytest

from app import config
from app.domain.billing import subscription_service
from app.domain.billing.subscription_service import (
    detect_period,
    detect_tier,
    map_subscription_status,
    parse_price_tier_map,
)
from app.webhook_security import create_webhook_signature

STRIPE_SECRET = "whsec_test"


@pytest.fixture
def stripe_secret(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", STRIPE_SECRET)
    monkeypatch.setattr(config, "STRIPE_PRICE_ID_TO_TIER", "")


def send_stripe(client, event):
    body = json.dumps(event).encode()
    signature = create_webhook_signature(STRIPE_SECRET, body, "stripe")
    return client.post(
        "/webhooks/stripe", content=body, headers={"Stripe-Signature": signature, "Content-Type": "application/json"}
    )


def subscription(**fields):
    data = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "active",
        "current_period_end": 1712000000,
        "items": {"data": [{"price": {"id": "price_x", "unit_amount": 29900, "recurring": {"interval": "month"}}}]},
    }
    data.update(fields)
    return data


# ============================================================================
# Tier detection
# ============================================================================


def test_parse_price_tier_map_ignores_junk():
    assert parse_price_tier_map("price_a:Growth, price_b:pro,bad,price_c:platinum") == {
        "price_a": "growth",
        "price_b": "pro",
    }
    assert parse_price_tier_map(None) == {}


def test_detect_tier_precedence():
    sub = subscription()
    assert detect_tier(sub, {"price_x": "starter"}) == "starter"
    assert detect_tier(sub, {}) == "pro"

    named = subscription(items={"data": [{"price": {"id": "price_growth_monthly", "unit_amount": 29900}}]})
    assert detect_tier(named, {}) == "growth"

    from_metadata = subscription(items={"data": [{"price": {"id": "price_y"}}]}, metadata={"tier": "starter"})
    assert detect_tier(from_metadata, {}) == "starter"

    assert detect_tier(subscription(items={"data": []}), {}) is None


def test_detect_period():
    assert detect_period(subscription()) == "monthly"
    yearly = subscription(items={"data": [{"price": {"recurring": {"interval": "year"}}}]})
    assert detect_period(yearly) == "annual"
    assert detect_period(subscription(metadata={"period": "annual"})) == "annual"


@pytest.mark.parametrize(
    "stripe_status,expected",
    [("active", "active"), ("past_due", "past_due"), ("unpaid", "canceled"), ("incomplete", "active")],
)
def test_map_subscription_status(stripe_status, expected):
    assert map_subscription_status(stripe_status) == expected


# ============================================================================
# Stripe webhook
# ============================================================================


def test_webhook_without_secret_is_500(client, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", None)
    response = client.post("/webhooks/stripe", content=b"{}")
    assert response.status_code == 500


def test_webhook_rejects_bad_signature(client, stripe_secret):
    response = client.post("/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=deadbeef"})
    assert response.status_code == 401


def test_checkout_completed_activates_subscription(client, db, restaurant, stripe_secret):
    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "subscription": "sub_1",
                "customer": "cus_1",
                "metadata": {"restaurant_id": restaurant.id, "tier": "pro", "period": "annual"},
            }
        },
    }

    response = send_stripe(client, event)

    assert response.status_code == 200
    assert response.json()["event_type"] == "checkout.session.completed"
    db.refresh(restaurant)
    assert restaurant.subscription_status == "active"
    assert restaurant.subscription_tier == "pro"
    assert restaurant.subscription_period == "annual"
    assert restaurant.stripe_subscription_id == "sub_1"


def test_subscription_updated_with_cancel_at_period_end(client, db, restaurant, stripe_secret):
    restaurant.stripe_customer_id = "cus_1"
    db.commit()

    event = {
        "id": "evt_2",
        "type": "customer.subscription.updated",
        "data": {"object": subscription(cancel_at_period_end=True)},
    }
    assert send_stripe(client, event).status_code == 200

    db.refresh(restaurant)
    assert restaurant.subscription_tier == "pro"
    assert restaurant.subscription_status == "active"
    assert restaurant.stripe_subscription_id == "sub_1"
    assert restaurant.trial_ends_at is None
    # Falls back to the period end when Stripe sends no cancel_at
    assert restaurant.subscription_cancel_at == restaurant.subscription_ends_at
    assert restaurant.subscription_cancel_at is not None


def test_subscription_deleted_drops_to_starter(client, db, restaurant, stripe_secret):
    restaurant.stripe_subscription_id = "sub_1"
    restaurant.subscription_status = "active"
    restaurant.subscription_tier = "pro"
    db.commit()

    event = {"id": "evt_3", "type": "customer.subscription.deleted", "data": {"object": {"id": "sub_1"}}}
    assert send_stripe(client, event).status_code == 200

    db.refresh(restaurant)
    assert restaurant.subscription_status == "canceled"
    assert restaurant.subscription_tier == "starter"


def test_payment_failed_marks_past_due_and_emails_owner(client, db, restaurant, owner, stripe_secret, monkeypatch):
    restaurant.stripe_subscription_id = "sub_1"
    restaurant.subscription_status = "active"
    db.commit()

    sent = []

    async def fake_send(to, owner_name, restaurant_name):
        sent.append((to, owner_name, restaurant_name))
        return {"id": "email_1"}

    monkeypatch.setattr(subscription_service, "send_payment_failed_email", fake_send)

    event = {"id": "evt_4", "type": "invoice.payment_failed", "data": {"object": {"subscription": "sub_1"}}}
    assert send_stripe(client, event).status_code == 200

    db.refresh(restaurant)
    assert restaurant.subscription_status == "past_due"
    assert sent == [(owner.email, owner.full_name, restaurant.name)]

    recovered = {"id": "evt_5", "type": "invoice.payment_succeeded", "data": {"object": {"subscription": "sub_1"}}}
    send_stripe(client, recovered)
    db.refresh(restaurant)
    assert restaurant.subscription_status == "active"


def test_unhandled_event_is_acknowledged(client, stripe_secret):
    response = send_stripe(client, {"id": "evt_6", "type": "charge.refunded", "data": {"object": {}}})
    assert response.json() == {"success": True, "received": True, "event_type": "charge.refunded"}


# ============================================================================
# Subscription endpoint
# ============================================================================


def test_get_subscription_for_trial(client, restaurant, owner_headers):
    response = client.get(f"/billing/{restaurant.id}/subscription", headers=owner_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["effective_tier"] == "growth"
    assert body["price"] == 199
    assert body["location_count"] == 1
    assert body["features"]["ai_assistant"] is False


def test_get_subscription_is_owner_only(client, restaurant, add_member):
    headers = add_member(restaurant, "manager", "manager-user")
    response = client.get(f"/billing/{restaurant.id}/subscription", headers=headers)
    assert response.status_code == 403
