import time
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app.auth import user_has_capability
from app.models import User
from app.plan_limits import get_effective_tier, get_price, has_feature, volume_discount_percent
from tests.conftest import make_token

NOW = datetime(2024, 3, 15, 12, 0)


def restaurant_ns(**fields):
    defaults = {
        "subscription_status": "active",
        "subscription_tier": "starter",
        "trial_ends_at": None,
        "grandfathered_until": None,
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


# ============================================================================
# Plan limits
# ============================================================================


def test_trial_uses_trial_tier_until_it_expires():
    trialing = restaurant_ns(subscription_status="trialing", subscription_tier="growth", trial_ends_at=NOW + timedelta(days=3))
    assert get_effective_tier(trialing, NOW) == "growth"

    expired = restaurant_ns(subscription_status="trialing", subscription_tier="growth", trial_ends_at=NOW - timedelta(days=1))
    assert get_effective_tier(expired, NOW) is None
    assert has_feature(expired, "basic_pnl", NOW) is False


def test_grandfathered_is_pro_until_cutoff():
    assert get_effective_tier(restaurant_ns(subscription_status="grandfathered"), NOW) == "pro"
    lapsed = restaurant_ns(subscription_status="grandfathered", grandfathered_until=NOW - timedelta(days=1))
    assert get_effective_tier(lapsed, NOW) == "starter"


@pytest.mark.parametrize("status", ["canceled", "past_due"])
def test_lapsed_subscriptions_fall_back_to_starter(status):
    assert get_effective_tier(restaurant_ns(subscription_status=status, subscription_tier="pro"), NOW) == "starter"


def test_feature_gates_follow_tier_order():
    growth = restaurant_ns(subscription_tier="growth")
    assert has_feature(growth, "financial_intelligence", NOW)
    assert not has_feature(growth, "ai_assistant", NOW)
    assert not has_feature(growth, "unknown_feature", NOW)


@pytest.mark.parametrize("locations,discount", [(1, 0), (2, 0), (3, 5), (6, 10), (11, 15), (40, 15)])
def test_volume_discount(locations, discount):
    assert volume_discount_percent(locations) == discount


def test_price_with_discount_and_period():
    assert get_price("growth", "monthly") == 199
    assert get_price("growth", "annual", 6) == 1791.0
    assert get_price(None, "monthly") is None


def test_capability_needs_role_and_feature():
    pro = restaurant_ns(subscription_tier="pro")
    starter = restaurant_ns(subscription_tier="starter")
    assert user_has_capability("owner", "view:ai_assistant", pro)
    assert not user_has_capability("owner", "view:ai_assistant", starter)
    assert not user_has_capability("chef", "view:ai_assistant", pro)
    assert not user_has_capability(None, "view:transactions", pro)


# ============================================================================
# Authentication and the error envelope
# ============================================================================


def test_missing_token_is_401(client):
    response = client.get("/restaurants")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_garbage_token_is_401(client):
    response = client.get("/restaurants", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid token"}


def test_expired_token_is_401(client):
    token = make_token("u-expired", exp=int(time.time()) - 60)
    response = client.get("/restaurants", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["error"] == "Token expired"


def test_wrong_audience_is_rejected(client):
    token = make_token("u-aud", aud="someone-else")
    response = client.get("/restaurants", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_first_request_creates_the_user(client, db):
    token = make_token("new-user", "new@bistro.test", user_metadata={"full_name": "Nia New"})
    response = client.get("/restaurants", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json() == []
    user = db.query(User).filter_by(id="new-user").one()
    assert user.full_name == "Nia New"


def test_create_restaurant_starts_a_trial(client, owner_headers):
    response = client.post("/restaurants", json={"name": "Noodle Bar", "timezone": "America/New_York"}, headers=owner_headers)
    assert response.status_code == 200

    listed = client.get("/restaurants", headers=owner_headers).json()
    assert len(listed) == 1
    assert listed[0]["role"] == "owner"
    assert listed[0]["subscription_status"] == "trialing"
    assert listed[0]["effective_tier"] == "growth"
    assert listed[0]["features"]["financial_intelligence"] is True
    assert listed[0]["features"]["ai_assistant"] is False


def test_other_restaurants_are_forbidden(client, restaurant):
    token = make_token("stranger", "stranger@elsewhere.test")
    response = client.get(f"/accounting/{restaurant.id}/accounts", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Access denied"}


def test_unknown_restaurant_is_404(client, owner_headers):
    response = client.get("/accounting/does-not-exist/accounts", headers=owner_headers)
    assert response.status_code == 404


def test_health_and_root(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["success"] is True
