import json
from datetime import date

import httpx
import pytest

from app import config
from app.models_pnl import UnifiedSale
from app.services import ai_caller


def completion(content):
    return {"choices": [{"message": {"content": content}}]}


@pytest.fixture
def no_sleep(monkeypatch):
    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    monkeypatch.setattr(ai_caller, "sleep", fake_sleep)
    return waits


@pytest.fixture
def openrouter(monkeypatch):
    """Queue of responses served in order; records which model each request asked for"""
    queue = []
    models = []

    def handler(request: httpx.Request) -> httpx.Response:
        models.append(json.loads(request.content)["model"])
        status, body = queue.pop(0)
        return httpx.Response(status, json=body)

    monkeypatch.setattr(
        ai_caller, "http_client_factory", lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    return queue, models


@pytest.fixture
def ai_key(monkeypatch):
    monkeypatch.setattr(config, "OPENROUTER_API_KEY", "or-test-key")


# ============================================================================
# Model fallback
# ============================================================================


async def test_first_model_success(openrouter, no_sleep):
    queue, models = openrouter
    queue.append((200, completion('{"categorizations": []}')))

    result = await ai_caller.call_ai_with_fallback({"messages": []}, "key")

    assert result == {"data": {"categorizations": []}, "model": "Gemini 2.5 Flash Lite"}
    assert models == ["google/gemini-2.5-flash-lite"]
    assert no_sleep == []


async def test_rate_limit_retry_then_fallback(openrouter, no_sleep):
    queue, models = openrouter
    queue.extend(
        [
            (429, {"error": "slow down"}),
            (200, completion("not json at all")),
            (500, {"error": "boom"}),
            (200, completion('{"ok": true}')),
        ]
    )

    result = await ai_caller.call_ai_with_fallback({"messages": []}, "key")

    assert result == {"data": {"ok": True}, "model": "Gemma 3 27B"}
    assert models == [
        "google/gemini-2.5-flash-lite",
        "google/gemini-2.5-flash-lite",
        "meta-llama/llama-4-maverick",
        "google/gemma-3-27b-it",
    ]
    assert no_sleep == [2]


async def test_all_models_fail(openrouter, no_sleep):
    queue, _ = openrouter
    queue.extend([(500, {})] * len(ai_caller.MODELS))
    assert await ai_caller.call_ai_with_fallback({"messages": []}, "key") is None


async def test_missing_content_moves_on(openrouter, no_sleep):
    queue, _ = openrouter
    queue.extend([(200, {"choices": []}), (200, completion('{"x": 1}'))])
    result = await ai_caller.call_ai_with_fallback({"messages": []}, "key")
    assert result["model"] == "Llama 4 Maverick"


# ============================================================================
# Endpoints
# ============================================================================


def test_missing_api_key_is_500(client, restaurant, owner_headers, monkeypatch):
    monkeypatch.setattr(config, "OPENROUTER_API_KEY", None)
    response = client.post("/ai/categorize-transactions", json={"restaurant_id": restaurant.id}, headers=owner_headers)
    assert response.status_code == 500


def test_nothing_to_categorize(client, restaurant, owner_headers, ai_key):
    response = client.post("/ai/categorize-transactions", json={"restaurant_id": restaurant.id}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["categorized"] == 0


def test_transaction_suggestions_are_stored(client, db, restaurant, owner_headers, ai_key, bank_txn, account, monkeypatch):
    coffee = bank_txn(-42.0, "Blue Bottle Coffee")
    mystery = bank_txn(-10.0, "Mystery charge")

    async def fake_ai(request_body, api_key):
        assert api_key == "or-test-key"
        assert request_body["response_format"]["type"] == "json_schema"
        return {
            "data": {
                "categorizations": [
                    {"transaction_id": coffee.id, "account_code": "6200", "confidence": "high", "reasoning": "coffee"},
                    {"transaction_id": mystery.id, "account_code": "0000", "confidence": "low", "reasoning": "?"},
                ]
            },
            "model": "Gemini 2.5 Flash Lite",
        }

    monkeypatch.setattr(ai_caller, "call_ai_with_fallback", fake_ai)

    response = client.post("/ai/categorize-transactions", json={"restaurant_id": restaurant.id}, headers=owner_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["categorized"] == 1
    assert body["total"] == 2
    assert body["remaining"] == 1
    assert body["hasMore"] is True

    db.refresh(coffee)
    assert coffee.suggested_category_id == account("6200").id
    assert coffee.ai_confidence == "high"
    assert coffee.is_categorized is False


def test_all_models_failing_is_503(client, restaurant, owner_headers, ai_key, bank_txn, monkeypatch):
    bank_txn(-5.0, "Parking")

    async def fake_ai(request_body, api_key):
        return None

    monkeypatch.setattr(ai_caller, "call_ai_with_fallback", fake_ai)
    response = client.post("/ai/categorize-transactions", json={"restaurant_id": restaurant.id}, headers=owner_headers)
    assert response.status_code == 503


def test_pos_sale_suggestions(client, db, restaurant, owner_headers, ai_key, account, monkeypatch):
    sale = UnifiedSale(
        restaurant_id=restaurant.id,
        pos_system="square",
        external_order_id="o-1",
        external_item_id="li-1",
        item_name="Burger",
        total_price=12.0,
        sale_date=date(2024, 3, 15),
    )
    db.add(sale)
    db.commit()

    async def fake_ai(request_body, api_key):
        return {
            "data": {
                "categorizations": [
                    {
                        "sale_id": sale.id,
                        "account_code": "4000",
                        "item_type": "mystery",
                        "confidence": "extreme",
                        "reasoning": "food item",
                    }
                ]
            },
            "model": "Llama 4 Maverick",
        }

    monkeypatch.setattr(ai_caller, "call_ai_with_fallback", fake_ai)

    response = client.post("/ai/categorize-pos-sales", json={"restaurant_id": restaurant.id}, headers=owner_headers)

    assert response.json()["categorized"] == 1
    db.refresh(sale)
    assert sale.suggested_category_id == account("4000").id
    assert sale.item_type == "sale"
    assert sale.ai_confidence == "low"


def test_staff_cannot_use_ai(client, restaurant, add_member, ai_key):
    headers = add_member(restaurant, "staff", "staff-user")
    response = client.post("/ai/categorize-transactions", json={"restaurant_id": restaurant.id}, headers=headers)
    assert response.status_code == 403


def test_ai_endpoints_are_rate_limited(client, restaurant, owner_headers, ai_key):
    statuses = [
        client.post("/ai/categorize-pos-sales", json={"restaurant_id": restaurant.id}, headers=owner_headers).status_code
        for _ in range(11)
    ]
    assert statuses[:10] == [200] * 10
    assert statuses[10] == 429
