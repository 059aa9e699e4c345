import json
from datetime import date

import httpx
import pytest

from app.domain.pos import clients
from app.domain.pos import router as pos_router
from app.encryption import encrypt_token
from app.models_clover import CloverConnection, CloverOrder
from app.models_pnl import DailySales, UnifiedSale
from app.models_square import SquareConnection, SquareOrder
from app.models_toast import ToastConnection
from app.webhook_security import create_webhook_signature

SQUARE_ORDER = {
    "id": "sq-order-1",
    "location_id": "L1",
    "state": "COMPLETED",
    "closed_at": "2024-03-16T02:30:00Z",
    "total_tax_money": {"amount": 150},
    "line_items": [
        {
            "uid": "li-1",
            "name": "Burger",
            "quantity": "2",
            "base_price_money": {"amount": 1000},
            "gross_sales_money": {"amount": 2000},
        }
    ],
}


@pytest.fixture
def vendor_api(monkeypatch):
    """Route vendor HTTP calls to a handler table keyed by (method, path)"""
    routes = {}
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        key = (request.method, request.url.path)
        if key not in routes:
            return httpx.Response(404, json={"error": "not found"})
        status, body = routes[key]
        return httpx.Response(status, json=body)

    monkeypatch.setattr(
        clients, "http_client_factory", lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    return routes, calls


@pytest.fixture
def square_connection(db, restaurant):
    connection = SquareConnection(
        restaurant_id=restaurant.id, merchant_id="MERCHANT1", access_token=encrypt_token("sq-token")
    )
    db.add(connection)
    db.commit()
    return connection


def post_json(client, path, payload, headers=None):
    body = json.dumps(payload).encode()
    return client.post(path, content=body, headers={"Content-Type": "application/json", **(headers or {})})


def test_square_order_webhook_stores_order_and_rebuilds_day(client, db, restaurant, square_connection, vendor_api):
    routes, calls = vendor_api
    routes[("GET", "/v2/orders/sq-order-1")] = (200, {"order": SQUARE_ORDER})

    response = post_json(
        client,
        "/webhooks/square",
        {"type": "order.updated", "merchant_id": "MERCHANT1", "data": {"type": "order", "id": "sq-order-1"}},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "event_type": "order.updated"}
    assert calls[0].headers["Authorization"] == "Bearer sq-token"

    order = db.query(SquareOrder).filter_by(order_id="sq-order-1").one()
    assert order.service_date == date(2024, 3, 15)
    items = {row.external_item_id for row in db.query(UnifiedSale).filter_by(pos_system="square")}
    assert items == {"li-1", "sq-order-1_tax"}
    daily = db.query(DailySales).filter_by(restaurant_id=restaurant.id, date=date(2024, 3, 15)).one()
    assert daily.gross_revenue == 20.0
    assert daily.sales_tax == 1.5


def test_square_order_id_from_nested_object(client, db, restaurant, square_connection, vendor_api):
    routes, _ = vendor_api
    routes[("GET", "/v2/orders/sq-order-1")] = (200, {"order": SQUARE_ORDER})

    response = post_json(
        client,
        "/webhooks/square",
        {
            "type": "order.created",
            "merchant_id": "MERCHANT1",
            "data": {"object": {"order_created": {"order_id": "sq-order-1"}}},
        },
    )
    assert response.status_code == 200


def test_square_vendor_failure_returns_502(client, restaurant, square_connection, vendor_api):
    routes, _ = vendor_api
    routes[("GET", "/v2/orders/sq-order-1")] = (500, {"errors": []})

    response = post_json(
        client,
        "/webhooks/square",
        {"type": "order.updated", "merchant_id": "MERCHANT1", "data": {"id": "sq-order-1"}},
    )
    assert response.status_code == 502
    assert response.json()["success"] is False


def test_square_unknown_merchant_is_404(client, restaurant):
    response = post_json(client, "/webhooks/square", {"type": "order.updated", "merchant_id": "NOPE"})
    assert response.status_code == 404


def test_square_signature_is_checked(client, restaurant, square_connection, monkeypatch):
    monkeypatch.setattr(pos_router, "SQUARE_WEBHOOK_SIGNATURE_KEY", "sq-signing-key")
    payload = {"type": "payment.created", "merchant_id": "MERCHANT1", "data": {"object": {"payment": {"id": "p1"}}}}
    body = json.dumps(payload).encode()

    bad = client.post("/webhooks/square", content=body, headers={"x-square-hmacsha256-signature": "bogus"})
    assert bad.status_code == 401

    signature = create_webhook_signature(
        "sq-signing-key", body, "square", notification_url="http://testserver/webhooks/square"
    )
    good = client.post("/webhooks/square", content=body, headers={"x-square-hmacsha256-signature": signature})
    assert good.status_code == 200


def test_invalid_json_is_400(client):
    response = client.post("/webhooks/square", content=b"{not json")
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid JSON"}


TOAST_ORDER = {
    "guid": "toast-order-1",
    "closedDate": "2024-03-16T02:30:00Z",
    "checks": [
        {
            "taxAmount": 198,
            "selections": [{"guid": "sel-1", "displayName": "Fish Tacos", "quantity": 2, "price": 2400}],
            "payments": [],
        }
    ],
}


def test_toast_webhook_processes_every_connected_restaurant(client, db, restaurant, vendor_api, monkeypatch):
    monkeypatch.setattr(pos_router, "TOAST_WEBHOOK_SECRET", "toast-secret")
    routes, _ = vendor_api
    routes[("GET", "/orders/v2/orders/toast-order-1")] = (200, TOAST_ORDER)
    db.add(ToastConnection(restaurant_id=restaurant.id, restaurant_guid="RG-1", access_token=encrypt_token("t")))
    db.commit()

    payload = {"eventType": "ORDER_MODIFIED", "restaurantGuid": "RG-1", "entityGuid": "toast-order-1"}
    body = json.dumps(payload).encode()
    signature = create_webhook_signature("toast-secret", body)

    response = client.post("/webhooks/toast", content=body, headers={"toast-signature": signature})

    assert response.status_code == 200
    assert response.json()["processed"] == 1
    rows = {row.external_item_id: row for row in db.query(UnifiedSale).filter_by(pos_system="toast")}
    assert rows["sel-1"].total_price == 24.0
    assert rows["toast-order-1_tax"].total_price == 1.98


def test_toast_unhandled_event(client, db, restaurant):
    db.add(ToastConnection(restaurant_id=restaurant.id, restaurant_guid="RG-1", access_token=encrypt_token("t")))
    db.commit()
    response = post_json(client, "/webhooks/toast", {"eventType": "MENU_UPDATED", "restaurantGuid": "RG-1"})
    assert response.json() == {"success": True, "event_type": "MENU_UPDATED", "processed": 0}


def test_clover_verification_code_handshake(client):
    response = post_json(client, "/webhooks/clover", {"verificationCode": "abc123"})
    assert response.json() == {"success": True, "verification": True}


def test_clover_webhook_refreshes_expired_token(client, db, restaurant, monkeypatch):
    db.add(
        CloverConnection(
            restaurant_id=restaurant.id,
            merchant_id="CM1",
            access_token=encrypt_token("expired"),
            refresh_token=encrypt_token("refresh-me"),
        )
    )
    db.commit()

    state = {"refreshed": False}
    order = {
        "id": "c-1",
        "state": "locked",
        "createdTime": 1710556200000,
        "lineItems": {"elements": [{"id": "w", "name": "Wings", "price": 1100}]},
    }

    def orders_handler(request):
        if request.headers["Authorization"] == "Bearer expired":
            return httpx.Response(401, json={})
        return httpx.Response(200, json={"elements": [order]})

    def handler(request):
        if request.url.path == "/oauth/v2/refresh":
            state["refreshed"] = True
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
        return orders_handler(request)

    monkeypatch.setattr(
        clients, "http_client_factory", lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    response = post_json(client, "/webhooks/clover", {"merchants": {"CM1": [{"objectId": "O:c-1", "ts": 1710556200000}]}})

    assert response.status_code == 200
    assert response.json()["merchants"]["CM1"]["ordersSynced"] == 1
    assert state["refreshed"] is True
    assert db.query(CloverOrder).filter_by(order_id="c-1").one().service_date == date(2024, 3, 15)
    rows = {row.external_item_id for row in db.query(UnifiedSale).filter_by(pos_system="clover")}
    assert rows == {"w"}


def test_clover_ignores_non_order_events(client, db, restaurant):
    response = post_json(client, "/webhooks/clover", {"merchants": {"CM1": [{"objectId": "I:item-1"}]}})
    assert response.json() == {"success": True, "merchants": {}}


def test_manual_sync_endpoint(client, db, restaurant, owner_headers):
    response = client.post(f"/pos/{restaurant.id}/sync", json={"pos_system": "square"}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "synced": {"square": 0}, "dates_recalculated": []}


def test_manual_sync_requires_manager(client, restaurant, add_member):
    headers = add_member(restaurant, "staff", "staff-user")
    response = client.post(f"/pos/{restaurant.id}/sync", json={}, headers=headers)
    assert response.status_code == 403
