"""
POS router - vendor webhooks and manual unified-sales sync

Webhooks:
- POST /webhooks/square   order, payment and refund events
- POST /webhooks/toast    order events for every connected restaurant
- POST /webhooks/clover   order change notifications per merchant
"""

import json
import logging
from datetime import date, datetime, timedelta

from dateutil import tz
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_restaurant_role
from ...config import (
    CLOVER_WEBHOOK_AUTH_CODE,
    DEFAULT_RESTAURANT_TIMEZONE,
    SQUARE_WEBHOOK_SIGNATURE_KEY,
    TOAST_WEBHOOK_SECRET,
)
from ...database import get_db
from ...encryption import decrypt_token
from ...models import Restaurant, User
from ...models_clover import CloverConnection
from ...models_square import SquareConnection
from ...models_toast import ToastConnection
from ...webhook_security import verify_clover_webhook, verify_square_webhook, verify_toast_webhook
from . import clients
from .schemas import POSSyncRequest
from .service import POSIngestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pos", tags=["POS"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SQUARE_ORDER_EVENTS = {"order.created", "order.updated"}
SQUARE_PAYMENT_EVENTS = {"payment.created", "payment.updated"}
SQUARE_REFUND_EVENTS = {"refund.created", "refund.updated"}
TOAST_ORDER_EVENTS = {"ORDER_CREATED", "ORDER_MODIFIED", "ORDER_FIRED", "ORDER_SENT", "ORDER_COMPLETED"}


def get_ingest_service(db: Session = Depends(get_db)) -> POSIngestService:
    """Dependency injection for POSIngestService"""
    return POSIngestService(db)


def _parse_json(raw_body: bytes) -> dict:
    try:
        return json.loads(raw_body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("❌ Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None


def _local_today(restaurant: Restaurant) -> date:
    zone = tz.gettz(restaurant.timezone or DEFAULT_RESTAURANT_TIMEZONE)
    return datetime.now(zone).date()


# ============================================================================
# MANUAL SYNC
# ============================================================================


@router.post("/{restaurant_id}/sync")
async def sync_unified_sales(
    restaurant_id: str,
    data: POSSyncRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: POSIngestService = Depends(get_ingest_service),
):
    """Re-run the unified-sales sync and re-aggregate every affected date"""
    require_restaurant_role(db, current_user, restaurant_id, {"owner", "manager"})
    restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    if not restaurant:
        raise HTTPException(status_code=404, detail="Restaurant not found")

    clover_result = None
    if data.pos_system == "clover" and data.start_date:
        try:
            clover_result = await service.sync_clover_orders(restaurant, data.start_date, data.end_date)
        except clients.VendorAPIError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e

    result = service.resync_and_recalculate(restaurant_id, data.pos_system)
    logger.info(f"🔄 Manual POS sync for {restaurant_id}: {result['rows']}")
    response = {
        "success": True,
        "synced": result["rows"],
        "dates_recalculated": [day.isoformat() for day in result["dates"]],
    }
    if clover_result is not None:
        response["clover"] = clover_result
    return response


# ============================================================================
# SQUARE
# ============================================================================


@webhook_router.post("/square")
async def square_webhook(
    request: Request,
    db: Session = Depends(get_db),
    service: POSIngestService = Depends(get_ingest_service),
):
    _, raw_body = await verify_square_webhook(request, SQUARE_WEBHOOK_SIGNATURE_KEY)
    payload = _parse_json(raw_body)

    event_type = payload.get("type")
    merchant_id = payload.get("merchant_id")
    logger.info(f"📥 Received Square webhook: {event_type} for merchant {merchant_id}")

    connection = (
        db.query(SquareConnection)
        .filter(SquareConnection.merchant_id == merchant_id, SquareConnection.is_active.is_(True))
        .first()
    )
    if not connection:
        logger.error(f"❌ No Square connection for merchant {merchant_id}")
        raise HTTPException(status_code=404, detail="Square connection not found")

    restaurant = db.query(Restaurant).filter(Restaurant.id == connection.restaurant_id).first()
    data = payload.get("data") or {}
    data_object = data.get("object") or {}

    if event_type in SQUARE_ORDER_EVENTS:
        order_id = data.get("id") or next(
            (value.get("order_id") for value in data_object.values() if isinstance(value, dict)), None
        )
        if not order_id:
            raise HTTPException(status_code=400, detail="Missing order id")
        try:
            order_json = await clients.fetch_square_order(decrypt_token(connection.access_token), order_id)
        except clients.VendorAPIError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        order = service.store_square_order(restaurant, order_json)
        service.resync_and_recalculate(restaurant.id, "square", [order.service_date])

    elif event_type in SQUARE_PAYMENT_EVENTS:
        payment = service.store_square_payment(restaurant.id, data_object.get("payment") or {})
        logger.info(f"💳 Square payment {payment.payment_id} is {payment.status}")

    elif event_type in SQUARE_REFUND_EVENTS:
        refund = service.store_square_refund(restaurant.id, data_object.get("refund") or {})
        service_date = service.square_service_date(restaurant.id, refund.order_id)
        service.resync_and_recalculate(restaurant.id, "square", [service_date])

    elif event_type == "inventory.count.updated":
        logger.info(f"📦 Square inventory count updated for {restaurant.id}")

    else:
        logger.info(f"ℹ️ Unhandled Square event type: {event_type}")

    return {"success": True, "event_type": event_type}


# ============================================================================
# TOAST
# ============================================================================


@webhook_router.post("/toast")
async def toast_webhook(
    request: Request,
    db: Session = Depends(get_db),
    service: POSIngestService = Depends(get_ingest_service),
):
    _, raw_body = await verify_toast_webhook(request, TOAST_WEBHOOK_SECRET)
    payload = _parse_json(raw_body)

    event_type = payload.get("eventType")
    restaurant_guid = payload.get("restaurantGuid")
    logger.info(f"📥 Received Toast webhook: {event_type} for {restaurant_guid}")

    connections = db.query(ToastConnection).filter(ToastConnection.restaurant_guid == restaurant_guid).all()
    if not connections:
        logger.error(f"❌ No Toast connection for restaurant GUID {restaurant_guid}")
        raise HTTPException(status_code=404, detail="Toast connection not found")

    if event_type not in TOAST_ORDER_EVENTS:
        logger.info(f"ℹ️ Unhandled Toast event type: {event_type}")
        return {"success": True, "event_type": event_type, "processed": 0}

    order_guid = payload.get("entityGuid") or payload.get("guid")
    processed = 0
    for connection in connections:
        restaurant = db.query(Restaurant).filter(Restaurant.id == connection.restaurant_id).first()
        try:
            order_json = await clients.fetch_toast_order(
                decrypt_token(connection.access_token), restaurant_guid, order_guid
            )
            order = service.store_toast_order(restaurant, restaurant_guid, order_json)
            service.resync_and_recalculate(restaurant.id, "toast", [order.service_date])
            processed += 1
        except (clients.VendorAPIError, ValueError) as e:
            db.rollback()
            logger.error(f"❌ Toast webhook failed for restaurant {connection.restaurant_id}: {e}")

    return {"success": True, "event_type": event_type, "processed": processed}


# ============================================================================
# CLOVER
# ============================================================================


@webhook_router.post("/clover")
async def clover_webhook(
    request: Request,
    db: Session = Depends(get_db),
    service: POSIngestService = Depends(get_ingest_service),
):
    raw_body = await request.body()
    payload = _parse_json(raw_body)

    # Clover posts a one-time verification code when the webhook URL is registered
    if "verificationCode" in payload:
        logger.info("🔑 Clover webhook verification code received")
        return {"success": True, "verification": True}

    await verify_clover_webhook(request, CLOVER_WEBHOOK_AUTH_CODE)

    results = {}
    for merchant_id, events in (payload.get("merchants") or {}).items():
        order_events = [event for event in events or [] if str(event.get("objectId", "")).startswith("O:")]
        if not order_events:
            continue

        connection = db.query(CloverConnection).filter(CloverConnection.merchant_id == merchant_id).first()
        if not connection:
            logger.warning(f"⚠️ No Clover connection for merchant {merchant_id}")
            continue
        restaurant = db.query(Restaurant).filter(Restaurant.id == connection.restaurant_id).first()

        # Re-pull from the day before the earliest change to catch orders closed near midnight
        earliest_ms = min((event.get("ts") or 0) for event in order_events)
        start = _local_today(restaurant) - timedelta(days=1)
        if earliest_ms:
            zone = tz.gettz(restaurant.timezone or DEFAULT_RESTAURANT_TIMEZONE)
            start = min(start, datetime.fromtimestamp(earliest_ms / 1000, tz=zone).date() - timedelta(days=1))

        try:
            results[merchant_id] = await service.sync_clover_orders(restaurant, start)
        except clients.VendorAPIError as e:
            db.rollback()
            logger.error(f"❌ Clover sync failed for merchant {merchant_id}: {e}")
            results[merchant_id] = {"ordersSynced": 0, "errors": [str(e)]}

    return {"success": True, "merchants": results}
