"""POS ingest service - stores vendor orders and feeds unified sales and the P&L"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from dateutil import tz
from sqlalchemy.orm import Session

from ...config import DEFAULT_RESTAURANT_TIMEZONE
from ...encryption import decrypt_token, encrypt_token
from ...models import Restaurant
from ...models_clover import CloverConnection, CloverOrder, CloverOrderLineItem
from ...models_square import SquareOrder, SquareOrderLineItem, SquarePayment, SquareRefund
from ...models_toast import ToastOrder, ToastOrderItem, ToastPayment
from ..pnl.service import PnLService, upsert_by_keys
from . import clients
from .normalizers import (
    normalize_clover_order,
    normalize_square_order,
    normalize_square_payment,
    normalize_square_refund,
    normalize_toast_order,
)
from .unified_sync import UnifiedSalesSync

logger = logging.getLogger(__name__)

CLOVER_PAGE_LIMIT = 100
CLOVER_MAX_PAGES = 50


class POSIngestService:
    """Persist normalized vendor payloads and keep downstream tables current"""

    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # SQUARE
    # ========================================================================

    def store_square_order(self, restaurant: Restaurant, order_json: dict) -> SquareOrder:
        normalized = normalize_square_order(order_json, restaurant.timezone)
        values = normalized["order"]
        order = upsert_by_keys(
            self.db,
            SquareOrder,
            {"restaurant_id": restaurant.id, "order_id": values.pop("order_id")},
            values,
        )

        self.db.query(SquareOrderLineItem).filter(
            SquareOrderLineItem.restaurant_id == restaurant.id,
            SquareOrderLineItem.order_id == order.order_id,
        ).delete(synchronize_session=False)
        for item in normalized["line_items"]:
            if not item["uid"]:
                continue
            self.db.add(SquareOrderLineItem(restaurant_id=restaurant.id, order_id=order.order_id, **item))

        self.db.commit()
        logger.info(f"📦 Stored Square order {order.order_id} ({len(normalized['line_items'])} items)")
        return order

    def store_square_payment(self, restaurant_id: str, payment_json: dict) -> SquarePayment:
        values = normalize_square_payment(payment_json)
        payment = upsert_by_keys(
            self.db,
            SquarePayment,
            {"restaurant_id": restaurant_id, "payment_id": values.pop("payment_id")},
            values,
        )
        self.db.commit()
        return payment

    def store_square_refund(self, restaurant_id: str, refund_json: dict) -> SquareRefund:
        values = normalize_square_refund(refund_json)
        refund = upsert_by_keys(
            self.db,
            SquareRefund,
            {"restaurant_id": restaurant_id, "refund_id": values.pop("refund_id")},
            values,
        )
        self.db.commit()
        return refund

    def square_service_date(self, restaurant_id: str, order_id: Optional[str]) -> Optional[date]:
        if not order_id:
            return None
        order = (
            self.db.query(SquareOrder)
            .filter(SquareOrder.restaurant_id == restaurant_id, SquareOrder.order_id == order_id)
            .first()
        )
        return order.service_date if order else None

    # ========================================================================
    # TOAST
    # ========================================================================

    def store_toast_order(self, restaurant: Restaurant, restaurant_guid: str, order_json: dict) -> ToastOrder:
        normalized = normalize_toast_order(order_json, restaurant.timezone)
        values = normalized["order"]
        guid = values.pop("toast_order_guid")
        values["toast_restaurant_guid"] = restaurant_guid
        order = upsert_by_keys(
            self.db, ToastOrder, {"restaurant_id": restaurant.id, "toast_order_guid": guid}, values
        )

        self.db.query(ToastOrderItem).filter(
            ToastOrderItem.restaurant_id == restaurant.id, ToastOrderItem.toast_order_guid == guid
        ).delete(synchronize_session=False)
        self.db.query(ToastPayment).filter(
            ToastPayment.restaurant_id == restaurant.id, ToastPayment.toast_order_guid == guid
        ).delete(synchronize_session=False)

        for item in normalized["items"]:
            if item["toast_item_guid"]:
                self.db.add(ToastOrderItem(restaurant_id=restaurant.id, toast_order_guid=guid, **item))
        for payment in normalized["payments"]:
            if payment["toast_payment_guid"]:
                self.db.add(ToastPayment(restaurant_id=restaurant.id, toast_order_guid=guid, **payment))

        self.db.commit()
        logger.info(
            f"📦 Stored Toast order {guid}: {len(normalized['items'])} items, "
            f"{len(normalized['payments'])} payments"
        )
        return order

    # ========================================================================
    # CLOVER
    # ========================================================================

    def store_clover_order(self, restaurant: Restaurant, merchant_id: str, order_json: dict) -> CloverOrder:
        normalized = normalize_clover_order(order_json, merchant_id, restaurant.timezone)
        values = normalized["order"]
        order = upsert_by_keys(
            self.db,
            CloverOrder,
            {"restaurant_id": restaurant.id, "order_id": values.pop("order_id")},
            values,
        )

        self.db.query(CloverOrderLineItem).filter(
            CloverOrderLineItem.restaurant_id == restaurant.id,
            CloverOrderLineItem.order_id == order.order_id,
        ).delete(synchronize_session=False)
        for item in normalized["line_items"]:
            if item["line_item_id"]:
                self.db.add(CloverOrderLineItem(restaurant_id=restaurant.id, order_id=order.order_id, **item))

        self.db.flush()
        return order

    async def _refresh_clover_access(self, connection: CloverConnection) -> str:
        if not connection.refresh_token:
            raise clients.VendorAPIError("Clover token expired and no refresh token is stored", 401)
        tokens = await clients.refresh_clover_token(decrypt_token(connection.refresh_token), connection.region)
        connection.access_token = encrypt_token(tokens["access_token"])
        if tokens.get("refresh_token"):
            connection.refresh_token = encrypt_token(tokens["refresh_token"])
        if tokens.get("expires_in"):
            connection.expires_at = datetime.utcnow() + timedelta(seconds=int(tokens["expires_in"]))
        self.db.commit()
        logger.info(f"🔄 Refreshed Clover token for merchant {connection.merchant_id}")
        return tokens["access_token"]

    async def sync_clover_orders(self, restaurant: Restaurant, start: date, end: Optional[date] = None) -> dict:
        """
        Pull orders modified since `start` from the Clover API and store them.
        Orders with a service date after `end` are stored but not counted.
        """
        connection = (
            self.db.query(CloverConnection).filter(CloverConnection.restaurant_id == restaurant.id).first()
        )
        if not connection:
            return {"ordersSynced": 0, "errors": ["No Clover connection"]}

        zone = tz.gettz(restaurant.timezone or DEFAULT_RESTAURANT_TIMEZONE)
        since = datetime.combine(start, time.min, tzinfo=zone)
        since_ms = int(since.timestamp() * 1000)

        access_token = decrypt_token(connection.access_token)
        refreshed = False
        synced = 0
        errors = []
        offset = 0

        for _page in range(CLOVER_MAX_PAGES):
            response = await clients.fetch_clover_orders_page(
                access_token, connection.merchant_id, connection.region, since_ms, offset, CLOVER_PAGE_LIMIT
            )
            if response.status_code == 401 and not refreshed:
                refreshed = True
                access_token = await self._refresh_clover_access(connection)
                continue
            if response.status_code != 200:
                logger.error(f"❌ Clover orders page failed ({response.status_code}) at offset {offset}")
                errors.append(f"Clover API error {response.status_code} at offset {offset}")
                break

            elements = response.json().get("elements") or []
            for order_json in elements:
                try:
                    order = self.store_clover_order(restaurant, connection.merchant_id, order_json)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"⚠️ Skipping Clover order {order_json.get('id')}: {e}")
                    errors.append(f"Order {order_json.get('id')}: {e}")
                    continue
                if end is None or (order.service_date and order.service_date <= end):
                    synced += 1

            if len(elements) < CLOVER_PAGE_LIMIT:
                break
            offset += CLOVER_PAGE_LIMIT

        self.db.commit()
        self.resync_and_recalculate(restaurant.id, "clover")
        logger.info(f"✅ Clover sync for {restaurant.id}: {synced} orders, {len(errors)} errors")
        return {"ordersSynced": synced, "errors": errors}

    # ========================================================================
    # DOWNSTREAM
    # ========================================================================

    def resync_and_recalculate(
        self, restaurant_id: str, pos_system: Optional[str], dates: Iterable[Optional[date]] = ()
    ) -> dict:
        """
        Re-sync unified sales for one vendor (or all when pos_system is None)
        and rebuild the P&L of every date whose rows changed.
        """
        sync = UnifiedSalesSync(self.db)
        rows = sync.sync(restaurant_id, pos_system)
        affected = sorted({day for day in dates if day} | sync.touched_dates)
        pnl = PnLService(self.db)
        for day in affected:
            pnl.aggregate_unified_sales_to_daily(restaurant_id, day)
        return {"rows": rows, "dates": affected}
