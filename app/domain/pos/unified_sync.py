"""
Unified sales sync.

Rebuilds the vendor-neutral `unified_sales` rows from the stored Square,
Toast and Clover tables. Rows are keyed on
(restaurant_id, pos_system, external_order_id, external_item_id); an
existing row keeps its categorization and only gets the POS fields
refreshed.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...models import Restaurant
from ...models_clover import CloverOrder, CloverOrderLineItem
from ...models_pnl import UnifiedSale
from ...models_square import SquareOrder, SquareOrderLineItem, SquareRefund
from ...models_toast import ToastOrder, ToastOrderItem, ToastPayment
from ..rules.service import RulesService
from .normalizers import local_sale_time

logger = logging.getLogger(__name__)

POS_SYSTEMS = ("square", "toast", "clover")

# Refreshed on every sync; category, suggestion and item_type belong to the user
SYNCED_FIELDS = (
    "item_name",
    "quantity",
    "unit_price",
    "total_price",
    "sale_date",
    "sale_time",
    "pos_category",
    "adjustment_type",
    "raw_data",
)

TOAST_DECLINED_PAYMENT_STATUSES = ("DENIED", "VOIDED")
TOAST_REFUND_STATUSES = ("PARTIAL", "FULL")
SQUARE_FAILED_REFUND_STATUSES = ("REJECTED", "FAILED")
CLOVER_SYNC_STATES = ("locked", "open")


def sale_row(
    order_id: str,
    item_id: str,
    item_name: str,
    total_price: float,
    sale_date: date,
    sale_time=None,
    quantity: float = 1.0,
    unit_price: Optional[float] = None,
    item_type: str = "sale",
    adjustment_type: Optional[str] = None,
    pos_category: Optional[str] = None,
    raw_data: Optional[dict] = None,
) -> dict:
    return {
        "external_order_id": order_id,
        "external_item_id": item_id,
        "item_name": item_name,
        "quantity": quantity,
        "unit_price": unit_price,
        "total_price": round(total_price, 2),
        "sale_date": sale_date,
        "sale_time": sale_time,
        "item_type": item_type,
        "adjustment_type": adjustment_type,
        "pos_category": pos_category,
        "raw_data": raw_data,
    }


class UnifiedSalesSync:
    """Vendor tables -> unified_sales for one restaurant at a time"""

    def __init__(self, db: Session):
        self.db = db
        self.rules = RulesService(db)
        self.touched_dates: set[date] = set()

    def _timezone(self, restaurant_id: str) -> Optional[str]:
        restaurant = self.db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
        return restaurant.timezone if restaurant else None

    def _existing(self, restaurant_id: str, pos_system: str) -> dict:
        rows = (
            self.db.query(UnifiedSale)
            .filter(UnifiedSale.restaurant_id == restaurant_id, UnifiedSale.pos_system == pos_system)
            .all()
        )
        return {(row.external_order_id, row.external_item_id): row for row in rows}

    def _delete_stale(self, existing: dict, keys: Iterable[tuple]) -> int:
        removed = 0
        for key in keys:
            row = existing.get(key)
            if row is None or row.parent_sale_id is not None:
                continue
            if row.is_split:
                logger.warning(f"⚠️ Keeping stale unified sale {row.id}: it has split children")
                continue
            self.touched_dates.add(row.sale_date)
            self.db.delete(row)
            del existing[key]
            removed += 1
        return removed

    def _upsert(self, restaurant_id: str, pos_system: str, rows: list[dict], existing: dict) -> int:
        auto_applied = 0
        for data in rows:
            key = (data["external_order_id"], data["external_item_id"])
            sale = existing.get(key)
            if sale is None:
                sale = UnifiedSale(
                    restaurant_id=restaurant_id,
                    pos_system=pos_system,
                    external_order_id=data["external_order_id"],
                    external_item_id=data["external_item_id"],
                    item_type=data["item_type"],
                    is_categorized=False,
                    is_split=False,
                )
                for field in SYNCED_FIELDS:
                    setattr(sale, field, data[field])
                self.db.add(sale)
                existing[key] = sale
                if self.rules.auto_apply_to_pos_sale(sale):
                    auto_applied += 1
                self.touched_dates.add(data["sale_date"])
            elif any(getattr(sale, field) != data[field] for field in SYNCED_FIELDS):
                self.touched_dates.update((sale.sale_date, data["sale_date"]))
                for field in SYNCED_FIELDS:
                    setattr(sale, field, data[field])

        self.db.commit()
        if auto_applied:
            logger.info(f"🏷️ Auto-categorized {auto_applied} new {pos_system} sales for {restaurant_id}")
        return len(rows)

    # ========================================================================
    # TOAST
    # ========================================================================

    def sync_toast_to_unified_sales(self, restaurant_id: str) -> int:
        timezone_name = self._timezone(restaurant_id)
        orders = {
            order.toast_order_guid: order
            for order in self.db.query(ToastOrder).filter(
                ToastOrder.restaurant_id == restaurant_id, ToastOrder.service_date.isnot(None)
            )
        }
        items = self.db.query(ToastOrderItem).filter(ToastOrderItem.restaurant_id == restaurant_id).all()
        payments = self.db.query(ToastPayment).filter(ToastPayment.restaurant_id == restaurant_id).all()
        existing = self._existing(restaurant_id, "toast")

        stale = []
        for item in items:
            if item.voided:
                stale.append((item.toast_order_guid, item.toast_item_guid))
                stale.append((item.toast_order_guid, f"{item.toast_item_guid}_discount"))
        for guid, order in orders.items():
            if not order.tax_amount:
                stale.append((guid, f"{guid}_tax"))
        for payment in payments:
            if payment.payment_status in TOAST_DECLINED_PAYMENT_STATUSES:
                stale.append((payment.toast_order_guid, f"{payment.toast_payment_guid}_tip"))
        removed = self._delete_stale(existing, stale)
        if removed:
            logger.info(f"🧹 Removed {removed} stale Toast rows for {restaurant_id}")

        rows = []
        for item in items:
            order = orders.get(item.toast_order_guid)
            if order is None:
                continue
            sale_time = local_sale_time(order.closed_date, timezone_name)
            name = item.item_name or "Unknown Item"
            total = item.total_price or 0.0

            if item.voided:
                rows.append(
                    sale_row(
                        item.toast_order_guid,
                        f"{item.toast_item_guid}_void",
                        f"Void - {name}",
                        -abs(total),
                        order.service_date,
                        sale_time,
                        quantity=item.quantity or 1.0,
                        item_type="discount",
                        adjustment_type="void",
                        pos_category=item.menu_category,
                    )
                )
                continue

            if item.unit_price:
                quantity = item.quantity or 1.0
                rows.append(
                    sale_row(
                        item.toast_order_guid,
                        item.toast_item_guid,
                        name,
                        total,
                        order.service_date,
                        sale_time,
                        quantity=quantity,
                        unit_price=round(total / quantity, 2),
                        pos_category=item.menu_category,
                        raw_data=item.raw_json,
                    )
                )
            if item.discount_amount:
                rows.append(
                    sale_row(
                        item.toast_order_guid,
                        f"{item.toast_item_guid}_discount",
                        f"Discount - {name}",
                        -abs(item.discount_amount),
                        order.service_date,
                        sale_time,
                        item_type="discount",
                        adjustment_type="discount",
                        pos_category=item.menu_category,
                    )
                )

        for guid, order in orders.items():
            if order.tax_amount:
                rows.append(
                    sale_row(
                        guid,
                        f"{guid}_tax",
                        "Sales Tax",
                        order.tax_amount,
                        order.service_date,
                        local_sale_time(order.closed_date, timezone_name),
                        item_type="tax",
                        adjustment_type="tax",
                    )
                )

        for payment in payments:
            order = orders.get(payment.toast_order_guid)
            if order is None:
                continue
            sale_time = local_sale_time(order.closed_date, timezone_name)
            payment_type = payment.payment_type or "Unknown"
            if (payment.tip_amount or 0) > 0 and payment.payment_status not in TOAST_DECLINED_PAYMENT_STATUSES:
                rows.append(
                    sale_row(
                        payment.toast_order_guid,
                        f"{payment.toast_payment_guid}_tip",
                        f"Tip - {payment_type}",
                        payment.tip_amount,
                        payment.payment_date or order.service_date,
                        sale_time,
                        item_type="tip",
                        adjustment_type="tip",
                    )
                )
            if payment.refund_status in TOAST_REFUND_STATUSES and payment.refund_amount:
                rows.append(
                    sale_row(
                        payment.toast_order_guid,
                        f"{payment.toast_payment_guid}_refund",
                        f"Refund - {payment_type}",
                        -abs(payment.refund_amount),
                        payment.payment_date or order.service_date,
                        sale_time,
                        item_type="refund",
                    )
                )

        count = self._upsert(restaurant_id, "toast", rows, existing)
        logger.info(f"✅ Synced {count} Toast rows to unified sales for {restaurant_id}")
        return count

    # ========================================================================
    # SQUARE
    # ========================================================================

    def sync_square_to_unified_sales(self, restaurant_id: str) -> int:
        timezone_name = self._timezone(restaurant_id)
        orders = {
            order.order_id: order
            for order in self.db.query(SquareOrder).filter(
                SquareOrder.restaurant_id == restaurant_id,
                SquareOrder.state == "COMPLETED",
                SquareOrder.service_date.isnot(None),
            )
        }
        existing = self._existing(restaurant_id, "square")

        rows = []
        line_items = self.db.query(SquareOrderLineItem).filter(SquareOrderLineItem.restaurant_id == restaurant_id)
        for item in line_items:
            order = orders.get(item.order_id)
            if order is None:
                continue
            quantity = item.quantity or 1.0
            total = item.gross_sales_money
            if total is None:
                total = (item.base_price_money or 0.0) * quantity
            name = item.name or "Unknown Item"
            if item.variation_name and item.variation_name != "Regular":
                name = f"{name} ({item.variation_name})"
            rows.append(
                sale_row(
                    item.order_id,
                    item.uid,
                    name,
                    total,
                    order.service_date,
                    local_sale_time(order.closed_at, timezone_name),
                    quantity=quantity,
                    unit_price=item.base_price_money,
                    raw_data=item.raw_json,
                )
            )

        adjustments = (
            ("tax", "Sales Tax", "total_tax_money"),
            ("tip", "Tips", "total_tip_money"),
            ("service_charge", "Service Charge", "total_service_charge_money"),
        )
        for order_id, order in orders.items():
            sale_time = local_sale_time(order.closed_at, timezone_name)
            for kind, label, column in adjustments:
                amount = getattr(order, column)
                if amount:
                    rows.append(
                        sale_row(
                            order_id,
                            f"{order_id}_{kind}",
                            label,
                            amount,
                            order.service_date,
                            sale_time,
                            item_type=kind,
                            adjustment_type=kind,
                        )
                    )
            if order.total_discount_money:
                rows.append(
                    sale_row(
                        order_id,
                        f"{order_id}_discount",
                        "Discount",
                        -abs(order.total_discount_money),
                        order.service_date,
                        sale_time,
                        item_type="discount",
                        adjustment_type="discount",
                    )
                )

        refunds = self.db.query(SquareRefund).filter(SquareRefund.restaurant_id == restaurant_id)
        for refund in refunds:
            order = orders.get(refund.order_id)
            if order is None or refund.status in SQUARE_FAILED_REFUND_STATUSES or not refund.amount_money:
                continue
            rows.append(
                sale_row(
                    refund.order_id,
                    f"{refund.refund_id}_refund",
                    f"Refund - {refund.reason}" if refund.reason else "Refund",
                    -abs(refund.amount_money),
                    order.service_date,
                    local_sale_time(refund.created_at_pos, timezone_name),
                    item_type="refund",
                    raw_data=refund.raw_json,
                )
            )

        count = self._upsert(restaurant_id, "square", rows, existing)
        logger.info(f"✅ Synced {count} Square rows to unified sales for {restaurant_id}")
        return count

    # ========================================================================
    # CLOVER
    # ========================================================================

    def sync_clover_to_unified_sales(self, restaurant_id: str) -> int:
        timezone_name = self._timezone(restaurant_id)
        orders = {
            order.order_id: order
            for order in self.db.query(CloverOrder).filter(
                CloverOrder.restaurant_id == restaurant_id,
                CloverOrder.service_date.isnot(None),
                CloverOrder.closed_time.isnot(None),
            )
            if (order.state or "").lower() in CLOVER_SYNC_STATES
        }
        existing = self._existing(restaurant_id, "clover")

        rows = []
        line_items = self.db.query(CloverOrderLineItem).filter(CloverOrderLineItem.restaurant_id == restaurant_id)
        for item in line_items:
            order = orders.get(item.order_id)
            # Clover omits isRevenue on ordinary items
            if order is None or item.is_revenue is False:
                continue
            quantity = item.unit_quantity or 1.0
            price = item.price or 0.0
            rows.append(
                sale_row(
                    item.order_id,
                    item.line_item_id,
                    item.name or "Unknown Item",
                    price * quantity,
                    order.service_date,
                    local_sale_time(order.closed_time, timezone_name),
                    quantity=quantity,
                    unit_price=price,
                    pos_category=item.category_id,
                    raw_data=item.raw_json,
                )
            )

        for order_id, order in orders.items():
            sale_time = local_sale_time(order.closed_time, timezone_name)
            if order.tax_amount:
                rows.append(
                    sale_row(
                        order_id, f"{order_id}_tax", "Sales Tax", order.tax_amount, order.service_date, sale_time,
                        item_type="tax", adjustment_type="tax",
                    )
                )
            if order.tip_amount:
                rows.append(
                    sale_row(
                        order_id, f"{order_id}_tip", "Tips", order.tip_amount, order.service_date, sale_time,
                        item_type="tip", adjustment_type="tip",
                    )
                )
            if order.discount_amount:
                rows.append(
                    sale_row(
                        order_id, f"{order_id}_discount", "Discount", -abs(order.discount_amount),
                        order.service_date, sale_time, item_type="discount", adjustment_type="discount",
                    )
                )

        count = self._upsert(restaurant_id, "clover", rows, existing)
        logger.info(f"✅ Synced {count} Clover rows to unified sales for {restaurant_id}")
        return count

    def sync(self, restaurant_id: str, pos_system: Optional[str] = None) -> dict:
        """Run one vendor's sync, or all of them; returns rows per vendor"""
        handlers = {
            "square": self.sync_square_to_unified_sales,
            "toast": self.sync_toast_to_unified_sales,
            "clover": self.sync_clover_to_unified_sales,
        }
        systems = [pos_system] if pos_system else list(POS_SYSTEMS)
        return {system: handlers[system](restaurant_id) for system in systems}
