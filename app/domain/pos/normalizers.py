"""
POS payload normalizers.

Map vendor JSON (Square, Toast, Clover) to column dicts for the vendor
tables. No database or network access here.
"""

from datetime import date, datetime, time
from typing import Any, Optional

from dateutil import parser as date_parser
from dateutil import tz

from ...config import DEFAULT_RESTAURANT_TIMEZONE


# ============================================================================
# TIME HELPERS
# ============================================================================


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO string or epoch milliseconds -> aware UTC datetime"""
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=tz.UTC)
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz.UTC)
    return parsed.astimezone(tz.UTC)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Columns store naive UTC"""
    if value is None:
        return None
    return value.astimezone(tz.UTC).replace(tzinfo=None)


def local_service_date(value: Optional[datetime], timezone_name: Optional[str]) -> Optional[date]:
    """Calendar date of a UTC instant in the restaurant's timezone"""
    if value is None:
        return None
    zone = tz.gettz(timezone_name or DEFAULT_RESTAURANT_TIMEZONE) or tz.gettz(DEFAULT_RESTAURANT_TIMEZONE)
    return value.astimezone(zone).date()


def local_sale_time(value: Optional[datetime], timezone_name: Optional[str]) -> Optional[time]:
    """Local wall-clock time of a naive UTC timestamp"""
    if value is None:
        return None
    zone = tz.gettz(timezone_name or DEFAULT_RESTAURANT_TIMEZONE) or tz.gettz(DEFAULT_RESTAURANT_TIMEZONE)
    return value.replace(tzinfo=tz.UTC).astimezone(zone).time().replace(microsecond=0)


def parse_business_date(value: Any) -> Optional[date]:
    """Toast businessDate is an int or string in YYYYMMDD form"""
    if value in (None, ""):
        return None
    text = str(value)
    try:
        return datetime.strptime(text, "%Y%m%d").date()
    except ValueError:
        return None


def cents(value: Any) -> float:
    return round((value or 0) / 100, 2)


def money(obj: Optional[dict]) -> float:
    """Square Money object -> dollars"""
    return cents((obj or {}).get("amount"))


# ============================================================================
# SQUARE
# ============================================================================


def normalize_square_order(order: dict, timezone_name: Optional[str]) -> dict:
    closed_at = parse_timestamp(order.get("closed_at"))
    created_at = parse_timestamp(order.get("created_at"))

    line_items = []
    for item in order.get("line_items") or []:
        try:
            quantity = float(item.get("quantity") or 1)
        except (TypeError, ValueError):
            quantity = 1.0
        line_items.append(
            {
                "uid": item.get("uid"),
                "catalog_object_id": item.get("catalog_object_id"),
                "name": item.get("name") or "Unknown Item",
                "variation_name": item.get("variation_name"),
                "category_id": item.get("category_id"),
                "quantity": quantity,
                "base_price_money": money(item.get("base_price_money")),
                "gross_sales_money": money(item.get("gross_sales_money")),
                "total_tax_money": money(item.get("total_tax_money")),
                "total_discount_money": money(item.get("total_discount_money")),
                "total_money": money(item.get("total_money")),
                "raw_json": item,
            }
        )

    return {
        "order": {
            "order_id": order.get("id"),
            "location_id": order.get("location_id"),
            "state": order.get("state"),
            "source": (order.get("source") or {}).get("name"),
            "total_money": money(order.get("total_money")),
            "total_tax_money": money(order.get("total_tax_money")),
            "total_tip_money": money(order.get("total_tip_money")),
            "total_discount_money": money(order.get("total_discount_money")),
            "total_service_charge_money": money(order.get("total_service_charge_money")),
            "created_at_pos": to_naive_utc(created_at),
            "closed_at": to_naive_utc(closed_at),
            "service_date": local_service_date(closed_at, timezone_name),
            "raw_json": order,
        },
        "line_items": line_items,
    }


def normalize_square_payment(payment: dict) -> dict:
    processing_fee = sum(money(fee.get("amount_money")) for fee in payment.get("processing_fee") or [])
    return {
        "payment_id": payment.get("id"),
        "order_id": payment.get("order_id"),
        "location_id": payment.get("location_id"),
        "status": payment.get("status"),
        "amount_money": money(payment.get("amount_money")),
        "tip_money": money(payment.get("tip_money")),
        "processing_fee_money": round(processing_fee, 2),
        "created_at_pos": to_naive_utc(parse_timestamp(payment.get("created_at"))),
        "raw_json": payment,
    }


def normalize_square_refund(refund: dict) -> dict:
    return {
        "refund_id": refund.get("id"),
        "payment_id": refund.get("payment_id"),
        "order_id": refund.get("order_id"),
        "status": refund.get("status"),
        "amount_money": money(refund.get("amount_money")),
        "reason": refund.get("reason"),
        "created_at_pos": to_naive_utc(parse_timestamp(refund.get("created_at"))),
        "raw_json": refund,
    }


# ============================================================================
# TOAST
# ============================================================================


def _discount_total(entries: Optional[list]) -> float:
    return sum((entry.get("discountAmount") or 0) for entry in entries or [])


def normalize_toast_order(order: dict, timezone_name: Optional[str]) -> dict:
    """
    Toast orders carry checks, each with selections and payments. Orders
    without checks are treated as a single check.
    """
    closed_at = parse_timestamp(order.get("closedDate"))
    service_date = local_service_date(closed_at, timezone_name) or parse_business_date(order.get("businessDate"))
    checks = order.get("checks") or [order]

    subtotal = tax = total = tips = discount = service_charges = refunds = 0
    payment_status = None
    items = []
    payments = []

    for check in checks:
        subtotal += check.get("amount") or 0
        tax += check.get("taxAmount") or 0
        total += check.get("totalAmount") or 0
        discount += _discount_total(check.get("appliedDiscounts"))
        service_charges += sum(
            (charge.get("chargeAmount") or 0)
            for charge in (check.get("appliedServiceCharges") or check.get("serviceCharges") or [])
        )
        payment_status = payment_status or check.get("paymentStatus")

        for selection in check.get("selections") or []:
            quantity = selection.get("quantity") or 1
            line_total = selection.get("preDiscountPrice")
            if line_total is None:
                line_total = selection.get("price") or 0
            selection_discount = _discount_total(selection.get("appliedDiscounts"))
            discount += selection_discount
            category = selection.get("salesCategory") or selection.get("itemGroup") or {}
            items.append(
                {
                    "toast_item_guid": selection.get("guid"),
                    "item_name": selection.get("displayName") or selection.get("name") or "Unknown Item",
                    "quantity": quantity,
                    "unit_price": cents(line_total / quantity) if quantity else 0.0,
                    "total_price": cents(line_total),
                    "menu_category": category.get("name"),
                    "discount_amount": cents(selection_discount),
                    "voided": bool(selection.get("voided")),
                    "raw_json": selection,
                }
            )

        for payment in check.get("payments") or []:
            refund = payment.get("refund") or {}
            refund_amount = refund.get("refundAmount") or 0
            refunds += refund_amount
            tips += payment.get("tipAmount") or 0
            paid_at = parse_timestamp(payment.get("paidDate"))
            payments.append(
                {
                    "toast_payment_guid": payment.get("guid"),
                    "payment_type": payment.get("type"),
                    "amount": cents(payment.get("amount")),
                    "tip_amount": cents(payment.get("tipAmount")),
                    "payment_status": payment.get("paymentStatus"),
                    "refund_status": payment.get("refundStatus") or "NONE",
                    "refund_amount": cents(refund_amount),
                    "payment_date": local_service_date(paid_at, timezone_name) or service_date,
                    "raw_json": payment,
                }
            )

    return {
        "order": {
            "toast_order_guid": order.get("guid"),
            "order_number": str(order["displayNumber"]) if order.get("displayNumber") is not None else None,
            "service_date": service_date,
            "closed_date": to_naive_utc(closed_at),
            "total_amount": cents(total),
            "subtotal_amount": cents(subtotal),
            "tax_amount": cents(tax),
            "tip_amount": cents(tips),
            "discount_amount": cents(discount),
            "service_charge_amount": cents(service_charges),
            "refund_amount": cents(refunds),
            "payment_status": payment_status,
            "raw_json": order,
        },
        "items": items,
        "payments": payments,
    }


# ============================================================================
# CLOVER
# ============================================================================


def normalize_clover_order(order: dict, merchant_id: str, timezone_name: Optional[str]) -> dict:
    created = parse_timestamp(order.get("createdTime"))
    closed = parse_timestamp(order.get("clientCreatedTime")) or created

    line_items = []
    for item in (order.get("lineItems") or {}).get("elements") or []:
        catalog_item = item.get("item") or {}
        categories = (catalog_item.get("categories") or {}).get("elements") or []
        # Clover quantities are thousandths and prices are cents
        line_items.append(
            {
                "line_item_id": item.get("id"),
                "item_id": catalog_item.get("id"),
                "name": item.get("name") or "Unknown Item",
                "alternate_name": item.get("alternateName"),
                "price": cents(item["price"]) if item.get("price") is not None else None,
                "unit_quantity": item["unitQty"] / 1000 if item.get("unitQty") else 1.0,
                "is_revenue": item.get("isRevenue"),
                "note": item.get("note"),
                "printed": bool(item.get("printed")),
                "category_id": categories[0].get("id") if categories else None,
                "raw_json": item,
            }
        )

    return {
        "order": {
            "order_id": order.get("id"),
            "merchant_id": merchant_id,
            "employee_id": (order.get("employee") or {}).get("id"),
            "state": order.get("state"),
            "total": cents(order["total"]) if order.get("total") is not None else None,
            "tax_amount": cents(order.get("taxAmount")) if order.get("taxAmount") else None,
            "service_charge_amount": cents((order.get("serviceCharge") or {}).get("amount")) or None,
            "discount_amount": cents((order.get("discount") or {}).get("amount")) or None,
            "tip_amount": cents(order.get("tipAmount")) if order.get("tipAmount") else None,
            "created_time": to_naive_utc(created),
            "modified_time": to_naive_utc(parse_timestamp(order.get("modifiedTime"))),
            "closed_time": to_naive_utc(closed),
            "service_date": local_service_date(created, timezone_name),
            "raw_json": order,
        },
        "line_items": line_items,
    }
