from datetime import date, datetime, time

from app.domain.pos.normalizers import (
    cents,
    local_sale_time,
    local_service_date,
    normalize_clover_order,
    normalize_square_order,
    normalize_square_payment,
    normalize_toast_order,
    parse_business_date,
    parse_timestamp,
)

# 2024-03-16 02:30 UTC is 21:30 on the 15th in Chicago (CDT)
LATE_NIGHT_UTC = "2024-03-16T02:30:00Z"
LATE_NIGHT_MS = 1710556200000


def test_parse_timestamp_accepts_iso_and_epoch_millis():
    from_iso = parse_timestamp(LATE_NIGHT_UTC)
    from_ms = parse_timestamp(LATE_NIGHT_MS)
    assert from_iso == from_ms
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None


def test_service_date_uses_restaurant_timezone():
    instant = parse_timestamp(LATE_NIGHT_UTC)
    assert local_service_date(instant, "America/Chicago") == date(2024, 3, 15)
    assert local_service_date(instant, "UTC") == date(2024, 3, 16)


def test_unknown_timezone_falls_back_to_default():
    instant = parse_timestamp(LATE_NIGHT_UTC)
    assert local_service_date(instant, "Not/AZone") == date(2024, 3, 15)


def test_local_sale_time_from_naive_utc():
    assert local_sale_time(datetime(2024, 3, 16, 2, 30), "America/Chicago") == time(21, 30)
    assert local_sale_time(None, "America/Chicago") is None


def test_parse_business_date():
    assert parse_business_date(20240315) == date(2024, 3, 15)
    assert parse_business_date("20240315") == date(2024, 3, 15)
    assert parse_business_date("garbage") is None


def test_cents_rounds_to_dollars():
    assert cents(1299) == 12.99
    assert cents(None) == 0.0


def test_normalize_square_order():
    order = {
        "id": "sq-order-1",
        "location_id": "L1",
        "state": "COMPLETED",
        "closed_at": LATE_NIGHT_UTC,
        "total_money": {"amount": 2650, "currency": "USD"},
        "total_tax_money": {"amount": 150},
        "total_tip_money": {"amount": 500},
        "line_items": [
            {
                "uid": "li-1",
                "name": "Burger",
                "variation_name": "Double",
                "quantity": "2",
                "base_price_money": {"amount": 1000},
                "gross_sales_money": {"amount": 2000},
            }
        ],
    }
    result = normalize_square_order(order, "America/Chicago")

    assert result["order"]["order_id"] == "sq-order-1"
    assert result["order"]["total_money"] == 26.5
    assert result["order"]["closed_at"] == datetime(2024, 3, 16, 2, 30)
    assert result["order"]["service_date"] == date(2024, 3, 15)
    item = result["line_items"][0]
    assert item["quantity"] == 2.0
    assert item["base_price_money"] == 10.0
    assert item["gross_sales_money"] == 20.0


def test_normalize_square_payment_sums_fees():
    payment = {
        "id": "pay-1",
        "order_id": "sq-order-1",
        "status": "COMPLETED",
        "amount_money": {"amount": 2650},
        "processing_fee": [{"amount_money": {"amount": 80}}, {"amount_money": {"amount": 5}}],
    }
    assert normalize_square_payment(payment)["processing_fee_money"] == 0.85


def test_normalize_toast_order_with_checks():
    order = {
        "guid": "toast-order-1",
        "displayNumber": 42,
        "closedDate": LATE_NIGHT_UTC,
        "businessDate": 20240316,
        "checks": [
            {
                "amount": 2400,
                "taxAmount": 198,
                "totalAmount": 2598,
                "appliedDiscounts": [{"discountAmount": 100}],
                "selections": [
                    {
                        "guid": "sel-1",
                        "displayName": "Fish Tacos",
                        "quantity": 2,
                        "preDiscountPrice": 2400,
                        "salesCategory": {"name": "Food"},
                        "appliedDiscounts": [{"discountAmount": 200}],
                    }
                ],
                "payments": [
                    {
                        "guid": "pay-1",
                        "type": "CREDIT",
                        "amount": 2598,
                        "tipAmount": 400,
                        "paymentStatus": "CAPTURED",
                        "paidDate": LATE_NIGHT_UTC,
                    }
                ],
            }
        ],
    }
    result = normalize_toast_order(order, "America/Chicago")

    header = result["order"]
    assert header["order_number"] == "42"
    # Closed date wins over the business date
    assert header["service_date"] == date(2024, 3, 15)
    assert header["tax_amount"] == 1.98
    assert header["tip_amount"] == 4.0
    assert header["discount_amount"] == 3.0

    item = result["items"][0]
    assert item["unit_price"] == 12.0
    assert item["total_price"] == 24.0
    assert item["menu_category"] == "Food"
    assert item["discount_amount"] == 2.0

    payment = result["payments"][0]
    assert payment["refund_status"] == "NONE"
    assert payment["payment_date"] == date(2024, 3, 15)


def test_toast_order_without_close_uses_business_date():
    result = normalize_toast_order({"guid": "open-1", "businessDate": "20240310"}, "America/Chicago")
    assert result["order"]["service_date"] == date(2024, 3, 10)
    assert result["items"] == []


def test_normalize_clover_order():
    order = {
        "id": "clv-1",
        "state": "locked",
        "createdTime": LATE_NIGHT_MS,
        "taxAmount": 120,
        "lineItems": {
            "elements": [
                {"id": "cli-1", "name": "Wings", "price": 1100, "unitQty": 2000},
                {"id": "cli-2", "name": "Gift Card", "price": 2500, "isRevenue": False},
            ]
        },
    }
    result = normalize_clover_order(order, "MERCHANT1", "America/Chicago")

    assert result["order"]["service_date"] == date(2024, 3, 15)
    assert result["order"]["tax_amount"] == 1.2
    assert result["order"]["tip_amount"] is None
    wings, gift_card = result["line_items"]
    assert wings["unit_quantity"] == 2.0
    assert wings["price"] == 11.0
    assert wings["is_revenue"] is None
    assert gift_card["unit_quantity"] == 1.0
    assert gift_card["is_revenue"] is False
