from datetime import date, datetime

from app.domain.pnl.service import PnLService
from app.domain.pos.unified_sync import UnifiedSalesSync
from app.models import CategorizationRule
from app.models_clover import CloverOrder, CloverOrderLineItem
from app.models_pnl import DailySales, UnifiedSale
from app.models_square import SquareOrder, SquareOrderLineItem, SquareRefund
from app.models_toast import ToastOrder, ToastOrderItem, ToastPayment

SERVICE_DATE = date(2024, 3, 15)
CLOSED_AT = datetime(2024, 3, 16, 2, 30)


def unified_rows(db, restaurant, pos_system):
    rows = db.query(UnifiedSale).filter_by(restaurant_id=restaurant.id, pos_system=pos_system).all()
    return {row.external_item_id: row for row in rows}


def seed_square(db, restaurant):
    db.add_all(
        [
            SquareOrder(
                restaurant_id=restaurant.id,
                order_id="sq-1",
                state="COMPLETED",
                service_date=SERVICE_DATE,
                closed_at=CLOSED_AT,
                total_tax_money=1.5,
                total_tip_money=5.0,
                total_discount_money=2.0,
            ),
            SquareOrder(restaurant_id=restaurant.id, order_id="sq-open", state="OPEN", service_date=SERVICE_DATE),
            SquareOrderLineItem(
                restaurant_id=restaurant.id,
                order_id="sq-1",
                uid="li-1",
                name="Burger",
                variation_name="Regular",
                quantity=2,
                base_price_money=10.0,
                gross_sales_money=20.0,
            ),
            SquareOrderLineItem(
                restaurant_id=restaurant.id, order_id="sq-open", uid="li-open", name="Fries", gross_sales_money=4.0
            ),
            SquareRefund(
                restaurant_id=restaurant.id,
                refund_id="rf-1",
                order_id="sq-1",
                status="COMPLETED",
                amount_money=5.0,
                reason="cold",
                created_at_pos=CLOSED_AT,
            ),
            SquareRefund(
                restaurant_id=restaurant.id, refund_id="rf-2", order_id="sq-1", status="FAILED", amount_money=3.0
            ),
        ]
    )
    db.commit()


def test_square_sync_builds_sales_and_adjustments(db, restaurant):
    seed_square(db, restaurant)
    sync = UnifiedSalesSync(db)

    assert sync.sync_square_to_unified_sales(restaurant.id) == 5
    rows = unified_rows(db, restaurant, "square")

    assert set(rows) == {"li-1", "sq-1_tax", "sq-1_tip", "sq-1_discount", "rf-1_refund"}
    assert rows["li-1"].item_name == "Burger"
    assert rows["li-1"].total_price == 20.0
    assert rows["li-1"].sale_date == SERVICE_DATE
    assert rows["sq-1_discount"].total_price == -2.0
    assert rows["rf-1_refund"].item_type == "refund"
    assert rows["rf-1_refund"].item_name == "Refund - cold"
    assert sync.touched_dates == {SERVICE_DATE}


def test_square_daily_aggregation(db, restaurant):
    seed_square(db, restaurant)
    UnifiedSalesSync(db).sync_square_to_unified_sales(restaurant.id)

    daily = PnLService(db).aggregate_unified_sales_to_daily(restaurant.id, SERVICE_DATE)

    assert daily.gross_revenue == 20.0
    assert daily.discounts == 2.0
    assert daily.refunds == 5.0
    assert daily.sales_tax == 1.5
    assert daily.tips == 5.0
    assert daily.net_revenue == 13.0
    assert daily.transaction_count == 1


def test_resync_keeps_categorization(db, restaurant, account):
    seed_square(db, restaurant)
    sync = UnifiedSalesSync(db)
    sync.sync_square_to_unified_sales(restaurant.id)

    burger = unified_rows(db, restaurant, "square")["li-1"]
    burger.category_id = account("4000").id
    burger.is_categorized = True
    item = db.query(SquareOrderLineItem).filter_by(uid="li-1").one()
    item.gross_sales_money = 24.0
    db.commit()

    UnifiedSalesSync(db).sync_square_to_unified_sales(restaurant.id)

    db.refresh(burger)
    assert burger.total_price == 24.0
    assert burger.category_id == account("4000").id
    assert burger.is_categorized is True


def test_resync_without_changes_touches_nothing(db, restaurant):
    seed_square(db, restaurant)
    UnifiedSalesSync(db).sync_square_to_unified_sales(restaurant.id)

    second = UnifiedSalesSync(db)
    second.sync_square_to_unified_sales(restaurant.id)
    assert second.touched_dates == set()


def test_new_sales_pick_up_auto_apply_rules(db, restaurant, account):
    db.add(
        CategorizationRule(
            restaurant_id=restaurant.id,
            rule_name="Burgers",
            applies_to="pos_sales",
            item_name_pattern="burger",
            category_id=account("4000").id,
            auto_apply=True,
        )
    )
    db.commit()
    seed_square(db, restaurant)

    UnifiedSalesSync(db).sync_square_to_unified_sales(restaurant.id)

    rows = unified_rows(db, restaurant, "square")
    assert rows["li-1"].category_id == account("4000").id
    assert rows["sq-1_tax"].is_categorized is False


def seed_toast(db, restaurant, voided=False):
    db.add_all(
        [
            ToastOrder(
                restaurant_id=restaurant.id,
                toast_order_guid="t-1",
                service_date=SERVICE_DATE,
                closed_date=CLOSED_AT,
                tax_amount=1.98,
            ),
            ToastOrderItem(
                restaurant_id=restaurant.id,
                toast_order_guid="t-1",
                toast_item_guid="sel-1",
                item_name="Fish Tacos",
                quantity=2,
                unit_price=12.0,
                total_price=24.0,
                menu_category="Food",
                discount_amount=2.0,
                voided=voided,
            ),
            ToastPayment(
                restaurant_id=restaurant.id,
                toast_order_guid="t-1",
                toast_payment_guid="p-1",
                payment_type="CREDIT",
                tip_amount=4.0,
                payment_status="CAPTURED",
                refund_status="NONE",
                payment_date=SERVICE_DATE,
            ),
        ]
    )
    db.commit()


def test_toast_sync(db, restaurant):
    seed_toast(db, restaurant)
    UnifiedSalesSync(db).sync_toast_to_unified_sales(restaurant.id)

    rows = unified_rows(db, restaurant, "toast")
    assert set(rows) == {"sel-1", "sel-1_discount", "t-1_tax", "p-1_tip"}
    assert rows["sel-1"].unit_price == 12.0
    assert rows["sel-1"].pos_category == "Food"
    assert rows["sel-1_discount"].total_price == -2.0
    assert rows["p-1_tip"].item_name == "Tip - CREDIT"


def test_toast_void_replaces_sale_with_comp(db, restaurant):
    seed_toast(db, restaurant)
    UnifiedSalesSync(db).sync_toast_to_unified_sales(restaurant.id)

    item = db.query(ToastOrderItem).filter_by(toast_item_guid="sel-1").one()
    item.voided = True
    db.commit()
    UnifiedSalesSync(db).sync_toast_to_unified_sales(restaurant.id)

    rows = unified_rows(db, restaurant, "toast")
    assert "sel-1" not in rows
    assert "sel-1_discount" not in rows
    assert rows["sel-1_void"].adjustment_type == "void"
    assert rows["sel-1_void"].total_price == -24.0

    daily = PnLService(db).aggregate_unified_sales_to_daily(restaurant.id, SERVICE_DATE)
    assert daily.gross_revenue == 0.0
    assert daily.comps == 24.0


def test_toast_declined_tip_is_removed(db, restaurant):
    seed_toast(db, restaurant)
    UnifiedSalesSync(db).sync_toast_to_unified_sales(restaurant.id)

    payment = db.query(ToastPayment).filter_by(toast_payment_guid="p-1").one()
    payment.payment_status = "DENIED"
    db.commit()
    UnifiedSalesSync(db).sync_toast_to_unified_sales(restaurant.id)

    assert "p-1_tip" not in unified_rows(db, restaurant, "toast")


def test_clover_sync_skips_non_revenue_items(db, restaurant):
    db.add_all(
        [
            CloverOrder(
                restaurant_id=restaurant.id,
                order_id="c-1",
                state="locked",
                service_date=SERVICE_DATE,
                closed_time=CLOSED_AT,
                tax_amount=1.2,
            ),
            CloverOrderLineItem(
                restaurant_id=restaurant.id, order_id="c-1", line_item_id="w", name="Wings", price=11.0, unit_quantity=2
            ),
            CloverOrderLineItem(
                restaurant_id=restaurant.id,
                order_id="c-1",
                line_item_id="gc",
                name="Gift Card",
                price=25.0,
                is_revenue=False,
            ),
        ]
    )
    db.commit()

    UnifiedSalesSync(db).sync_clover_to_unified_sales(restaurant.id)

    rows = unified_rows(db, restaurant, "clover")
    assert set(rows) == {"w", "c-1_tax"}
    assert rows["w"].total_price == 22.0


def test_sync_all_vendors_reports_counts(db, restaurant):
    seed_square(db, restaurant)
    result = UnifiedSalesSync(db).sync(restaurant.id)
    assert result == {"square": 5, "toast": 0, "clover": 0}
    assert db.query(DailySales).count() == 0
