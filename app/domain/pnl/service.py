"""P&L service - daily sales aggregation, labor costs and daily P&L"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from ...models import ChartOfAccount
from ...models_payroll import Employee, TimePunch
from ...models_pnl import DailyFoodCosts, DailyLaborCosts, DailyPnL, DailySales, UnifiedSale
from .labor import MAX_SHIFT_HOURS, calculate_daily_labor
from .metrics import calculate_period_metrics

logger = logging.getLogger(__name__)

UNIFIED_SOURCE = "unified_sales"
LABOR_SOURCE = "time_punches"


def upsert_by_keys(db: Session, model, keys: dict, values: dict):
    row = db.query(model).filter_by(**keys).first()
    if row is None:
        row = model(**keys)
        db.add(row)
    for key, value in values.items():
        setattr(row, key, value)
    return row


def summarize_sales(rows: list) -> dict:
    """daily_sales figures for the parent-level unified_sales rows of one day"""
    totals = {
        "gross_revenue": 0.0,
        "discounts": 0.0,
        "comps": 0.0,
        "refunds": 0.0,
        "sales_tax": 0.0,
        "tips": 0.0,
        "service_charges": 0.0,
    }
    orders = set()

    for row in rows:
        amount = row.total_price or 0.0
        adjustment = row.adjustment_type
        if adjustment == "void":
            totals["comps"] += abs(amount)
        elif adjustment == "discount" or (adjustment is None and row.item_type == "discount"):
            totals["discounts"] += abs(amount)
        elif adjustment == "tax":
            totals["sales_tax"] += amount
        elif adjustment == "tip":
            totals["tips"] += amount
        elif adjustment == "service_charge":
            totals["service_charges"] += amount
        elif row.item_type == "refund":
            totals["refunds"] += abs(amount)
        elif row.item_type == "sale":
            totals["gross_revenue"] += amount
            orders.add(row.external_order_id)

    totals = {key: round(value, 2) for key, value in totals.items()}
    totals["net_revenue"] = round(
        totals["gross_revenue"] - totals["discounts"] - totals["comps"] - totals["refunds"], 2
    )
    totals["transaction_count"] = len(orders)
    return totals


class PnLService:
    """Service layer for the P&L pipeline"""

    def __init__(self, db: Session):
        self.db = db

    def aggregate_unified_sales_to_daily(self, restaurant_id: str, day: date) -> DailySales:
        rows = (
            self.db.query(UnifiedSale)
            .filter(
                UnifiedSale.restaurant_id == restaurant_id,
                UnifiedSale.sale_date == day,
                UnifiedSale.parent_sale_id.is_(None),
            )
            .all()
        )
        totals = summarize_sales(rows)
        daily = upsert_by_keys(
            self.db,
            DailySales,
            {"restaurant_id": restaurant_id, "date": day, "source": UNIFIED_SOURCE},
            totals,
        )
        self.db.flush()
        logger.info(
            f"📊 Aggregated {len(rows)} unified sales for {restaurant_id} on {day}: "
            f"gross ${totals['gross_revenue']:.2f}"
        )
        self.calculate_daily_pnl(restaurant_id, day)
        return daily

    def calculate_daily_pnl(self, restaurant_id: str, day: date) -> DailyPnL:
        sales = (
            self.db.query(DailySales)
            .filter(DailySales.restaurant_id == restaurant_id, DailySales.date == day)
            .all()
        )
        net_revenue = sum(s.gross_revenue - s.discounts - s.comps - s.refunds for s in sales)

        food_rows = (
            self.db.query(DailyFoodCosts)
            .filter(DailyFoodCosts.restaurant_id == restaurant_id, DailyFoodCosts.date == day)
            .all()
        )
        food_cost = sum(f.purchases + f.inventory_adjustments for f in food_rows)

        labor_rows = (
            self.db.query(DailyLaborCosts)
            .filter(DailyLaborCosts.restaurant_id == restaurant_id, DailyLaborCosts.date == day)
            .all()
        )
        labor_cost = sum(
            row.hourly_wages + row.salary_wages + row.contractor_costs + row.benefits for row in labor_rows
        )

        prime_cost = food_cost + labor_cost

        def pct(value):
            return round(value / net_revenue * 100, 2) if net_revenue > 0 else 0.0

        pnl = upsert_by_keys(
            self.db,
            DailyPnL,
            {"restaurant_id": restaurant_id, "date": day},
            {
                "net_revenue": round(net_revenue, 2),
                "food_cost": round(food_cost, 2),
                "labor_cost": round(labor_cost, 2),
                "prime_cost": round(prime_cost, 2),
                "gross_profit": round(net_revenue - prime_cost, 2),
                "food_cost_percentage": pct(food_cost),
                "labor_cost_percentage": pct(labor_cost),
                "prime_cost_percentage": pct(prime_cost),
            },
        )
        self.db.commit()
        return pnl

    def calculate_daily_labor_costs(self, restaurant_id: str, start: date, end: date) -> int:
        """Rebuild daily_labor_costs from punches for a date range; returns days written"""
        employees = self.db.query(Employee).filter(Employee.restaurant_id == restaurant_id).all()
        punches = (
            self.db.query(TimePunch)
            .filter(
                TimePunch.restaurant_id == restaurant_id,
                TimePunch.punch_time >= datetime.combine(start, time.min),
                # shifts starting on the last day may clock out after midnight
                TimePunch.punch_time
                < datetime.combine(end + timedelta(days=1), time.min) + timedelta(hours=MAX_SHIFT_HOURS),
            )
            .all()
        )

        daily = calculate_daily_labor(employees, punches, start, end)
        for day, values in daily.items():
            upsert_by_keys(
                self.db,
                DailyLaborCosts,
                {"restaurant_id": restaurant_id, "date": day, "source": LABOR_SOURCE},
                values,
            )
        self.db.commit()
        logger.info(f"✅ Labor costs calculated for {restaurant_id}: {start} to {end}")
        return len(daily)

    def list_daily_pnl(self, restaurant_id: str, start: date, end: date) -> list[DailyPnL]:
        return (
            self.db.query(DailyPnL)
            .filter(DailyPnL.restaurant_id == restaurant_id, DailyPnL.date >= start, DailyPnL.date <= end)
            .order_by(DailyPnL.date)
            .all()
        )

    def get_period_metrics(self, restaurant_id: str, start: date, end: date) -> dict:
        rows = (
            self.db.query(UnifiedSale, ChartOfAccount)
            .outerjoin(ChartOfAccount, ChartOfAccount.id == UnifiedSale.category_id)
            .filter(
                UnifiedSale.restaurant_id == restaurant_id,
                UnifiedSale.sale_date >= start,
                UnifiedSale.sale_date <= end,
            )
            .all()
        )

        sales = []
        adjustments = []
        for sale, account in rows:
            if sale.adjustment_type:
                adjustments.append({"adjustment_type": sale.adjustment_type, "total_price": sale.total_price})
                continue
            sales.append(
                {
                    "id": sale.id,
                    "total_price": sale.total_price,
                    "item_type": sale.item_type,
                    "parent_sale_id": sale.parent_sale_id,
                    "is_categorized": sale.is_categorized,
                    "account": (
                        {"account_type": account.account_type, "account_subtype": account.account_subtype}
                        if account
                        else None
                    ),
                }
            )

        food_cost = sum(
            f.purchases + f.inventory_adjustments
            for f in self.db.query(DailyFoodCosts).filter(
                DailyFoodCosts.restaurant_id == restaurant_id,
                DailyFoodCosts.date >= start,
                DailyFoodCosts.date <= end,
            )
        )
        labor_cost = sum(
            row.total_labor_cost
            for row in self.db.query(DailyLaborCosts).filter(
                DailyLaborCosts.restaurant_id == restaurant_id,
                DailyLaborCosts.date >= start,
                DailyLaborCosts.date <= end,
            )
        )

        return calculate_period_metrics(sales, adjustments, food_cost, labor_cost)
