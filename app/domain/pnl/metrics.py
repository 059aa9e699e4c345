"""
Period metrics - revenue, costs, profitability and industry benchmarks.

Pure functions over plain dicts so they can run against any query result.
Sales are dicts with id, total_price, item_type, parent_sale_id,
is_categorized and account ({account_type, account_subtype} or None).
Adjustments are dicts with adjustment_type and total_price.
"""

# metric -> (good at or below, caution at or below, target label)
BENCHMARKS = {
    "food_cost": (32, 35, "28-32%"),
    "labor_cost": (30, 35, "25-30%"),
    "prime_cost": (60, 65, "55-60%"),
}


def filter_split_sales(sales: list[dict]) -> list[dict]:
    """Drop parent rows that were split into children so nothing is counted twice"""
    parents_with_children = {sale["parent_sale_id"] for sale in sales if sale.get("parent_sale_id")}
    return [sale for sale in sales if sale["id"] not in parents_with_children]


def _subtype(account: dict) -> str:
    return (account.get("account_subtype") or "").lower()


def is_sales_tax_account(account: dict) -> bool:
    subtype = _subtype(account)
    return account.get("account_type") == "liability" and "sales" in subtype and "tax" in subtype


def is_tip_account(account: dict) -> bool:
    return account.get("account_type") == "liability" and "tip" in _subtype(account)


def calculate_revenue_breakdown(sales: list[dict], adjustments: list[dict]) -> dict:
    valid_sales = filter_split_sales(sales)

    gross = discounts = refunds = sales_tax = tips = other = 0.0

    for sale in valid_sales:
        amount = sale.get("total_price") or 0.0
        item_type = sale.get("item_type") or "sale"
        account = sale.get("account")

        if not sale.get("is_categorized") or not account:
            # Uncategorized sales still count as revenue
            if item_type == "sale":
                gross += amount
            continue

        if item_type == "sale":
            if account.get("account_type") == "revenue":
                gross += amount
            elif account.get("account_type") == "liability":
                if is_sales_tax_account(account):
                    sales_tax += amount
                elif is_tip_account(account):
                    tips += amount
                else:
                    other += amount
        elif item_type == "discount":
            discounts += abs(amount)
        elif item_type == "refund":
            refunds += abs(amount)

    for adjustment in adjustments:
        amount = adjustment.get("total_price") or 0.0
        kind = adjustment.get("adjustment_type")
        if kind == "tax":
            sales_tax += amount
        elif kind == "tip":
            tips += amount
        elif kind in ("service_charge", "fee"):
            other += amount
        elif kind == "discount":
            discounts += abs(amount)

    net = gross - discounts - refunds
    return {
        "gross_revenue": round(gross, 2),
        "discounts": round(discounts, 2),
        "refunds": round(refunds, 2),
        "net_revenue": round(net, 2),
        "total_collected_at_pos": round(gross + sales_tax + tips + other, 2),
        "sales_tax": round(sales_tax, 2),
        "tips": round(tips, 2),
        "other_liabilities": round(other, 2),
        "sales_count": len(valid_sales),
    }


def _pct(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 1)


def calculate_cost_breakdown(food_cost: float, labor_cost: float, net_revenue: float) -> dict:
    food_cost = abs(food_cost)
    prime_cost = food_cost + labor_cost
    return {
        "food_cost": round(food_cost, 2),
        "food_cost_percentage": _pct(food_cost, net_revenue),
        "labor_cost": round(labor_cost, 2),
        "labor_cost_percentage": _pct(labor_cost, net_revenue),
        "prime_cost": round(prime_cost, 2),
        "prime_cost_percentage": _pct(prime_cost, net_revenue),
    }


def calculate_profitability(net_revenue: float, prime_cost: float) -> dict:
    gross_profit = net_revenue - prime_cost
    return {
        "gross_profit": round(gross_profit, 2),
        "profit_margin": _pct(gross_profit, net_revenue),
    }


def benchmark_status(metric: str, percentage: float) -> str:
    good, caution, _ = BENCHMARKS[metric]
    if percentage <= good:
        return "good"
    if percentage <= caution:
        return "caution"
    return "high"


def calculate_benchmarks(costs: dict) -> dict:
    result = {}
    for metric, (_, _, target) in BENCHMARKS.items():
        result[f"{metric}_status"] = benchmark_status(metric, costs[f"{metric}_percentage"])
        result[f"target_{metric}"] = target
    return result


def calculate_period_metrics(
    sales: list[dict],
    adjustments: list[dict],
    food_cost: float,
    labor_cost: float,
) -> dict:
    revenue = calculate_revenue_breakdown(sales, adjustments)
    net_revenue = revenue["net_revenue"]
    costs = calculate_cost_breakdown(food_cost, labor_cost, net_revenue)
    return {
        "revenue": revenue,
        "costs": costs,
        "profitability": calculate_profitability(net_revenue, costs["prime_cost"]),
        "liabilities": {
            "sales_tax": revenue["sales_tax"],
            "tips": revenue["tips"],
            "other_liabilities": revenue["other_liabilities"],
        },
        "benchmarks": calculate_benchmarks(costs),
    }
