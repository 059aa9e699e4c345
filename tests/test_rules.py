from datetime import date
from types import SimpleNamespace

import pytest

from app.domain.rules.matching import (
    SplitConfigError,
    compute_split_amounts,
    has_any_pattern,
    matches_pattern,
    rule_matches_bank_transaction,
    rule_matches_pos_sale,
)
from app.domain.rules.schemas import RuleCreate
from app.domain.rules.service import RulesService
from app.models import CategorizationRule
from app.models_pnl import UnifiedSale


def bank_rule(**fields):
    defaults = {
        "description_pattern": None,
        "description_match_type": "contains",
        "amount_min": None,
        "amount_max": None,
        "supplier_id": None,
        "transaction_type": "any",
    }
    defaults.update(fields)
    return SimpleNamespace(**defaults)


def txn(amount, description="", merchant_name=None, supplier_id=None):
    return SimpleNamespace(
        amount=amount, description=description, merchant_name=merchant_name, supplier_id=supplier_id
    )


# ============================================================================
# Matching
# ============================================================================


@pytest.mark.parametrize(
    "value,pattern,match_type,expected",
    [
        ("SYSCO FOODS #123", "sysco", "contains", True),
        ("SYSCO FOODS", "sysco foods", "exact", True),
        ("SYSCO FOODS #1", "sysco foods", "exact", False),
        ("Amazon Marketplace", "amazon", "starts_with", True),
        ("Pay to Amazon", "amazon", "starts_with", False),
        ("Utility Bill ACH", "ach", "ends_with", True),
        ("CHECK 1042", r"^CHECK \d+$", "regex", True),
        ("check 1042", r"^CHECK \d+$", "regex", False),
        ("anything", "([unclosed", "regex", False),
        (None, "sysco", "contains", False),
    ],
)
def test_matches_pattern(value, pattern, match_type, expected):
    assert matches_pattern(value, pattern, match_type) is expected


def test_empty_pattern_matches_everything():
    assert matches_pattern(None, None, "exact") is True


def test_description_rule_ignores_merchant_name():
    rule = bank_rule(description_pattern="sysco")
    assert not rule_matches_bank_transaction(rule, txn(-50, "ACH DEBIT", merchant_name="Sysco"))
    assert rule_matches_bank_transaction(rule, txn(-50, "SYSCO ACH DEBIT", merchant_name=None))
    assert not rule_matches_bank_transaction(rule, txn(-50, None, merchant_name="Sysco"))


def test_amount_range_uses_magnitude():
    rule = bank_rule(amount_min=10, amount_max=100)
    assert rule_matches_bank_transaction(rule, txn(-50))
    assert not rule_matches_bank_transaction(rule, txn(-150))
    assert not rule_matches_bank_transaction(rule, txn(5))


def test_transaction_type_filters_direction():
    debit_rule = bank_rule(transaction_type="debit")
    assert rule_matches_bank_transaction(debit_rule, txn(-1))
    assert not rule_matches_bank_transaction(debit_rule, txn(1))
    credit_rule = bank_rule(transaction_type="credit")
    assert rule_matches_bank_transaction(credit_rule, txn(1))


def test_pos_rule_category_is_case_insensitive():
    rule = SimpleNamespace(
        item_name_pattern=None, item_name_match_type=None, pos_category="Beverages", amount_min=None, amount_max=None
    )
    assert rule_matches_pos_sale(rule, SimpleNamespace(item_name="Latte", pos_category="beverages", total_price=4.5))
    assert not rule_matches_pos_sale(rule, SimpleNamespace(item_name="Latte", pos_category=None, total_price=4.5))


def test_has_any_pattern_depends_on_source():
    assert has_any_pattern("bank_transactions", {"description_pattern": "sysco"})
    assert not has_any_pattern("bank_transactions", {"item_name_pattern": "burger"})
    assert has_any_pattern("pos_sales", {"item_name_pattern": "burger"})
    assert has_any_pattern("bank_transactions", {"transaction_type": "debit"})
    assert not has_any_pattern("bank_transactions", {"transaction_type": "any"})


def test_percentage_split_puts_remainder_on_last_line():
    splits = [
        {"category_id": "a", "percentage": 33.33},
        {"category_id": "b", "percentage": 33.33},
        {"category_id": "c", "percentage": 33.34},
    ]
    result = compute_split_amounts(splits, -100.0)
    assert [line["amount"] for line in result] == [33.33, 33.33, 33.34]
    assert round(sum(line["amount"] for line in result), 2) == 100.0


def test_split_rejects_mixed_modes():
    with pytest.raises(SplitConfigError):
        compute_split_amounts(
            [{"category_id": "a", "percentage": 50}, {"category_id": "b", "amount": 50}], 100
        )


def test_fixed_split_must_match_amount():
    splits = [{"category_id": "a", "amount": 30}, {"category_id": "b", "amount": 30}]
    with pytest.raises(SplitConfigError):
        compute_split_amounts(splits, -100)
    assert [line["amount"] for line in compute_split_amounts(splits, -60)] == [30, 30]


# ============================================================================
# Service
# ============================================================================


def add_rule(db, restaurant, **fields):
    rule = CategorizationRule(restaurant_id=restaurant.id, rule_name=fields.pop("rule_name", "rule"), **fields)
    db.add(rule)
    db.commit()
    return rule


def test_higher_priority_rule_wins(db, restaurant, account, bank_txn):
    add_rule(db, restaurant, description_pattern="sysco", category_id=account("9100").id, priority=1)
    best = add_rule(db, restaurant, description_pattern="sysco", category_id=account("5000").id, priority=10)

    match = RulesService(db).find_matching_rule(restaurant.id, "bank_transactions", bank_txn(-20, "SYSCO"))
    assert match.id == best.id


def test_inactive_rules_are_ignored(db, restaurant, account, bank_txn):
    add_rule(db, restaurant, description_pattern="sysco", category_id=account("5000").id, is_active=False)
    assert RulesService(db).find_matching_rule(restaurant.id, "bank_transactions", bank_txn(-20, "SYSCO")) is None


def test_create_rule_requires_a_condition(db, restaurant, account):
    from fastapi import HTTPException

    with pytest.raises(HTTPException) as exc:
        RulesService(db).create_rule(
            restaurant.id, RuleCreate(rule_name="empty", category_id=account("5000").id)
        )
    assert exc.value.status_code == 400


def test_apply_rules_to_bank_transactions(db, restaurant, account, bank_txn):
    rule = add_rule(db, restaurant, description_pattern="sysco", category_id=account("5000").id)
    bank_txn(-80, "SYSCO FOODS")
    bank_txn(-12, "NETFLIX")

    result = RulesService(db).apply_rules_to_bank_transactions(restaurant.id)

    assert result == {"applied_count": 1, "total_count": 1}
    db.refresh(rule)
    assert rule.apply_count == 1
    assert rule.last_applied_at is not None
    assert account("5000").current_balance == 80.0


def test_batch_limit_counts_matches_not_scanned_rows(db, restaurant, account, bank_txn):
    add_rule(db, restaurant, description_pattern="sysco", category_id=account("5000").id)
    old_sysco = bank_txn(-80, "SYSCO FOODS", on=date(2024, 1, 1))
    for day in (10, 11, 12):
        bank_txn(-4, "COFFEE", on=date(2024, 3, day))

    result = RulesService(db).apply_rules_to_bank_transactions(restaurant.id, batch_limit=3)

    assert result == {"applied_count": 1, "total_count": 1}
    db.refresh(old_sysco)
    assert old_sysco.is_categorized is True
    assert old_sysco.category_id == account("5000").id


def test_batch_limit_caps_applied_rows(db, restaurant, account, bank_txn):
    add_rule(db, restaurant, description_pattern="sysco", category_id=account("5000").id)
    for day in (1, 2, 3):
        bank_txn(-10, "SYSCO FOODS", on=date(2024, 3, day))

    service = RulesService(db)
    assert service.apply_rules_to_bank_transactions(restaurant.id, batch_limit=2) == {
        "applied_count": 2,
        "total_count": 2,
    }
    assert service.apply_rules_to_bank_transactions(restaurant.id, batch_limit=2) == {
        "applied_count": 1,
        "total_count": 1,
    }


def test_rule_application_notes_the_rule(db, restaurant, account, bank_txn):
    add_rule(db, restaurant, rule_name="Sysco deliveries", description_pattern="sysco", category_id=account("5000").id)
    transaction = bank_txn(-80, "SYSCO FOODS")

    RulesService(db).apply_rules_to_bank_transactions(restaurant.id)

    db.refresh(transaction)
    assert transaction.notes == "Auto-categorized by rule: Sysco deliveries"


def test_split_rule_splits_matching_transaction(db, restaurant, account, bank_txn):
    add_rule(
        db,
        restaurant,
        description_pattern="costco",
        is_split_rule=True,
        split_categories=[
            {"category_id": account("5000").id, "percentage": 75},
            {"category_id": account("5100").id, "percentage": 25},
        ],
    )
    transaction = bank_txn(-200, "COSTCO WHOLESALE")

    RulesService(db).apply_rules_to_bank_transactions(restaurant.id)

    db.refresh(transaction)
    assert transaction.is_split is True
    assert account("5000").current_balance == 150.0
    assert account("5100").current_balance == 50.0


def test_auto_apply_only_uses_auto_apply_rules(db, restaurant, account, bank_txn):
    add_rule(db, restaurant, description_pattern="rent", category_id=account("6100").id, auto_apply=False)
    transaction = bank_txn(-3000, "RENT MARCH")
    assert RulesService(db).auto_apply_to_bank_transaction(transaction) is None

    rule = add_rule(db, restaurant, description_pattern="rent", category_id=account("6100").id, auto_apply=True)
    assert RulesService(db).auto_apply_to_bank_transaction(transaction) == rule.id
    db.refresh(transaction)
    assert transaction.category_id == account("6100").id


def test_apply_rules_to_pos_sales(db, restaurant, account):
    add_rule(
        db,
        restaurant,
        applies_to="pos_sales",
        item_name_pattern="burger",
        category_id=account("4000").id,
    )
    for index, name in enumerate(["Cheeseburger", "IPA Pint"]):
        db.add(
            UnifiedSale(
                restaurant_id=restaurant.id,
                pos_system="square",
                external_order_id="order-1",
                external_item_id=f"item-{index}",
                item_name=name,
                quantity=1,
                total_price=12.0,
                sale_date=date(2024, 3, 15),
                item_type="sale",
            )
        )
    db.commit()

    result = RulesService(db).apply_rules_to_pos_sales(restaurant.id)
    assert result == {"applied_count": 1, "total_count": 1}


def pos_sale(db, restaurant, name, total_price, item_id="item-1"):
    sale = UnifiedSale(
        restaurant_id=restaurant.id,
        pos_system="square",
        external_order_id="order-1",
        external_item_id=item_id,
        item_name=name,
        quantity=1,
        total_price=total_price,
        sale_date=date(2024, 3, 15),
        item_type="sale",
    )
    db.add(sale)
    db.commit()
    return sale


def combo_split_rule(db, restaurant, account, **fields):
    return add_rule(
        db,
        restaurant,
        applies_to="pos_sales",
        item_name_pattern="combo",
        is_split_rule=True,
        split_categories=[
            {"category_id": account("4000").id, "percentage": 70, "description": "Combo food"},
            {"category_id": account("4010").id, "percentage": 30, "description": "Combo drink"},
        ],
        **fields,
    )


def test_split_rule_splits_pos_sale_into_children(db, restaurant, account):
    rule = combo_split_rule(db, restaurant, account)
    sale = pos_sale(db, restaurant, "Lunch Combo", 15.0)

    result = RulesService(db).apply_rules_to_pos_sales(restaurant.id)

    assert result == {"applied_count": 1, "total_count": 1}
    db.refresh(sale)
    assert sale.is_split is True
    assert sale.is_categorized is True
    assert sale.category_id is None

    children = (
        db.query(UnifiedSale).filter_by(parent_sale_id=sale.id).order_by(UnifiedSale.external_item_id).all()
    )
    assert [child.external_item_id for child in children] == ["item-1_split_1", "item-1_split_2"]
    assert [child.total_price for child in children] == [10.5, 4.5]
    assert [child.category_id for child in children] == [account("4000").id, account("4010").id]
    assert [child.item_name for child in children] == ["Combo food", "Combo drink"]
    assert all(child.is_categorized for child in children)

    db.refresh(rule)
    assert rule.apply_count == 1
    # children are already categorized and parents are done
    assert RulesService(db).apply_rules_to_pos_sales(restaurant.id) == {"applied_count": 0, "total_count": 0}


def test_auto_apply_splits_new_pos_sale(db, restaurant, account):
    rule = combo_split_rule(db, restaurant, account, auto_apply=True)
    sale = UnifiedSale(
        restaurant_id=restaurant.id,
        pos_system="toast",
        external_order_id="order-9",
        external_item_id="sel-9",
        item_name="Kids Combo",
        quantity=1,
        total_price=10.0,
        sale_date=date(2024, 3, 15),
        item_type="sale",
        is_categorized=False,
        is_split=False,
    )
    db.add(sale)

    assert RulesService(db).auto_apply_to_pos_sale(sale) == rule.id
    db.commit()

    assert sale.is_split is True
    amounts = sorted(child.total_price for child in db.query(UnifiedSale).filter_by(parent_sale_id=sale.id))
    assert amounts == [3.0, 7.0]


def test_create_rule_endpoint(client, restaurant, account, owner_headers):
    response = client.post(
        f"/rules/{restaurant.id}",
        json={
            "rule_name": "Sysco",
            "description_pattern": "sysco",
            "category_id": account("5000").id,
            "auto_apply": True,
        },
        headers=owner_headers,
    )
    assert response.status_code == 200
    assert response.json()["rule_name"] == "Sysco"

    listed = client.get(f"/rules/{restaurant.id}", headers=owner_headers)
    assert [rule["rule_name"] for rule in listed.json()] == ["Sysco"]


def test_create_rule_endpoint_rejects_bad_match_type(client, restaurant, account, owner_headers):
    response = client.post(
        f"/rules/{restaurant.id}",
        json={
            "rule_name": "Bad",
            "description_pattern": "x",
            "description_match_type": "fuzzy",
            "category_id": account("5000").id,
        },
        headers=owner_headers,
    )
    assert response.status_code == 422
