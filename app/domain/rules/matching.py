"""
Rule matching and split computation.

Pure functions over rule and record objects; anything with the matching
attributes works (ORM rows, SimpleNamespace in tests).
"""

import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

MATCH_TYPES = {"exact", "contains", "starts_with", "ends_with", "regex"}
APPLIES_TO = {"bank_transactions", "pos_sales", "both"}
TRANSACTION_TYPES = {"debit", "credit", "any"}


class SplitConfigError(ValueError):
    """Raised when a split configuration or computation is invalid"""


def matches_pattern(value: Optional[str], pattern: Optional[str], match_type: Optional[str]) -> bool:
    """Case-insensitive string match (regex keeps its own flags)"""
    if not pattern:
        return True
    if value is None:
        return False

    match_type = match_type or "contains"
    if match_type == "regex":
        try:
            return re.search(pattern, value) is not None
        except re.error:
            logger.warning(f"⚠️ Invalid regex in rule pattern: {pattern!r}")
            return False

    value_l = value.lower()
    pattern_l = pattern.lower()
    if match_type == "exact":
        return value_l == pattern_l
    if match_type == "starts_with":
        return value_l.startswith(pattern_l)
    if match_type == "ends_with":
        return value_l.endswith(pattern_l)
    return pattern_l in value_l


def _amount_in_range(rule: Any, amount: Optional[float]) -> bool:
    if rule.amount_min is None and rule.amount_max is None:
        return True
    if amount is None:
        return False
    magnitude = abs(amount)
    if rule.amount_min is not None and magnitude < rule.amount_min:
        return False
    if rule.amount_max is not None and magnitude > rule.amount_max:
        return False
    return True


def rule_matches_bank_transaction(rule: Any, transaction: Any) -> bool:
    if rule.description_pattern and not matches_pattern(
        transaction.description or "", rule.description_pattern, rule.description_match_type
    ):
        return False

    if not _amount_in_range(rule, transaction.amount):
        return False

    if rule.supplier_id and rule.supplier_id != transaction.supplier_id:
        return False

    transaction_type = rule.transaction_type or "any"
    if transaction_type == "debit" and not transaction.amount < 0:
        return False
    if transaction_type == "credit" and not transaction.amount > 0:
        return False

    return True


def rule_matches_pos_sale(rule: Any, sale: Any) -> bool:
    if rule.item_name_pattern and not matches_pattern(
        sale.item_name, rule.item_name_pattern, rule.item_name_match_type
    ):
        return False

    if rule.pos_category:
        if not sale.pos_category or sale.pos_category.lower() != rule.pos_category.lower():
            return False

    return _amount_in_range(rule, sale.total_price)


def has_any_pattern(applies_to: str, fields: dict) -> bool:
    """A rule needs at least one condition for the sources it applies to"""
    bank = any(
        fields.get(key) not in (None, "")
        for key in ("description_pattern", "amount_min", "amount_max", "supplier_id")
    ) or fields.get("transaction_type") in ("debit", "credit")
    pos = any(
        fields.get(key) not in (None, "")
        for key in ("item_name_pattern", "pos_category", "amount_min", "amount_max")
    )
    if applies_to == "bank_transactions":
        return bank
    if applies_to == "pos_sales":
        return pos
    return bank or pos


def validate_split_categories(splits: Optional[list]) -> None:
    if not splits or len(splits) < 2:
        raise SplitConfigError("Split rules need at least 2 categories")

    uses_percentage = False
    uses_amount = False
    for split in splits:
        if not split.get("category_id"):
            raise SplitConfigError("Every split needs a category_id")
        has_pct = split.get("percentage") is not None
        has_amt = split.get("amount") is not None
        if has_pct == has_amt:
            raise SplitConfigError("Every split needs exactly one of percentage or amount")
        uses_percentage = uses_percentage or has_pct
        uses_amount = uses_amount or has_amt

    if uses_percentage and uses_amount:
        raise SplitConfigError("Cannot mix percentage and amount splits")

    if uses_percentage:
        if any(split["percentage"] <= 0 for split in splits):
            raise SplitConfigError("Split percentages must be positive")
        total = sum(split["percentage"] for split in splits)
        if abs(total - 100) > 0.01:
            raise SplitConfigError(f"Split percentages must sum to 100 (got {total})")
    else:
        if any(split["amount"] <= 0 for split in splits):
            raise SplitConfigError("Split amounts must be positive")


def compute_split_amounts(splits: list, amount: float) -> list[dict]:
    """
    Turn a split configuration into concrete amounts for one transaction.

    Percentages are rounded to cents; a rounding remainder of up to 0.02 goes
    on the last split. Fixed amounts must add up to the transaction amount.
    """
    validate_split_categories(splits)
    total = round(abs(amount), 2)

    if splits[0].get("percentage") is not None:
        result = [
            {
                "category_id": split["category_id"],
                "amount": round(total * split["percentage"] / 100, 2),
                "description": split.get("description"),
            }
            for split in splits
        ]
        remainder = round(total - sum(item["amount"] for item in result), 2)
        if abs(remainder) > 0.02:
            raise SplitConfigError(f"Split rounding remainder too large: {remainder}")
        result[-1]["amount"] = round(result[-1]["amount"] + remainder, 2)
        return result

    split_total = round(sum(split["amount"] for split in splits), 2)
    if abs(split_total - total) > 0.01:
        raise SplitConfigError(
            f"Split amounts ({split_total:.2f}) do not equal transaction amount ({total:.2f})"
        )
    return [
        {
            "category_id": split["category_id"],
            "amount": round(split["amount"], 2),
            "description": split.get("description"),
        }
        for split in splits
    ]
