"""Rules service - Business logic for categorization rules"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import BankTransaction, CategorizationRule, ChartOfAccount
from ...models_pnl import UnifiedSale
from ..accounting.service import LedgerService
from .matching import (
    SplitConfigError,
    compute_split_amounts,
    has_any_pattern,
    rule_matches_bank_transaction,
    rule_matches_pos_sale,
    validate_split_categories,
)
from .repository import RulesRepository
from .schemas import RuleCreate, RuleUpdate

logger = logging.getLogger(__name__)

SOURCE_BANK = "bank_transactions"
SOURCE_POS = "pos_sales"
SCAN_PAGE_SIZE = 200


class RulesService:
    """Service layer for categorization rule business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = RulesRepository()
        self.ledger = LedgerService(db)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list_rules(self, restaurant_id: str) -> list[CategorizationRule]:
        return self.repo.list_rules(self.db, restaurant_id)

    def get_rule(self, restaurant_id: str, rule_id: str) -> CategorizationRule:
        rule = self.repo.get_rule(self.db, rule_id, restaurant_id)
        if not rule:
            raise HTTPException(status_code=404, detail="Rule not found")
        return rule

    def _validate(self, restaurant_id: str, fields: dict) -> None:
        if not has_any_pattern(fields.get("applies_to") or SOURCE_BANK, fields):
            raise HTTPException(status_code=400, detail="Rule must have at least one matching condition")

        if fields.get("is_split_rule"):
            try:
                validate_split_categories(fields.get("split_categories"))
            except SplitConfigError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
            category_ids = [split["category_id"] for split in fields["split_categories"]]
        else:
            if not fields.get("category_id"):
                raise HTTPException(status_code=400, detail="category_id is required for non-split rules")
            category_ids = [fields["category_id"]]

        found = (
            self.db.query(ChartOfAccount.id)
            .filter(ChartOfAccount.restaurant_id == restaurant_id, ChartOfAccount.id.in_(category_ids))
            .count()
        )
        if found != len(set(category_ids)):
            raise HTTPException(status_code=400, detail="Rule references an unknown category")

    def create_rule(self, restaurant_id: str, data: RuleCreate) -> CategorizationRule:
        fields = data.model_dump()
        self._validate(restaurant_id, fields)

        rule = CategorizationRule(restaurant_id=restaurant_id, **fields)
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"✅ Created rule '{rule.rule_name}' for restaurant {restaurant_id}")
        return rule

    def update_rule(self, restaurant_id: str, rule_id: str, data: RuleUpdate) -> CategorizationRule:
        rule = self.get_rule(restaurant_id, rule_id)
        updates = data.model_dump(exclude_unset=True)

        merged = {column.name: getattr(rule, column.name) for column in CategorizationRule.__table__.columns}
        merged.update(updates)
        self._validate(restaurant_id, merged)

        for key, value in updates.items():
            setattr(rule, key, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete_rule(self, restaurant_id: str, rule_id: str) -> None:
        rule = self.get_rule(restaurant_id, rule_id)
        self.db.delete(rule)
        self.db.commit()
        logger.info(f"🗑️ Deleted rule {rule_id}")

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def find_matching_rule(
        self,
        restaurant_id: str,
        source: str,
        record: Any,
        auto_apply_only: bool = False,
        rules: Optional[list[CategorizationRule]] = None,
    ) -> Optional[CategorizationRule]:
        """First active rule (priority DESC, created_at ASC) that matches the record"""
        matcher = rule_matches_bank_transaction if source == SOURCE_BANK else rule_matches_pos_sale
        if rules is None:
            rules = self.repo.active_rules_for(self.db, restaurant_id, source)
        for rule in rules:
            if auto_apply_only and not rule.auto_apply:
                continue
            if matcher(rule, record):
                return rule
        return None

    def _find_matches(
        self, restaurant_id: str, source: str, record_ids: list[str], loader, batch_limit: int
    ) -> list[tuple[CategorizationRule, Any]]:
        """
        Walk uncategorized records newest first, page by page, and pair each
        one with its rule until batch_limit matches are found.
        """
        rules = self.repo.active_rules_for(self.db, restaurant_id, source)
        matches = []
        if not rules:
            return matches

        for offset in range(0, len(record_ids), SCAN_PAGE_SIZE):
            page_ids = record_ids[offset : offset + SCAN_PAGE_SIZE]
            records = {record.id: record for record in loader(self.db, page_ids)}
            for record_id in page_ids:
                record = records.get(record_id)
                if record is None:
                    continue
                rule = self.find_matching_rule(restaurant_id, source, record, rules=rules)
                if rule:
                    matches.append((rule, record))
                    if len(matches) >= batch_limit:
                        return matches
        return matches

    def _record_application(self, rule: CategorizationRule) -> None:
        rule.apply_count = (rule.apply_count or 0) + 1
        rule.last_applied_at = datetime.utcnow()

    def _apply_rule_to_transaction(self, rule: CategorizationRule, transaction: BankTransaction) -> None:
        if rule.is_split_rule:
            splits = compute_split_amounts(rule.split_categories, transaction.amount)
            self.ledger.split_transaction(
                transaction.id, splits, user_id=None, rebuild_balances=False, commit=False
            )
        else:
            self.ledger.categorize_transaction(
                transaction.id, rule.category_id, user_id=None, rebuild_balances=False, commit=False
            )
        transaction.notes = f"Auto-categorized by rule: {rule.rule_name}"
        self._record_application(rule)

    def _split_pos_sale(self, rule: CategorizationRule, sale: UnifiedSale) -> None:
        """Replace a sale's category with one categorized child row per split"""
        total_price = sale.total_price or 0.0
        splits = compute_split_amounts(rule.split_categories, total_price)
        if sale.id is None:
            self.db.flush()

        for index, split in enumerate(splits, start=1):
            amount = split["amount"] if total_price >= 0 else -split["amount"]
            self.db.add(
                UnifiedSale(
                    restaurant_id=sale.restaurant_id,
                    pos_system=sale.pos_system,
                    external_order_id=sale.external_order_id,
                    external_item_id=f"{sale.external_item_id}_split_{index}",
                    item_name=split.get("description") or sale.item_name,
                    quantity=sale.quantity,
                    unit_price=None,
                    total_price=amount,
                    sale_date=sale.sale_date,
                    sale_time=sale.sale_time,
                    pos_category=sale.pos_category,
                    item_type=sale.item_type,
                    parent_sale_id=sale.id,
                    category_id=split["category_id"],
                    is_categorized=True,
                    is_split=False,
                )
            )
        sale.category_id = None
        sale.is_split = True
        sale.is_categorized = True
        self.db.flush()

    def _apply_rule_to_sale(self, rule: CategorizationRule, sale: UnifiedSale) -> None:
        if rule.is_split_rule:
            self._split_pos_sale(rule, sale)
        else:
            sale.category_id = rule.category_id
            sale.is_categorized = True
        self._record_application(rule)

    def apply_rules_to_bank_transactions(self, restaurant_id: str, batch_limit: int = 100) -> dict:
        """Categorize up to batch_limit uncategorized transactions that some rule matches"""
        record_ids = self.repo.uncategorized_bank_transaction_ids(self.db, restaurant_id)
        matches = self._find_matches(
            restaurant_id, SOURCE_BANK, record_ids, self.repo.bank_transactions_by_ids, batch_limit
        )
        applied = 0

        for rule, transaction in matches:
            try:
                self._apply_rule_to_transaction(rule, transaction)
                applied += 1
            except (HTTPException, SplitConfigError) as e:
                detail = e.detail if isinstance(e, HTTPException) else str(e)
                logger.warning(f"⚠️ Rule {rule.id} could not be applied to {transaction.id}: {detail}")

        if applied:
            self.ledger.rebuild_account_balances(restaurant_id)
        self.db.commit()

        logger.info(f"✅ Applied rules to {applied}/{len(matches)} matching bank transactions")
        return {"applied_count": applied, "total_count": len(matches)}

    def apply_rules_to_pos_sales(self, restaurant_id: str, batch_limit: int = 100) -> dict:
        """Categorize (or split) up to batch_limit uncategorized sales that some rule matches"""
        record_ids = self.repo.uncategorized_pos_sale_ids(self.db, restaurant_id)
        matches = self._find_matches(
            restaurant_id, SOURCE_POS, record_ids, self.repo.pos_sales_by_ids, batch_limit
        )
        applied = 0

        for rule, sale in matches:
            try:
                self._apply_rule_to_sale(rule, sale)
                applied += 1
            except SplitConfigError as e:
                logger.warning(f"⚠️ Rule {rule.id} could not be applied to sale {sale.id}: {e}")

        self.db.commit()
        logger.info(f"✅ Applied rules to {applied}/{len(matches)} matching POS sales")
        return {"applied_count": applied, "total_count": len(matches)}

    # ------------------------------------------------------------------
    # Single-record hooks (auto_apply rules only)
    # ------------------------------------------------------------------

    def auto_apply_to_bank_transaction(self, transaction: BankTransaction) -> Optional[str]:
        """Categorize a freshly inserted transaction; returns the rule id when applied"""
        if transaction.is_categorized or transaction.is_transfer or transaction.status == "excluded":
            return None
        rule = self.find_matching_rule(
            transaction.restaurant_id, SOURCE_BANK, transaction, auto_apply_only=True
        )
        if not rule:
            return None
        try:
            self._apply_rule_to_transaction(rule, transaction)
        except (HTTPException, SplitConfigError) as e:
            detail = e.detail if isinstance(e, HTTPException) else str(e)
            logger.warning(f"⚠️ Auto-apply rule {rule.id} failed for {transaction.id}: {detail}")
            return None
        self.ledger.rebuild_account_balances(transaction.restaurant_id)
        self.db.commit()
        return rule.id

    def auto_apply_to_pos_sale(self, sale: UnifiedSale) -> Optional[str]:
        """Categorize a new POS sale row in the caller's session (no commit)"""
        if sale.is_categorized or sale.item_type != "sale" or sale.parent_sale_id:
            return None
        rule = self.find_matching_rule(sale.restaurant_id, SOURCE_POS, sale, auto_apply_only=True)
        if not rule:
            return None
        try:
            self._apply_rule_to_sale(rule, sale)
        except SplitConfigError as e:
            logger.warning(f"⚠️ Auto-apply rule {rule.id} failed for sale {sale.external_item_id}: {e}")
            return None
        return rule.id
