"""Rules repository - Database operations for categorization rules"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import BankTransaction, CategorizationRule
from ...models_pnl import UnifiedSale


class RulesRepository:
    """Repository for categorization rules and the records they apply to"""

    @staticmethod
    def get_rule(db: Session, rule_id: str, restaurant_id: str) -> Optional[CategorizationRule]:
        return (
            db.query(CategorizationRule)
            .filter(CategorizationRule.id == rule_id, CategorizationRule.restaurant_id == restaurant_id)
            .first()
        )

    @staticmethod
    def list_rules(db: Session, restaurant_id: str) -> list[CategorizationRule]:
        return (
            db.query(CategorizationRule)
            .filter(CategorizationRule.restaurant_id == restaurant_id)
            .order_by(CategorizationRule.priority.desc(), CategorizationRule.created_at.asc())
            .all()
        )

    @staticmethod
    def active_rules_for(db: Session, restaurant_id: str, source: str) -> list[CategorizationRule]:
        """Active rules for 'bank_transactions' or 'pos_sales', best first"""
        return (
            db.query(CategorizationRule)
            .filter(
                CategorizationRule.restaurant_id == restaurant_id,
                CategorizationRule.is_active.is_(True),
                CategorizationRule.applies_to.in_([source, "both"]),
            )
            .order_by(CategorizationRule.priority.desc(), CategorizationRule.created_at.asc())
            .all()
        )

    @staticmethod
    def uncategorized_bank_transaction_ids(db: Session, restaurant_id: str) -> list[str]:
        """Ids of transactions rules may categorize, newest first"""
        rows = (
            db.query(BankTransaction.id)
            .filter(
                BankTransaction.restaurant_id == restaurant_id,
                BankTransaction.is_categorized.is_(False),
                BankTransaction.is_transfer.is_(False),
                BankTransaction.status != "excluded",
            )
            .order_by(BankTransaction.transaction_date.desc(), BankTransaction.created_at.desc())
            .all()
        )
        return [row.id for row in rows]

    @staticmethod
    def bank_transactions_by_ids(db: Session, ids: list[str]) -> list[BankTransaction]:
        return db.query(BankTransaction).filter(BankTransaction.id.in_(ids)).all()

    @staticmethod
    def uncategorized_pos_sale_ids(db: Session, restaurant_id: str) -> list[str]:
        """Ids of top-level sale lines rules may categorize, newest first"""
        rows = (
            db.query(UnifiedSale.id)
            .filter(
                UnifiedSale.restaurant_id == restaurant_id,
                UnifiedSale.is_categorized.is_(False),
                UnifiedSale.item_type == "sale",
                UnifiedSale.parent_sale_id.is_(None),
            )
            .order_by(UnifiedSale.sale_date.desc(), UnifiedSale.created_at.desc())
            .all()
        )
        return [row.id for row in rows]

    @staticmethod
    def pos_sales_by_ids(db: Session, ids: list[str]) -> list[UnifiedSale]:
        return db.query(UnifiedSale).filter(UnifiedSale.id.in_(ids)).all()
