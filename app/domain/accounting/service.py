"""Ledger service - categorization, reclassification, transfers and balances"""

import logging
import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import FINANCE_ROLES, get_user_role
from ...models import (
    BankTransaction,
    BankTransactionSplit,
    ChartOfAccount,
    FiscalPeriod,
    TransactionReclassification,
)
from .repository import AccountingRepository

logger = logging.getLogger(__name__)

CASH_ACCOUNT_CODE = "1000"
UNCATEGORIZED_ACCOUNT_CODES = ("9100", "9200")
DEBIT_NORMAL_TYPES = {"asset", "expense", "cogs"}

# (code, name, type, subtype)
DEFAULT_CHART_OF_ACCOUNTS = [
    ("1000", "Cash", "asset", "cash"),
    ("1010", "Checking Account", "asset", "bank"),
    ("1200", "Inventory", "asset", "inventory"),
    ("2000", "Accounts Payable", "liability", "accounts_payable"),
    ("2100", "Sales Tax Payable", "liability", "sales_tax"),
    ("2150", "Tips Payable", "liability", "tips_payable"),
    ("3000", "Owner's Equity", "equity", "owners_equity"),
    ("4000", "Sales – Food", "revenue", "food_sales"),
    ("4010", "Sales – Beverages", "revenue", "beverage_sales"),
    ("4020", "Sales – Alcohol", "revenue", "alcohol_sales"),
    ("4900", "Discounts Given", "revenue", "discounts"),
    ("5000", "Food Cost", "cogs", "food_cost"),
    ("5100", "Beverage Cost", "cogs", "beverage_cost"),
    ("6000", "Payroll Expense", "expense", "payroll"),
    ("6100", "Rent", "expense", "rent"),
    ("6200", "Utilities", "expense", "utilities"),
    ("9100", "Uncategorized Expense", "expense", "other_expenses"),
    ("9200", "Uncategorized Income", "revenue", "other_income"),
]


def normal_balance_for(account_type: str) -> str:
    return "debit" if account_type in DEBIT_NORMAL_TYPES else "credit"


def entry_suffix() -> str:
    """Unique tail for journal entry numbers"""
    return f"{datetime.utcnow():%Y%m%d%H%M%S%f}-{uuid.uuid4().hex[:6]}"


class LedgerService:
    """Double-entry bookkeeping on top of bank transactions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AccountingRepository()

    # ------------------------------------------------------------------
    # Lookups and guards
    # ------------------------------------------------------------------

    def get_transaction_or_404(self, transaction_id: str) -> BankTransaction:
        transaction = self.repo.get_transaction(self.db, transaction_id)
        if not transaction:
            raise HTTPException(status_code=404, detail="Transaction not found")
        return transaction

    def ensure_access(self, restaurant_id: str, user_id: Optional[str]) -> None:
        """System callers pass user_id=None and skip the role check"""
        if user_id is None:
            return
        role = get_user_role(self.db, user_id, restaurant_id)
        if role not in FINANCE_ROLES:
            raise HTTPException(status_code=403, detail="Access denied")

    def _get_active_category(self, restaurant_id: str, category_id: str) -> ChartOfAccount:
        category = self.repo.get_account(self.db, category_id)
        if not category or category.restaurant_id != restaurant_id or not category.is_active:
            raise HTTPException(status_code=400, detail="Invalid or inactive category")
        return category

    def _ensure_period_open(self, restaurant_id: str, on: date) -> None:
        if self.repo.get_closed_period(self.db, restaurant_id, on):
            raise HTTPException(
                status_code=400, detail=f"Cannot post to a closed fiscal period ({on.isoformat()})"
            )

    def _get_cash_account(self, restaurant_id: str) -> ChartOfAccount:
        cash = self.repo.get_account_by_code(self.db, restaurant_id, CASH_ACCOUNT_CODE)
        if not cash:
            raise HTTPException(
                status_code=400, detail=f"Cash account ({CASH_ACCOUNT_CODE}) not found in chart of accounts"
            )
        return cash

    def _delete_entries(self, restaurant_id: str, reference_type: str, reference_id: str) -> Optional[str]:
        """Remove existing entries for a reference; returns the last removed id"""
        removed_id = None
        for entry in self.repo.get_entries_for_reference(
            self.db, restaurant_id, reference_type, reference_id
        ):
            removed_id = entry.id
            self.db.delete(entry)
        self.db.flush()
        return removed_id

    def _clear_split(self, transaction: BankTransaction) -> None:
        """Drop a previous split: its journal entry and its split rows"""
        self._delete_entries(transaction.restaurant_id, "bank_split", transaction.id)
        transaction.splits.clear()
        transaction.is_split = False
        self.db.flush()

    # ------------------------------------------------------------------
    # Categorization
    # ------------------------------------------------------------------

    def categorize_transaction(
        self,
        transaction_id: str,
        category_id: str,
        user_id: Optional[str] = None,
        description: Optional[str] = None,
        normalized_payee: Optional[str] = None,
        supplier_id: Optional[str] = None,
        rebuild_balances: bool = True,
        commit: bool = True,
    ) -> dict:
        """
        Categorize (or reclassify) a bank transaction and post the matching
        journal entry against cash.
        """
        transaction = self.get_transaction_or_404(transaction_id)
        restaurant_id = transaction.restaurant_id
        self.ensure_access(restaurant_id, user_id)

        is_reclassification = bool(transaction.is_categorized and transaction.category_id)
        if is_reclassification and transaction.category_id == category_id:
            logger.info(f"ℹ️ Transaction {transaction_id} already in category {category_id}")
            return {
                "success": True,
                "journal_entry_id": None,
                "is_reclassification": False,
                "transaction_id": transaction_id,
            }

        if not is_reclassification and transaction.is_reconciled:
            raise HTTPException(status_code=400, detail="Cannot categorize a reconciled transaction")

        category = self._get_active_category(restaurant_id, category_id)
        self._ensure_period_open(restaurant_id, transaction.transaction_date)
        cash = self._get_cash_account(restaurant_id)
        amount = round(abs(transaction.amount), 2)

        if is_reclassification:
            old_category_id = transaction.category_id
            original_entries = self.repo.get_entries_for_reference(
                self.db, restaurant_id, "bank_transaction", transaction.id
            )
            if transaction.amount < 0:
                lines = [
                    {"account_id": category.id, "debit": amount, "description": "Reclassification"},
                    {"account_id": old_category_id, "credit": amount, "description": "Reclassification"},
                ]
            else:
                lines = [
                    {"account_id": old_category_id, "debit": amount, "description": "Reclassification"},
                    {"account_id": category.id, "credit": amount, "description": "Reclassification"},
                ]
            entry = self.repo.create_journal_entry(
                self.db,
                restaurant_id=restaurant_id,
                entry_number=f"RECLASS-{transaction.id}-{entry_suffix()}",
                entry_date=transaction.transaction_date,
                description=description or f"Reclassify: {transaction.description or ''}".strip(),
                reference_type="reclassification",
                reference_id=str(uuid.uuid4()),
                lines=lines,
                created_by=user_id,
            )
            self.db.add(
                TransactionReclassification(
                    restaurant_id=restaurant_id,
                    transaction_id=transaction.id,
                    old_category_id=old_category_id,
                    new_category_id=category.id,
                    original_journal_entry_id=original_entries[0].id if original_entries else None,
                    reclass_journal_entry_id=entry.id,
                    reason=description,
                    reclassified_by=user_id,
                )
            )
        else:
            self._delete_entries(restaurant_id, "bank_transaction", transaction.id)
            if transaction.is_split:
                self._clear_split(transaction)
            if transaction.amount < 0:
                lines = [
                    {"account_id": category.id, "debit": amount, "description": description},
                    {"account_id": cash.id, "credit": amount, "description": "Cash payment"},
                ]
            else:
                lines = [
                    {"account_id": cash.id, "debit": amount, "description": "Cash received"},
                    {"account_id": category.id, "credit": amount, "description": description},
                ]
            entry = self.repo.create_journal_entry(
                self.db,
                restaurant_id=restaurant_id,
                entry_number=f"BANK-{transaction.id}-{entry_suffix()}",
                entry_date=transaction.transaction_date,
                description=description or transaction.description or "Bank transaction",
                reference_type="bank_transaction",
                reference_id=transaction.id,
                lines=lines,
                created_by=user_id,
            )

        transaction.category_id = category.id
        transaction.is_categorized = True
        transaction.status = "categorized"
        transaction.suggested_category_id = None
        if description is not None:
            transaction.notes = description
        if normalized_payee is not None:
            transaction.normalized_payee = normalized_payee
        if supplier_id is not None:
            transaction.supplier_id = supplier_id
        self.db.flush()

        if rebuild_balances:
            self.rebuild_account_balances(restaurant_id)
        if commit:
            self.db.commit()

        logger.info(
            f"✅ Transaction {transaction.id} {'reclassified' if is_reclassification else 'categorized'} "
            f"to {category.account_code}"
        )
        return {
            "success": True,
            "journal_entry_id": entry.id,
            "is_reclassification": is_reclassification,
            "transaction_id": transaction.id,
        }

    def exclude_transaction(self, transaction_id: str, user_id: Optional[str], reason: str) -> dict:
        transaction = self.get_transaction_or_404(transaction_id)
        self.ensure_access(transaction.restaurant_id, user_id)

        if transaction.is_reconciled:
            raise HTTPException(status_code=400, detail="Cannot exclude a reconciled transaction")
        if transaction.is_categorized:
            raise HTTPException(
                status_code=400, detail="Cannot exclude a categorized transaction. Uncategorize it first."
            )

        transaction.status = "excluded"
        transaction.excluded_reason = reason
        self.db.commit()
        logger.info(f"✅ Transaction {transaction_id} excluded: {reason}")
        return {"success": True, "transaction_id": transaction_id}

    def mark_as_transfer(
        self, transaction_id_1: str, transaction_id_2: str, user_id: Optional[str]
    ) -> dict:
        first = self.get_transaction_or_404(transaction_id_1)
        second = self.get_transaction_or_404(transaction_id_2)
        if first.restaurant_id != second.restaurant_id:
            raise HTTPException(status_code=400, detail="Transactions belong to different restaurants")
        restaurant_id = first.restaurant_id
        self.ensure_access(restaurant_id, user_id)

        if abs(first.amount + second.amount) > 0.01:
            raise HTTPException(
                status_code=400, detail="Transfer amounts must be equal and opposite"
            )

        self._ensure_period_open(restaurant_id, first.transaction_date)
        cash = self._get_cash_account(restaurant_id)
        amount = round(abs(first.amount), 2)

        entry = self.repo.create_journal_entry(
            self.db,
            restaurant_id=restaurant_id,
            entry_number=f"TRANSFER-{first.id}-{entry_suffix()}",
            entry_date=first.transaction_date,
            description="Transfer between accounts",
            reference_type="bank_transfer",
            reference_id=first.id,
            lines=[
                {"account_id": cash.id, "debit": amount, "description": "Transfer in"},
                {"account_id": cash.id, "credit": amount, "description": "Transfer out"},
            ],
            created_by=user_id,
        )

        for transaction, pair in ((first, second), (second, first)):
            transaction.is_transfer = True
            transaction.transfer_pair_id = pair.id
            transaction.status = "categorized"
            transaction.is_categorized = True

        self.db.flush()
        self.rebuild_account_balances(restaurant_id)
        self.db.commit()
        logger.info(f"✅ Transactions {first.id} and {second.id} marked as transfer")
        return {"success": True, "journal_entry_id": entry.id}

    def split_transaction(
        self,
        transaction_id: str,
        splits: list[dict],
        user_id: Optional[str] = None,
        rebuild_balances: bool = True,
        commit: bool = True,
    ) -> dict:
        """
        Split a bank transaction across categories. `splits` is a list of
        dicts with category_id, amount (positive) and optional description.
        """
        transaction = self.get_transaction_or_404(transaction_id)
        restaurant_id = transaction.restaurant_id
        self.ensure_access(restaurant_id, user_id)

        if transaction.is_reconciled:
            raise HTTPException(status_code=400, detail="Cannot split a reconciled transaction")
        if len(splits) < 2:
            raise HTTPException(status_code=400, detail="A split needs at least two categories")

        total = round(abs(transaction.amount), 2)
        amounts = [round(split["amount"], 2) for split in splits]
        if any(amount <= 0 for amount in amounts):
            raise HTTPException(status_code=400, detail="Split amounts must be positive")
        split_total = round(sum(amounts), 2)
        if abs(split_total - total) > 0.01:
            raise HTTPException(
                status_code=400,
                detail=f"Split amounts ({split_total:.2f}) must equal transaction amount ({total:.2f})",
            )
        # a cent of rounding goes on the last line so the entry balances against cash
        amounts[-1] = round(amounts[-1] + total - split_total, 2)

        categories = [self._get_active_category(restaurant_id, split["category_id"]) for split in splits]
        self._ensure_period_open(restaurant_id, transaction.transaction_date)
        cash = self._get_cash_account(restaurant_id)

        self._delete_entries(restaurant_id, "bank_transaction", transaction.id)
        self._clear_split(transaction)

        lines = []
        for split, category, split_amount in zip(splits, categories, amounts):
            if transaction.amount < 0:
                lines.append({"account_id": category.id, "debit": split_amount, "description": split.get("description")})
            else:
                lines.append({"account_id": category.id, "credit": split_amount, "description": split.get("description")})
            transaction.splits.append(
                BankTransactionSplit(
                    category_id=category.id, amount=split_amount, description=split.get("description")
                )
            )
        if transaction.amount < 0:
            lines.append({"account_id": cash.id, "credit": total, "description": "Cash payment"})
        else:
            lines.append({"account_id": cash.id, "debit": total, "description": "Cash received"})

        try:
            entry = self.repo.create_journal_entry(
                self.db,
                restaurant_id=restaurant_id,
                entry_number=f"SPLIT-{transaction.id}-{entry_suffix()}",
                entry_date=transaction.transaction_date,
                description=transaction.description or "Split transaction",
                reference_type="bank_split",
                reference_id=transaction.id,
                lines=lines,
                created_by=user_id,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        transaction.is_split = True
        transaction.is_categorized = True
        transaction.category_id = None
        transaction.status = "categorized"
        self.db.flush()

        if rebuild_balances:
            self.rebuild_account_balances(restaurant_id)
        if commit:
            self.db.commit()

        logger.info(f"✅ Transaction {transaction.id} split into {len(splits)} categories")
        return {"success": True, "journal_entry_id": entry.id, "transaction_id": transaction.id}

    # ------------------------------------------------------------------
    # Balances and periods
    # ------------------------------------------------------------------

    def rebuild_account_balances(self, restaurant_id: str) -> int:
        """Recompute current_balance for every account from journal lines"""
        totals = self.repo.line_totals_by_account(self.db, restaurant_id)
        accounts = self.repo.list_accounts(self.db, restaurant_id, active_only=False)
        for account in accounts:
            debits, credits = totals.get(account.id, (0.0, 0.0))
            if account.account_type in DEBIT_NORMAL_TYPES:
                account.current_balance = round(debits - credits, 2)
            else:
                account.current_balance = round(credits - debits, 2)
        self.db.flush()
        logger.debug(f"📊 Rebuilt balances for {len(accounts)} accounts ({restaurant_id})")
        return len(accounts)

    def create_fiscal_period(self, restaurant_id: str, period_start: date, period_end: date) -> FiscalPeriod:
        period = FiscalPeriod(restaurant_id=restaurant_id, period_start=period_start, period_end=period_end)
        self.db.add(period)
        self.db.commit()
        self.db.refresh(period)
        return period

    def close_fiscal_period(self, period_id: str, user_id: str) -> FiscalPeriod:
        period = self.repo.get_fiscal_period(self.db, period_id)
        if not period:
            raise HTTPException(status_code=404, detail="Fiscal period not found")
        self.ensure_access(period.restaurant_id, user_id)
        period.is_closed = True
        period.closed_at = datetime.utcnow()
        period.closed_by = user_id
        self.db.commit()
        self.db.refresh(period)
        logger.info(f"🔒 Fiscal period {period.period_start} - {period.period_end} closed")
        return period

    def seed_default_chart(self, restaurant_id: str) -> int:
        """Insert the default chart of accounts for a new restaurant"""
        for code, name, account_type, subtype in DEFAULT_CHART_OF_ACCOUNTS:
            self.db.add(
                ChartOfAccount(
                    restaurant_id=restaurant_id,
                    account_code=code,
                    account_name=name,
                    account_type=account_type,
                    account_subtype=subtype,
                    normal_balance=normal_balance_for(account_type),
                )
            )
        self.db.flush()
        return len(DEFAULT_CHART_OF_ACCOUNTS)
