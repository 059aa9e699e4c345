"""Accounting repository - Database operations for the ledger"""

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import (
    BankTransaction,
    ChartOfAccount,
    FiscalPeriod,
    JournalEntry,
    JournalEntryLine,
)


class AccountingRepository:
    """Repository for chart of accounts, journal entries and bank transactions"""

    @staticmethod
    def get_transaction(db: Session, transaction_id: str) -> Optional[BankTransaction]:
        return db.query(BankTransaction).filter(BankTransaction.id == transaction_id).first()

    @staticmethod
    def list_transactions(
        db: Session,
        restaurant_id: str,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BankTransaction]:
        query = db.query(BankTransaction).filter(BankTransaction.restaurant_id == restaurant_id)
        if status:
            query = query.filter(BankTransaction.status == status)
        return (
            query.order_by(BankTransaction.transaction_date.desc(), BankTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_account(db: Session, account_id: str) -> Optional[ChartOfAccount]:
        return db.query(ChartOfAccount).filter(ChartOfAccount.id == account_id).first()

    @staticmethod
    def get_account_by_code(db: Session, restaurant_id: str, code: str) -> Optional[ChartOfAccount]:
        return (
            db.query(ChartOfAccount)
            .filter(ChartOfAccount.restaurant_id == restaurant_id, ChartOfAccount.account_code == code)
            .first()
        )

    @staticmethod
    def list_accounts(
        db: Session, restaurant_id: str, active_only: bool = True
    ) -> list[ChartOfAccount]:
        query = db.query(ChartOfAccount).filter(ChartOfAccount.restaurant_id == restaurant_id)
        if active_only:
            query = query.filter(ChartOfAccount.is_active.is_(True))
        return query.order_by(ChartOfAccount.account_code).all()

    @staticmethod
    def get_closed_period(db: Session, restaurant_id: str, on: date) -> Optional[FiscalPeriod]:
        return (
            db.query(FiscalPeriod)
            .filter(
                FiscalPeriod.restaurant_id == restaurant_id,
                FiscalPeriod.is_closed.is_(True),
                FiscalPeriod.period_start <= on,
                FiscalPeriod.period_end >= on,
            )
            .first()
        )

    @staticmethod
    def get_fiscal_period(db: Session, period_id: str) -> Optional[FiscalPeriod]:
        return db.query(FiscalPeriod).filter(FiscalPeriod.id == period_id).first()

    @staticmethod
    def get_entries_for_reference(
        db: Session, restaurant_id: str, reference_type: str, reference_id: str
    ) -> list[JournalEntry]:
        return (
            db.query(JournalEntry)
            .filter(
                JournalEntry.restaurant_id == restaurant_id,
                JournalEntry.reference_type == reference_type,
                JournalEntry.reference_id == reference_id,
            )
            .all()
        )

    @staticmethod
    def create_journal_entry(
        db: Session,
        restaurant_id: str,
        entry_number: str,
        entry_date: date,
        description: str,
        reference_type: str,
        reference_id: str,
        lines: list[dict],
        created_by: Optional[str] = None,
    ) -> JournalEntry:
        """
        Insert a journal entry with its lines. Each line is a dict with
        account_id, debit, credit and an optional description.
        """
        total_debit = round(sum(line.get("debit", 0.0) for line in lines), 2)
        total_credit = round(sum(line.get("credit", 0.0) for line in lines), 2)
        if abs(total_debit - total_credit) > 0.005:
            raise ValueError(f"Unbalanced journal entry: debits {total_debit} != credits {total_credit}")

        entry = JournalEntry(
            restaurant_id=restaurant_id,
            entry_number=entry_number,
            entry_date=entry_date,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            total_debit=total_debit,
            total_credit=total_credit,
            created_by=created_by,
        )
        for line in lines:
            entry.lines.append(
                JournalEntryLine(
                    account_id=line["account_id"],
                    debit_amount=round(line.get("debit", 0.0), 2),
                    credit_amount=round(line.get("credit", 0.0), 2),
                    description=line.get("description"),
                )
            )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def line_totals_by_account(db: Session, restaurant_id: str) -> dict[str, tuple[float, float]]:
        """Sum of debits and credits per account for one restaurant"""
        rows = (
            db.query(
                JournalEntryLine.account_id,
                func.coalesce(func.sum(JournalEntryLine.debit_amount), 0.0),
                func.coalesce(func.sum(JournalEntryLine.credit_amount), 0.0),
            )
            .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
            .filter(JournalEntry.restaurant_id == restaurant_id)
            .group_by(JournalEntryLine.account_id)
            .all()
        )
        return {account_id: (float(debits), float(credits)) for account_id, debits, credits in rows}
