"""Pending outflow service - issued payments, bank matching and staleness"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import BankTransaction, PendingOutflow
from ..accounting.service import LedgerService
from .schemas import PendingOutflowCreate, PendingOutflowUpdate

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("pending", "stale_30", "stale_60", "stale_90")

# (minimum age in days, status), oldest first
STALE_THRESHOLDS = [(90, "stale_90"), (60, "stale_60"), (30, "stale_30")]

MATCH_LOOKBACK_DAYS = 3
AMOUNT_TOLERANCE_ABS = 1.00
AMOUNT_TOLERANCE_PCT = 0.05


def _tokens(text: Optional[str]) -> set[str]:
    return {token for token in re.split(r"[^a-z0-9]+", (text or "").lower()) if len(token) >= 3}


def payee_similarity(vendor_name: str, payee: Optional[str]) -> Optional[str]:
    """'high' when one name contains the other, 'medium' on a shared word"""
    if not payee or not vendor_name:
        return None
    vendor_l = vendor_name.lower().strip()
    payee_l = payee.lower().strip()
    if vendor_l in payee_l or payee_l in vendor_l:
        return "high"
    if _tokens(vendor_l) & _tokens(payee_l):
        return "medium"
    return None


def score_match(outflow: PendingOutflow, transaction: BankTransaction) -> Optional[dict]:
    """Score a bank transaction as the clearing of an outflow; None when out of tolerance"""
    amount_delta = round(abs(abs(transaction.amount) - outflow.amount), 2)
    if amount_delta > max(AMOUNT_TOLERANCE_ABS, outflow.amount * AMOUNT_TOLERANCE_PCT):
        return None

    date_delta = abs((transaction.transaction_date - outflow.issue_date).days)
    payee = transaction.normalized_payee or transaction.merchant_name or transaction.description
    similarity = payee_similarity(outflow.vendor_name, payee)

    score = 100.0
    score -= min(40.0, 40.0 * amount_delta / outflow.amount) if outflow.amount else 0.0
    score -= min(30, date_delta)
    if similarity == "high":
        score += 15
    elif similarity == "medium":
        score += 5
    score = max(0.0, min(100.0, score))

    return {
        "pending_outflow_id": outflow.id,
        "bank_transaction_id": transaction.id,
        "score": round(score, 1),
        "amount_delta": amount_delta,
        "date_delta_days": date_delta,
        "payee_similarity": similarity,
    }


def stale_status_for(outflow: PendingOutflow, today: date) -> str:
    age = (today - outflow.issue_date).days
    for min_age, status in STALE_THRESHOLDS:
        if age >= min_age:
            return status
    return "pending"


class PendingOutflowService:
    """Service layer for pending outflows"""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, restaurant_id: str, outflow_id: str) -> PendingOutflow:
        outflow = (
            self.db.query(PendingOutflow)
            .filter(PendingOutflow.id == outflow_id, PendingOutflow.restaurant_id == restaurant_id)
            .first()
        )
        if not outflow:
            raise HTTPException(status_code=404, detail="Pending outflow not found")
        return outflow

    def _get_open(self, restaurant_id: str, outflow_id: str) -> PendingOutflow:
        outflow = self._get(restaurant_id, outflow_id)
        if outflow.status not in OPEN_STATUSES:
            raise HTTPException(status_code=400, detail=f"Pending outflow is already {outflow.status}")
        return outflow

    def list_outflows(self, restaurant_id: str, status: Optional[str] = None) -> list[PendingOutflow]:
        query = self.db.query(PendingOutflow).filter(PendingOutflow.restaurant_id == restaurant_id)
        if status == "open":
            query = query.filter(PendingOutflow.status.in_(OPEN_STATUSES))
        elif status:
            query = query.filter(PendingOutflow.status == status)
        return query.order_by(PendingOutflow.issue_date.desc()).all()

    def create(self, restaurant_id: str, data: PendingOutflowCreate, user_id: Optional[str]) -> PendingOutflow:
        outflow = PendingOutflow(restaurant_id=restaurant_id, created_by=user_id, **data.model_dump())
        self.db.add(outflow)
        self.db.commit()
        self.db.refresh(outflow)
        logger.info(f"✅ Pending outflow {outflow.id} created: {outflow.vendor_name} ${outflow.amount:.2f}")
        return outflow

    def update(self, restaurant_id: str, outflow_id: str, data: PendingOutflowUpdate) -> PendingOutflow:
        outflow = self._get_open(restaurant_id, outflow_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(outflow, key, value)
        self.db.commit()
        self.db.refresh(outflow)
        return outflow

    def delete(self, restaurant_id: str, outflow_id: str) -> None:
        outflow = self._get_open(restaurant_id, outflow_id)
        self.db.delete(outflow)
        self.db.commit()

    def void(self, restaurant_id: str, outflow_id: str, reason: Optional[str]) -> PendingOutflow:
        outflow = self._get(restaurant_id, outflow_id)
        if outflow.status in ("cleared", "voided"):
            raise HTTPException(status_code=400, detail=f"Cannot void a {outflow.status} outflow")
        outflow.status = "voided"
        outflow.voided_at = datetime.utcnow()
        outflow.voided_reason = reason
        self.db.commit()
        self.db.refresh(outflow)
        logger.info(f"🚫 Pending outflow {outflow.id} voided")
        return outflow

    # ------------------------------------------------------------------
    # Bank matching
    # ------------------------------------------------------------------

    def _candidate_transactions(self, outflow: PendingOutflow) -> list[BankTransaction]:
        linked_ids = [
            row[0]
            for row in self.db.query(PendingOutflow.linked_bank_transaction_id)
            .filter(
                PendingOutflow.restaurant_id == outflow.restaurant_id,
                PendingOutflow.linked_bank_transaction_id.isnot(None),
            )
            .all()
        ]
        query = self.db.query(BankTransaction).filter(
            BankTransaction.restaurant_id == outflow.restaurant_id,
            BankTransaction.amount < 0,
            BankTransaction.status != "excluded",
            BankTransaction.transaction_date >= outflow.issue_date - timedelta(days=MATCH_LOOKBACK_DAYS),
        )
        if linked_ids:
            query = query.filter(BankTransaction.id.notin_(linked_ids))
        return query.all()

    def suggest_matches(self, restaurant_id: str, outflow_id: Optional[str] = None) -> list[dict]:
        """Scored bank transaction candidates for one or all open outflows"""
        if outflow_id:
            outflows = [self._get_open(restaurant_id, outflow_id)]
        else:
            outflows = self.list_outflows(restaurant_id, status="open")

        matches = []
        for outflow in outflows:
            for transaction in self._candidate_transactions(outflow):
                match = score_match(outflow, transaction)
                if match:
                    matches.append(match)

        matches.sort(key=lambda m: m["score"], reverse=True)
        return matches

    def confirm_match(
        self, restaurant_id: str, outflow_id: str, bank_transaction_id: str, user_id: Optional[str]
    ) -> dict:
        """
        Clear an outflow against a bank transaction, then categorize the
        transaction with the outflow's category.

        The two writes are not atomic: when categorization fails the outflow
        is put back the way it was and the error is re-raised.
        """
        outflow = self._get_open(restaurant_id, outflow_id)
        transaction = (
            self.db.query(BankTransaction)
            .filter(BankTransaction.id == bank_transaction_id, BankTransaction.restaurant_id == restaurant_id)
            .first()
        )
        if not transaction:
            raise HTTPException(status_code=404, detail="Bank transaction not found")
        if transaction.status == "excluded":
            raise HTTPException(status_code=400, detail="Bank transaction is excluded")
        already_linked = (
            self.db.query(PendingOutflow)
            .filter(PendingOutflow.linked_bank_transaction_id == transaction.id)
            .first()
        )
        if already_linked:
            raise HTTPException(status_code=400, detail="Bank transaction is already linked to an outflow")
        if abs(abs(transaction.amount) - outflow.amount) > 0.01:
            raise HTTPException(status_code=400, detail="Amounts do not match")

        previous = {
            "status": outflow.status,
            "linked_bank_transaction_id": outflow.linked_bank_transaction_id,
            "cleared_at": outflow.cleared_at,
        }

        outflow.status = "cleared"
        outflow.linked_bank_transaction_id = transaction.id
        outflow.cleared_at = datetime.utcnow()
        self.db.commit()

        journal_entry_id = None
        if outflow.category_id:
            try:
                result = LedgerService(self.db).categorize_transaction(
                    transaction.id,
                    outflow.category_id,
                    user_id=user_id,
                    description=f"Cleared {outflow.payment_method} to {outflow.vendor_name}",
                )
                journal_entry_id = result["journal_entry_id"]
            except Exception:
                logger.error(f"❌ Categorization failed after clearing outflow {outflow.id}, restoring it")
                self.db.rollback()
                outflow = self._get(restaurant_id, outflow_id)
                for key, value in previous.items():
                    setattr(outflow, key, value)
                self.db.commit()
                raise

        logger.info(f"✅ Pending outflow {outflow.id} cleared by transaction {transaction.id}")
        return {
            "success": True,
            "pending_outflow_id": outflow.id,
            "bank_transaction_id": transaction.id,
            "journal_entry_id": journal_entry_id,
        }

    def mark_stale_pending_outflows(self, today: Optional[date] = None, restaurant_id: Optional[str] = None) -> int:
        today = today or date.today()
        query = self.db.query(PendingOutflow).filter(PendingOutflow.status.in_(OPEN_STATUSES))
        if restaurant_id:
            query = query.filter(PendingOutflow.restaurant_id == restaurant_id)

        changed = 0
        for outflow in query.all():
            status = stale_status_for(outflow, today)
            if status != outflow.status:
                outflow.status = status
                changed += 1

        self.db.commit()
        if changed:
            logger.info(f"⏰ Marked {changed} pending outflows stale")
        return changed
