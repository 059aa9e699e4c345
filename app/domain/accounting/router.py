"""Accounting router - FastAPI endpoints for the ledger and bank transactions"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_capability
from ...database import get_db
from ...models import BankTransaction, User
from ..rules.service import RulesService
from .schemas import (
    AccountResponse,
    BankTransactionCreate,
    BankTransactionResponse,
    CategorizeRequest,
    ExcludeRequest,
    FiscalPeriodCreate,
    SplitRequest,
    TransferRequest,
)
from .service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounting", tags=["Accounting"])


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    """Dependency injection for LedgerService"""
    return LedgerService(db)


# ============================================================================
# CHART OF ACCOUNTS
# ============================================================================


@router.get("/{restaurant_id}/accounts", response_model=list[AccountResponse])
async def list_accounts(
    restaurant_id: str,
    include_inactive: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: LedgerService = Depends(get_ledger_service),
):
    require_capability(db, current_user, restaurant_id, "view:chart_of_accounts")
    return service.repo.list_accounts(db, restaurant_id, active_only=not include_inactive)


@router.post("/{restaurant_id}/accounts/rebuild-balances")
async def rebuild_balances(
    restaurant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: LedgerService = Depends(get_ledger_service),
):
    """Recompute every account balance from journal lines"""
    require_capability(db, current_user, restaurant_id, "edit:chart_of_accounts")
    count = service.rebuild_account_balances(restaurant_id)
    db.commit()
    return {"success": True, "accounts_updated": count}


# ============================================================================
# BANK TRANSACTIONS
# ============================================================================


@router.get("/{restaurant_id}/transactions", response_model=list[BankTransactionResponse])
async def list_transactions(
    restaurant_id: str,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: LedgerService = Depends(get_ledger_service),
):
    require_capability(db, current_user, restaurant_id, "view:transactions")
    return service.repo.list_transactions(db, restaurant_id, status, limit, offset)


@router.post("/{restaurant_id}/transactions")
async def create_transaction(
    restaurant_id: str,
    data: BankTransactionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record a bank transaction and run auto-apply rules on it"""
    require_capability(db, current_user, restaurant_id, "edit:transactions")

    transaction = BankTransaction(restaurant_id=restaurant_id, **data.model_dump())
    db.add(transaction)
    db.commit()
    db.refresh(transaction)

    rule_id = RulesService(db).auto_apply_to_bank_transaction(transaction)
    db.refresh(transaction)
    logger.info(f"📥 Bank transaction {transaction.id} recorded (rule applied: {rule_id})")
    return {
        "success": True,
        "transaction": BankTransactionResponse.model_validate(transaction),
        "applied_rule_id": rule_id,
    }


@router.post("/transactions/{transaction_id}/categorize")
async def categorize_transaction(
    transaction_id: str,
    data: CategorizeRequest,
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    """Categorize or reclassify a bank transaction"""
    return service.categorize_transaction(
        transaction_id,
        data.category_id,
        user_id=current_user.id,
        description=data.description,
        normalized_payee=data.normalized_payee,
        supplier_id=data.supplier_id,
    )


@router.post("/transactions/{transaction_id}/exclude")
async def exclude_transaction(
    transaction_id: str,
    data: ExcludeRequest,
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    return service.exclude_transaction(transaction_id, current_user.id, data.reason)


@router.post("/transactions/{transaction_id}/split")
async def split_transaction(
    transaction_id: str,
    data: SplitRequest,
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    return service.split_transaction(
        transaction_id, [split.model_dump() for split in data.splits], user_id=current_user.id
    )


@router.post("/transactions/transfer")
async def mark_as_transfer(
    data: TransferRequest,
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    """Pair two opposite transactions as a transfer between own accounts"""
    return service.mark_as_transfer(data.transaction_id_1, data.transaction_id_2, current_user.id)


# ============================================================================
# FISCAL PERIODS
# ============================================================================


@router.post("/{restaurant_id}/fiscal-periods")
async def create_fiscal_period(
    restaurant_id: str,
    data: FiscalPeriodCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: LedgerService = Depends(get_ledger_service),
):
    require_capability(db, current_user, restaurant_id, "edit:chart_of_accounts")
    period = service.create_fiscal_period(restaurant_id, data.period_start, data.period_end)
    return {"success": True, "id": period.id, "is_closed": period.is_closed}


@router.post("/fiscal-periods/{period_id}/close")
async def close_fiscal_period(
    period_id: str,
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    period = service.close_fiscal_period(period_id, current_user.id)
    return {"success": True, "id": period.id, "is_closed": period.is_closed}
