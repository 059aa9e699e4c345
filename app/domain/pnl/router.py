"""P&L router - FastAPI endpoints for daily P&L and period metrics"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import FINANCE_ROLES, get_current_user, require_capability, require_restaurant_role
from ...database import get_db
from ...models import User
from .labor import date_range
from .schemas import DailyPnLResponse
from .service import PnLService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pnl", tags=["P&L"])

MAX_RANGE_DAYS = 366


def get_pnl_service(db: Session = Depends(get_db)) -> PnLService:
    """Dependency injection for PnLService"""
    return PnLService(db)


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise HTTPException(status_code=400, detail="end must be on or after start")
    if (end - start).days > MAX_RANGE_DAYS:
        raise HTTPException(status_code=400, detail=f"Date range cannot exceed {MAX_RANGE_DAYS} days")


# ============================================================================
# REPORTS
# ============================================================================


@router.get("/{restaurant_id}/daily", response_model=list[DailyPnLResponse])
async def get_daily_pnl(
    restaurant_id: str,
    start: date = Query(...),
    end: date = Query(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PnLService = Depends(get_pnl_service),
):
    require_restaurant_role(db, current_user, restaurant_id, FINANCE_ROLES)
    _check_range(start, end)
    return service.list_daily_pnl(restaurant_id, start, end)


@router.get("/{restaurant_id}/metrics")
async def get_period_metrics(
    restaurant_id: str,
    start: date = Query(...),
    end: date = Query(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PnLService = Depends(get_pnl_service),
):
    """Revenue, costs, profitability and benchmarks for a period"""
    require_capability(db, current_user, restaurant_id, "view:financial_intelligence")
    _check_range(start, end)
    return {"success": True, "start": start, "end": end, **service.get_period_metrics(restaurant_id, start, end)}


# ============================================================================
# RECALCULATION
# ============================================================================


@router.post("/{restaurant_id}/aggregate")
async def aggregate_day(
    restaurant_id: str,
    day: date = Query(..., alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PnLService = Depends(get_pnl_service),
):
    """Re-aggregate unified sales for one day and recalculate its P&L"""
    require_restaurant_role(db, current_user, restaurant_id, {"owner", "manager"})
    daily = service.aggregate_unified_sales_to_daily(restaurant_id, day)
    return {
        "success": True,
        "date": day,
        "gross_revenue": daily.gross_revenue,
        "net_revenue": daily.net_revenue,
        "transaction_count": daily.transaction_count,
    }


@router.post("/{restaurant_id}/labor")
async def recalculate_labor(
    restaurant_id: str,
    start: date = Query(...),
    end: date = Query(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PnLService = Depends(get_pnl_service),
):
    """Rebuild daily labor costs from time punches, then the P&L for each day"""
    require_capability(db, current_user, restaurant_id, "edit:payroll")
    _check_range(start, end)
    days = service.calculate_daily_labor_costs(restaurant_id, start, end)
    for day in date_range(start, end):
        service.calculate_daily_pnl(restaurant_id, day)
    return {"success": True, "days": days}
