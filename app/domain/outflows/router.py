"""Pending outflow router - FastAPI endpoints for issued payments"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_capability
from ...database import get_db
from ...models import User
from .schemas import (
    ConfirmMatchRequest,
    PendingOutflowCreate,
    PendingOutflowResponse,
    PendingOutflowUpdate,
    VoidRequest,
)
from .service import PendingOutflowService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pending-outflows", tags=["Pending Outflows"])


def get_outflow_service(db: Session = Depends(get_db)) -> PendingOutflowService:
    """Dependency injection for PendingOutflowService"""
    return PendingOutflowService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("/{restaurant_id}", response_model=list[PendingOutflowResponse])
async def list_outflows(
    restaurant_id: str,
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    """List outflows; status=open returns pending and stale ones"""
    require_capability(db, current_user, restaurant_id, "view:pending_outflows")
    return service.list_outflows(restaurant_id, status)


@router.post("/{restaurant_id}", response_model=PendingOutflowResponse)
async def create_outflow(
    restaurant_id: str,
    data: PendingOutflowCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    require_capability(db, current_user, restaurant_id, "edit:pending_outflows")
    return service.create(restaurant_id, data, current_user.id)


@router.patch("/{restaurant_id}/{outflow_id}", response_model=PendingOutflowResponse)
async def update_outflow(
    restaurant_id: str,
    outflow_id: str,
    data: PendingOutflowUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    require_capability(db, current_user, restaurant_id, "edit:pending_outflows")
    return service.update(restaurant_id, outflow_id, data)


@router.delete("/{restaurant_id}/{outflow_id}")
async def delete_outflow(
    restaurant_id: str,
    outflow_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    require_capability(db, current_user, restaurant_id, "edit:pending_outflows")
    service.delete(restaurant_id, outflow_id)
    return {"success": True, "message": "Pending outflow deleted"}


@router.post("/{restaurant_id}/{outflow_id}/void", response_model=PendingOutflowResponse)
async def void_outflow(
    restaurant_id: str,
    outflow_id: str,
    data: VoidRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    require_capability(db, current_user, restaurant_id, "edit:pending_outflows")
    return service.void(restaurant_id, outflow_id, data.reason)


# ============================================================================
# BANK MATCHING
# ============================================================================


@router.get("/{restaurant_id}/matches/suggestions")
async def suggest_matches(
    restaurant_id: str,
    outflow_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    require_capability(db, current_user, restaurant_id, "view:pending_outflows")
    return {"success": True, "matches": service.suggest_matches(restaurant_id, outflow_id)}


@router.post("/{restaurant_id}/{outflow_id}/confirm-match")
async def confirm_match(
    restaurant_id: str,
    outflow_id: str,
    data: ConfirmMatchRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    """Clear an outflow against the bank transaction that paid it"""
    require_capability(db, current_user, restaurant_id, "edit:pending_outflows")
    return service.confirm_match(restaurant_id, outflow_id, data.bank_transaction_id, current_user.id)


@router.post("/{restaurant_id}/mark-stale")
async def mark_stale(
    restaurant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PendingOutflowService = Depends(get_outflow_service),
):
    require_capability(db, current_user, restaurant_id, "edit:pending_outflows")
    return {"success": True, "updated": service.mark_stale_pending_outflows(restaurant_id=restaurant_id)}
