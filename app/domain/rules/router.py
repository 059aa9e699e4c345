"""Rules router - FastAPI endpoints for categorization rules"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_capability
from ...database import get_db
from ...models import User
from .schemas import RuleCreate, RuleResponse, RuleUpdate
from .service import RulesService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rules", tags=["Categorization Rules"])


def get_rules_service(db: Session = Depends(get_db)) -> RulesService:
    """Dependency injection for RulesService"""
    return RulesService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("/{restaurant_id}", response_model=list[RuleResponse])
async def list_rules(
    restaurant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RulesService = Depends(get_rules_service),
):
    """List categorization rules, best match first"""
    require_capability(db, current_user, restaurant_id, "view:transactions")
    return service.list_rules(restaurant_id)


@router.post("/{restaurant_id}", response_model=RuleResponse)
async def create_rule(
    restaurant_id: str,
    data: RuleCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RulesService = Depends(get_rules_service),
):
    require_capability(db, current_user, restaurant_id, "edit:transactions")
    return service.create_rule(restaurant_id, data)


@router.put("/{restaurant_id}/{rule_id}", response_model=RuleResponse)
async def update_rule(
    restaurant_id: str,
    rule_id: str,
    data: RuleUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RulesService = Depends(get_rules_service),
):
    require_capability(db, current_user, restaurant_id, "edit:transactions")
    return service.update_rule(restaurant_id, rule_id, data)


@router.delete("/{restaurant_id}/{rule_id}")
async def delete_rule(
    restaurant_id: str,
    rule_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RulesService = Depends(get_rules_service),
):
    require_capability(db, current_user, restaurant_id, "edit:transactions")
    service.delete_rule(restaurant_id, rule_id)
    return {"success": True, "message": "Rule deleted"}


# ============================================================================
# BULK APPLICATION
# ============================================================================


@router.post("/{restaurant_id}/apply/bank-transactions")
async def apply_rules_to_bank_transactions(
    restaurant_id: str,
    batch_limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RulesService = Depends(get_rules_service),
):
    """Run every active rule over uncategorized bank transactions"""
    require_capability(db, current_user, restaurant_id, "edit:transactions")
    result = service.apply_rules_to_bank_transactions(restaurant_id, batch_limit)
    return {"success": True, **result}


@router.post("/{restaurant_id}/apply/pos-sales")
async def apply_rules_to_pos_sales(
    restaurant_id: str,
    batch_limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RulesService = Depends(get_rules_service),
):
    require_capability(db, current_user, restaurant_id, "edit:transactions")
    result = service.apply_rules_to_pos_sales(restaurant_id, batch_limit)
    return {"success": True, **result}
