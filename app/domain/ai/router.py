"""AI router - category suggestions for bank transactions and POS sales"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_restaurant_role
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import AICategorizeRequest
from .service import AICategorizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])

# Each call can fan out to several model attempts
rate_limit_ai = create_rate_limiter(limit=10, window_seconds=60, key_prefix="ai_categorize")


def get_ai_service(db: Session = Depends(get_db)) -> AICategorizationService:
    """Dependency injection for AICategorizationService"""
    return AICategorizationService(db)


@router.post("/categorize-transactions")
async def categorize_transactions(
    data: AICategorizeRequest,
    _: None = Depends(rate_limit_ai),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: AICategorizationService = Depends(get_ai_service),
):
    """Suggest categories for up to 100 uncategorized bank transactions"""
    require_restaurant_role(db, current_user, data.restaurant_id, {"owner", "manager"})
    return await service.categorize_transactions(data.restaurant_id)


@router.post("/categorize-pos-sales")
async def categorize_pos_sales(
    data: AICategorizeRequest,
    _: None = Depends(rate_limit_ai),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: AICategorizationService = Depends(get_ai_service),
):
    """Suggest categories and item types for up to 50 uncategorized POS sales"""
    require_restaurant_role(db, current_user, data.restaurant_id, {"owner", "manager"})
    return await service.categorize_pos_sales(data.restaurant_id)
