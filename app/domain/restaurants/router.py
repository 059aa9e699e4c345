"""Restaurant router - FastAPI endpoints for restaurants"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import RestaurantCreate, RestaurantResponse
from .service import RestaurantService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/restaurants", tags=["Restaurants"])


def get_restaurant_service(db: Session = Depends(get_db)) -> RestaurantService:
    """Dependency injection for RestaurantService"""
    return RestaurantService(db)


@router.get("", response_model=list[RestaurantResponse])
async def list_restaurants(
    current_user: User = Depends(get_current_user),
    service: RestaurantService = Depends(get_restaurant_service),
):
    """Restaurants the current user belongs to, with role and feature flags"""
    return service.list_restaurants(current_user)


@router.post("")
async def create_restaurant(
    data: RestaurantCreate,
    current_user: User = Depends(get_current_user),
    service: RestaurantService = Depends(get_restaurant_service),
):
    restaurant = service.create_restaurant(current_user, data.name, data.timezone)
    return {
        "success": True,
        "restaurant": {
            "id": restaurant.id,
            "name": restaurant.name,
            "timezone": restaurant.timezone,
            "subscription_status": restaurant.subscription_status,
            "subscription_tier": restaurant.subscription_tier,
            "trial_ends_at": restaurant.trial_ends_at.isoformat() if restaurant.trial_ends_at else None,
        },
    }
