"""Restaurant service - Business logic for restaurants and membership"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_RESTAURANT_TIMEZONE
from ...models import Restaurant, User, UserRestaurant
from ...plan_limits import TRIAL_DAYS, TRIAL_TIER, get_effective_tier, get_feature_flags
from ..accounting.service import LedgerService
from .schemas import RestaurantResponse

logger = logging.getLogger(__name__)


class RestaurantService:
    """Service layer for restaurant business logic"""

    def __init__(self, db: Session):
        self.db = db

    def create_restaurant(self, user: User, name: str, timezone: Optional[str] = None) -> Restaurant:
        """Create a restaurant on a trial, make the creator its owner and seed the books"""
        logger.info(f"📥 Creating restaurant '{name}' for user {user.id}")

        restaurant = Restaurant(
            name=name,
            timezone=timezone or DEFAULT_RESTAURANT_TIMEZONE,
            subscription_tier=TRIAL_TIER,
            subscription_status="trialing",
            trial_ends_at=datetime.utcnow() + timedelta(days=TRIAL_DAYS),
        )
        self.db.add(restaurant)
        self.db.flush()

        self.db.add(UserRestaurant(user_id=user.id, restaurant_id=restaurant.id, role="owner"))
        accounts = LedgerService(self.db).seed_default_chart(restaurant.id)

        self.db.commit()
        self.db.refresh(restaurant)
        logger.info(f"✅ Restaurant {restaurant.id} created with {accounts} accounts")
        return restaurant

    def list_restaurants(self, user: User) -> list[RestaurantResponse]:
        rows = (
            self.db.query(Restaurant, UserRestaurant.role)
            .join(UserRestaurant, UserRestaurant.restaurant_id == Restaurant.id)
            .filter(UserRestaurant.user_id == user.id)
            .order_by(Restaurant.name)
            .all()
        )
        return [
            RestaurantResponse(
                id=restaurant.id,
                name=restaurant.name,
                timezone=restaurant.timezone,
                role=role,
                subscription_status=restaurant.subscription_status,
                subscription_tier=restaurant.subscription_tier,
                effective_tier=get_effective_tier(restaurant),
                trial_ends_at=restaurant.trial_ends_at,
                features=get_feature_flags(restaurant),
            )
            for restaurant, role in rows
        ]
