"""Billing repository - Database operations for billing"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Restaurant, User, UserRestaurant


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_restaurant(db: Session, restaurant_id: str) -> Optional[Restaurant]:
        return db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()

    @staticmethod
    def get_restaurant_by_subscription_id(db: Session, subscription_id: str) -> Optional[Restaurant]:
        if not subscription_id:
            return None
        return db.query(Restaurant).filter(Restaurant.stripe_subscription_id == subscription_id).first()

    @staticmethod
    def get_restaurant_by_customer_id(db: Session, customer_id: str) -> Optional[Restaurant]:
        if not customer_id:
            return None
        return db.query(Restaurant).filter(Restaurant.stripe_customer_id == customer_id).first()

    @staticmethod
    def get_owner(db: Session, restaurant_id: str) -> Optional[User]:
        """First owner linked to the restaurant"""
        return (
            db.query(User)
            .join(UserRestaurant, UserRestaurant.user_id == User.id)
            .filter(UserRestaurant.restaurant_id == restaurant_id, UserRestaurant.role == "owner")
            .order_by(UserRestaurant.created_at)
            .first()
        )

    @staticmethod
    def count_owned_locations(db: Session, user_id: str) -> int:
        """Restaurants the user owns, for the multi-location discount"""
        return (
            db.query(UserRestaurant)
            .filter(UserRestaurant.user_id == user_id, UserRestaurant.role == "owner")
            .count()
        )
