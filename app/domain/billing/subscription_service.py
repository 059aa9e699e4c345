"""Subscription service - Stripe lifecycle events and subscription state"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ... import config
from ...email_service import EmailDeliveryError, send_payment_failed_email
from ...models import Restaurant
from ...plan_limits import TIER_ORDER, get_effective_tier, get_feature_flags, get_price, volume_discount_percent
from .repository import BillingRepository

logger = logging.getLogger(__name__)

# Stripe unit amounts in cents (monthly and annual)
AMOUNT_TO_TIER = {
    9900: "starter",
    99000: "starter",
    19900: "growth",
    199000: "growth",
    29900: "pro",
    299000: "pro",
}

CANCELED_STATUSES = ("canceled", "unpaid", "incomplete_expired")
PASSTHROUGH_STATUSES = ("active", "trialing", "past_due")


def parse_price_tier_map(raw: Optional[str]) -> dict[str, str]:
    """Parse "price_abc:starter,price_def:growth" into a dict"""
    mapping = {}
    for pair in (raw or "").split(","):
        if ":" not in pair:
            continue
        price_id, tier = pair.split(":", 1)
        price_id, tier = price_id.strip(), tier.strip().lower()
        if price_id and tier in TIER_ORDER:
            mapping[price_id] = tier
    return mapping


def map_subscription_status(stripe_status: Optional[str]) -> str:
    if stripe_status in PASSTHROUGH_STATUSES:
        return stripe_status
    if stripe_status in CANCELED_STATUSES:
        return "canceled"
    return "active"


def _from_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.utcfromtimestamp(int(value))


def detect_tier(subscription: dict, price_map: Optional[dict] = None) -> Optional[str]:
    """
    Resolve the tier of a Stripe subscription.

    Order: configured price id, tier name inside the price id or nickname,
    unit amount, then subscription metadata.
    """
    price_map = parse_price_tier_map(config.STRIPE_PRICE_ID_TO_TIER) if price_map is None else price_map
    items = (subscription.get("items") or {}).get("data") or []
    price = (items[0].get("price") or {}) if items else {}
    price_id = price.get("id") or ""

    if price_id in price_map:
        return price_map[price_id]

    haystack = f"{price_id} {price.get('nickname') or ''}".lower()
    for tier in TIER_ORDER:
        if tier in haystack:
            return tier

    amount_tier = AMOUNT_TO_TIER.get(price.get("unit_amount"))
    if amount_tier:
        return amount_tier

    metadata_tier = (subscription.get("metadata") or {}).get("tier")
    if metadata_tier in TIER_ORDER:
        return metadata_tier

    logger.warning(f"⚠️ Could not determine tier for price {price_id or 'unknown'}")
    return None


def detect_period(subscription: dict) -> str:
    metadata_period = (subscription.get("metadata") or {}).get("period")
    if metadata_period in ("monthly", "annual"):
        return metadata_period
    items = (subscription.get("items") or {}).get("data") or []
    recurring = ((items[0].get("price") or {}).get("recurring") or {}) if items else {}
    return "annual" if recurring.get("interval") == "year" else "monthly"


class SubscriptionService:
    """Service for subscription management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    # ========================================================================
    # READ
    # ========================================================================

    def get_subscription(self, restaurant_id: str) -> dict:
        restaurant = self.repo.get_restaurant(self.db, restaurant_id)
        if not restaurant:
            raise HTTPException(status_code=404, detail="Restaurant not found")

        owner = self.repo.get_owner(self.db, restaurant.id)
        location_count = max(self.repo.count_owned_locations(self.db, owner.id), 1) if owner else 1
        effective_tier = get_effective_tier(restaurant)
        return {
            "success": True,
            "restaurant_id": restaurant.id,
            "subscription_tier": restaurant.subscription_tier,
            "subscription_status": restaurant.subscription_status,
            "subscription_period": restaurant.subscription_period,
            "effective_tier": effective_tier,
            "features": get_feature_flags(restaurant),
            "price": get_price(restaurant.subscription_tier or effective_tier, restaurant.subscription_period, location_count),
            "volume_discount_percent": volume_discount_percent(location_count),
            "location_count": location_count,
            "trial_ends_at": restaurant.trial_ends_at,
            "subscription_ends_at": restaurant.subscription_ends_at,
            "subscription_cancel_at": restaurant.subscription_cancel_at,
        }

    # ========================================================================
    # STRIPE EVENTS
    # ========================================================================

    async def handle_event(self, event: dict) -> str:
        event_type = event.get("type") or ""
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(f"🔔 Stripe event {event.get('id')} type={event_type}")

        if event_type == "checkout.session.completed":
            self.handle_checkout_completed(obj)
        elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
            self.handle_subscription_updated(obj)
        elif event_type == "customer.subscription.deleted":
            self.handle_subscription_deleted(obj)
        elif event_type == "invoice.payment_succeeded":
            self.handle_payment_succeeded(obj)
        elif event_type == "invoice.payment_failed":
            await self.handle_payment_failed(obj)
        else:
            logger.info(f"ℹ️ Unhandled Stripe event type: {event_type}")
        return event_type

    def handle_checkout_completed(self, session: dict) -> Optional[Restaurant]:
        metadata = session.get("metadata") or {}
        restaurant_id = metadata.get("restaurant_id")
        tier = metadata.get("tier")
        if not restaurant_id or not tier:
            logger.warning("⚠️ Checkout session missing restaurant_id or tier metadata")
            return None

        restaurant = self.repo.get_restaurant(self.db, restaurant_id)
        if not restaurant:
            logger.warning(f"⚠️ Checkout for unknown restaurant {restaurant_id}")
            return None

        restaurant.stripe_subscription_id = session.get("subscription")
        restaurant.stripe_customer_id = session.get("customer")
        restaurant.subscription_tier = tier
        restaurant.subscription_period = metadata.get("period") or "monthly"
        restaurant.subscription_status = "active"
        self.db.commit()
        logger.info(f"✅ Checkout completed for restaurant {restaurant_id}: {tier}")
        return restaurant

    def _resolve_restaurant(self, subscription: dict) -> Optional[Restaurant]:
        restaurant_id = (subscription.get("metadata") or {}).get("restaurant_id")
        restaurant = self.repo.get_restaurant(self.db, restaurant_id) if restaurant_id else None
        if restaurant is None:
            restaurant = self.repo.get_restaurant_by_subscription_id(self.db, subscription.get("id"))
        if restaurant is None:
            restaurant = self.repo.get_restaurant_by_customer_id(self.db, subscription.get("customer"))
        return restaurant

    def handle_subscription_updated(self, subscription: dict) -> Optional[Restaurant]:
        restaurant = self._resolve_restaurant(subscription)
        if not restaurant:
            logger.warning(f"⚠️ No restaurant found for subscription {subscription.get('id')}")
            return None

        status = map_subscription_status(subscription.get("status"))
        tier = detect_tier(subscription)

        restaurant.stripe_subscription_id = subscription.get("id")
        restaurant.stripe_customer_id = subscription.get("customer") or restaurant.stripe_customer_id
        restaurant.subscription_status = status
        if tier:
            restaurant.subscription_tier = tier
        restaurant.subscription_period = detect_period(subscription)
        restaurant.subscription_ends_at = _from_timestamp(subscription.get("current_period_end"))

        if subscription.get("cancel_at_period_end"):
            restaurant.subscription_cancel_at = _from_timestamp(
                subscription.get("cancel_at") or subscription.get("current_period_end")
            )
        else:
            restaurant.subscription_cancel_at = None

        if status == "trialing":
            restaurant.trial_ends_at = _from_timestamp(subscription.get("trial_end"))
        elif status == "active":
            restaurant.trial_ends_at = None
            restaurant.grandfathered_until = None

        self.db.commit()
        logger.info(f"✅ Subscription {subscription.get('id')} -> {status} ({restaurant.subscription_tier})")
        return restaurant

    def handle_subscription_deleted(self, subscription: dict) -> Optional[Restaurant]:
        restaurant = self.repo.get_restaurant_by_subscription_id(self.db, subscription.get("id"))
        if not restaurant:
            logger.warning(f"⚠️ No restaurant found for deleted subscription {subscription.get('id')}")
            return None

        restaurant.subscription_status = "canceled"
        restaurant.subscription_tier = "starter"
        restaurant.subscription_ends_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"🚫 Subscription canceled for restaurant {restaurant.id}")
        return restaurant

    def handle_payment_succeeded(self, invoice: dict) -> Optional[Restaurant]:
        restaurant = self.repo.get_restaurant_by_subscription_id(self.db, invoice.get("subscription"))
        if not restaurant:
            return None
        if restaurant.subscription_status == "past_due":
            restaurant.subscription_status = "active"
            self.db.commit()
            logger.info(f"✅ Payment recovered for restaurant {restaurant.id}")
        return restaurant

    async def handle_payment_failed(self, invoice: dict) -> Optional[Restaurant]:
        restaurant = self.repo.get_restaurant_by_subscription_id(self.db, invoice.get("subscription"))
        if not restaurant:
            return None

        restaurant.subscription_status = "past_due"
        self.db.commit()
        logger.warning(f"⚠️ Payment failed for restaurant {restaurant.id}, now past_due")

        owner = self.repo.get_owner(self.db, restaurant.id)
        if owner and owner.email:
            try:
                await send_payment_failed_email(owner.email, owner.full_name or "there", restaurant.name)
            except EmailDeliveryError as e:
                logger.error(f"❌ Failed to send payment failed email for {restaurant.id}: {e}")
        return restaurant
