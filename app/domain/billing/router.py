"""
Billing router - subscription state and the Stripe webhook
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ... import config
from ...auth import get_current_user, require_capability
from ...database import get_db
from ...models import User
from ...webhook_security import verify_stripe_webhook
from .schemas import SubscriptionResponse
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db)


@router.get("/{restaurant_id}/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    restaurant_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Effective tier, feature flags and per-location price"""
    require_capability(db, current_user, restaurant_id, "manage:subscription")
    return service.get_subscription(restaurant_id)


@webhook_router.post("/stripe")
async def stripe_webhook(
    request: Request,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Process Stripe subscription lifecycle events.

    Headers:
      - 'Stripe-Signature': 't=<timestamp>,v1=<hex hmac_sha256("<timestamp>.<body>")>'
    """
    if not config.STRIPE_WEBHOOK_SECRET:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")

    _, raw_body = await verify_stripe_webhook(request, config.STRIPE_WEBHOOK_SECRET)

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Failed to parse Stripe webhook JSON: {e}")
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    event_type = await service.handle_event(event)
    return {"success": True, "received": True, "event_type": event_type}
