"""Payroll router - Gusto webhooks"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import config
from ...database import get_db
from ...webhook_security import verify_gusto_webhook
from .service import GustoWebhookService

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_gusto_service(db: Session = Depends(get_db)) -> GustoWebhookService:
    """Dependency injection for GustoWebhookService"""
    return GustoWebhookService(db)


@webhook_router.post("/gusto")
async def gusto_webhook(
    request: Request,
    service: GustoWebhookService = Depends(get_gusto_service),
):
    """Receive Gusto events. Processing failures are logged and still answer 200."""
    _, raw_body = await verify_gusto_webhook(request, config.GUSTO_WEBHOOK_SECRET)

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    logger.info(f"🔔 Gusto event {event.get('event_type')} for company {event.get('company_uuid')}")

    if service.is_duplicate(event.get("uuid")):
        logger.info(f"🔄 Duplicate Gusto event {event.get('uuid')}, skipping")
        return {"received": True, "duplicate": True}

    try:
        restaurant_id = service.record_event(event)
        service.process_event(event, restaurant_id)
    except SQLAlchemyError as e:
        service.db.rollback()
        logger.error(f"❌ Error processing Gusto event {event.get('uuid')}: {e}")
        return {"received": True, "error": str(e)}

    return {"received": True}
