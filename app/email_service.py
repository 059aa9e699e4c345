"""
Email Service using Resend
Transactional notifications sent to restaurant owners
"""

import html
import logging
from typing import Union

import resend

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailDeliveryError(Exception):
    """Email could not be handed to the provider"""


async def send_email(to: Union[str, list[str]], subject: str, html_content: str) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html_content: Rendered HTML body

    Returns:
        Resend response dict
    """
    recipients = [to] if isinstance(to, str) else to

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailDeliveryError("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {"from": EMAIL_FROM_ADDRESS, "to": recipients, "subject": subject, "html": html_content}
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailDeliveryError(f"Failed to send email: {str(e)}") from e


# ============================================
# Notifications
# ============================================


def payment_failed_html(owner_name: str, restaurant_name: str) -> str:
    billing_url = f"{FRONTEND_URL}/settings/billing"
    return (
        f"<p>Hi {html.escape(owner_name)},</p>"
        f"<p>We couldn't process the latest subscription payment for "
        f"<strong>{html.escape(restaurant_name)}</strong>. Your account is now past due.</p>"
        f"<p>Please update your payment method to keep every feature available:</p>"
        f'<p><a href="{billing_url}">Update billing details</a></p>'
    )


async def send_payment_failed_email(to: str, owner_name: str, restaurant_name: str) -> dict:
    return await send_email(
        to=to,
        subject=f"Payment failed for {restaurant_name}",
        html_content=payment_failed_html(owner_name, restaurant_name),
    )
