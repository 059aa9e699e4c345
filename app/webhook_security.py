"""
Webhook Security Module

Signature verification for every inbound vendor webhook (Stripe, Square,
Toast, Clover, Gusto). All comparisons are constant-time and every
verifier returns the raw body so handlers parse exactly what was signed.
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Stripe-style timestamped signatures older than this are replays
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """Empty values never match"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def _hmac_digest(secret: str, payload: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 (Stripe, Toast, Gusto)"""
    return _hmac_digest(secret, payload).hex()


def compute_hmac_sha256_base64(secret: str, payload: bytes) -> str:
    """Base64 HMAC-SHA256 (Square)"""
    return base64.b64encode(_hmac_digest(secret, payload)).decode("utf-8")


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """
    True when the signed unix timestamp is within `max_age` seconds of now.
    Providers that send no timestamp pass.
    """
    if not timestamp:
        return True

    try:
        age = abs(int(time.time()) - int(timestamp))
    except (ValueError, TypeError):
        logger.warning(f"🚫 Unparseable webhook timestamp: {timestamp}")
        return False

    if age > max_age:
        logger.warning(f"🚫 Webhook replay window exceeded: {age}s > {max_age}s")
        return False
    return True


def _fail(raise_on_failure: bool, detail: str, raw_body: bytes) -> tuple[bool, bytes]:
    if raise_on_failure:
        raise HTTPException(status_code=401, detail=detail)
    return False, raw_body


async def verify_stripe_webhook(
    request: Request, secret: str, raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """
    Verify Stripe webhook signature.

    Stripe uses:
    - Header: 'Stripe-Signature' (format: "t=<timestamp>,v1=<signature>[,v1=...]")
    - Signed payload: "<timestamp>.<raw body>"
    """
    raw_body = await request.body()
    signature_header = request.headers.get("Stripe-Signature", "")

    logger.debug("📥 Stripe webhook received")

    if not signature_header:
        logger.warning("🚫 Stripe webhook missing signature header")
        return _fail(raise_on_failure, "Missing webhook signature", raw_body)

    timestamp = None
    signatures = []
    for item in signature_header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)

    if not timestamp or not signatures:
        logger.warning("🚫 Stripe webhook invalid signature format")
        return _fail(raise_on_failure, "Invalid signature format", raw_body)

    if not verify_timestamp(timestamp):
        return _fail(raise_on_failure, "Webhook timestamp expired", raw_body)

    signed_payload = timestamp.encode("utf-8") + b"." + raw_body
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    if not any(constant_time_compare(expected_signature, sig) for sig in signatures):
        logger.warning("🚫 Stripe webhook signature mismatch")
        return _fail(raise_on_failure, "Invalid webhook signature", raw_body)

    logger.debug("✅ Stripe webhook signature verified")
    return True, raw_body


async def verify_square_webhook(
    request: Request,
    signature_key: Optional[str],
    notification_url: Optional[str] = None,
    raise_on_failure: bool = True,
) -> tuple[bool, bytes]:
    """
    Verify Square webhook signature
    https://developer.squareup.com/docs/webhooks/step3validate

    Square generates the signature using: HMAC-SHA256(signature_key, notification_url + request_body)
    """
    raw_body = await request.body()

    if not signature_key:
        logger.warning("⚠️ SQUARE_WEBHOOK_SIGNATURE_KEY not configured, skipping verification")
        return True, raw_body

    signature = request.headers.get("x-square-hmacsha256-signature", "")
    if not signature:
        logger.warning("🚫 Square webhook missing signature header")
        return _fail(raise_on_failure, "Missing webhook signature", raw_body)

    url = notification_url or str(request.url)
    expected = compute_hmac_sha256_base64(signature_key, url.encode("utf-8") + raw_body)

    if not constant_time_compare(expected, signature):
        logger.warning(f"⚠️ Square signature mismatch - Got: {signature[:20]}...")
        return _fail(raise_on_failure, "Invalid signature", raw_body)

    return True, raw_body


async def verify_toast_webhook(
    request: Request, secret: Optional[str], raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """Toast signs the raw body with HMAC-SHA256 (hex) in 'toast-signature'"""
    raw_body = await request.body()

    if not secret:
        logger.warning("⚠️ TOAST_WEBHOOK_SECRET not configured, skipping verification")
        return True, raw_body

    signature = request.headers.get("toast-signature", "")
    if not signature:
        logger.warning("🚫 Toast webhook missing signature header")
        return _fail(raise_on_failure, "Missing webhook signature", raw_body)

    if not constant_time_compare(compute_hmac_sha256(secret, raw_body), signature):
        logger.warning("🚫 Toast webhook signature mismatch")
        return _fail(raise_on_failure, "Invalid signature", raw_body)

    return True, raw_body


async def verify_gusto_webhook(
    request: Request, secret: Optional[str], raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """
    Gusto signs "<x-gusto-timestamp>.<raw body>" and sends "v1=<hex>" in
    'x-gusto-signature'.
    """
    raw_body = await request.body()

    if not secret:
        logger.warning("⚠️ GUSTO_WEBHOOK_SECRET not configured, skipping verification")
        return True, raw_body

    signature = request.headers.get("x-gusto-signature", "")
    timestamp = request.headers.get("x-gusto-timestamp", "")
    if not signature or not timestamp:
        logger.warning("🚫 Gusto webhook missing signature or timestamp")
        return _fail(raise_on_failure, "Missing webhook signature", raw_body)

    expected = "v1=" + compute_hmac_sha256(secret, timestamp.encode("utf-8") + b"." + raw_body)
    if not constant_time_compare(expected, signature):
        logger.error("❌ Gusto webhook signature mismatch")
        return _fail(raise_on_failure, "Invalid signature", raw_body)

    return True, raw_body


async def verify_clover_webhook(
    request: Request, auth_code: Optional[str], raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """Clover sends the app's shared verification code in 'X-Clover-Auth'"""
    raw_body = await request.body()

    if not auth_code:
        logger.warning("⚠️ CLOVER_WEBHOOK_AUTH_CODE not configured, skipping verification")
        return True, raw_body

    if not constant_time_compare(auth_code, request.headers.get("X-Clover-Auth", "")):
        logger.warning("🚫 Clover webhook auth code mismatch")
        return _fail(raise_on_failure, "Invalid signature", raw_body)

    return True, raw_body


def create_webhook_signature(
    secret: str,
    payload: bytes,
    provider: str = "generic",
    timestamp: Optional[int] = None,
    notification_url: str = "",
) -> str:
    """
    Create a webhook signature for testing or outgoing webhooks.

    Args:
        secret: Signing secret
        payload: Request body bytes
        provider: Provider format ('generic', 'toast', 'stripe', 'square', 'gusto')
        timestamp: Unix timestamp for timestamped formats (defaults to now)
        notification_url: Square notification URL

    Returns:
        Signature string in provider's format
    """
    if provider == "stripe":
        timestamp = timestamp or int(time.time())
        sig = compute_hmac_sha256(secret, str(timestamp).encode("utf-8") + b"." + payload)
        return f"t={timestamp},v1={sig}"
    elif provider == "square":
        return compute_hmac_sha256_base64(secret, notification_url.encode("utf-8") + payload)
    elif provider == "gusto":
        timestamp = timestamp or int(time.time())
        return "v1=" + compute_hmac_sha256(secret, str(timestamp).encode("utf-8") + b"." + payload)
    else:
        return compute_hmac_sha256(secret, payload)
