"""
Vendor API clients for Square, Toast and Clover.

All requests go through `http_client_factory` so tests can swap in an
httpx.MockTransport.
"""

import logging
from typing import Optional

import httpx

from ...config import CLOVER_APP_ID, CLOVER_APP_SECRET, SQUARE_ENVIRONMENT, TOAST_API_BASE_URL

logger = logging.getLogger(__name__)

VENDOR_TIMEOUT_SECONDS = 30.0
SQUARE_VERSION = "2024-12-18"

CLOVER_API_DOMAINS = {
    "na": "api.clover.com",
    "eu": "api.eu.clover.com",
    "latam": "api.la.clover.com",
    "apac": "api.clover.com",
}


class VendorAPIError(Exception):
    """A vendor API call failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _default_client_factory() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=VENDOR_TIMEOUT_SECONDS)


http_client_factory = _default_client_factory


def square_api_url() -> str:
    if SQUARE_ENVIRONMENT == "production":
        return "https://connect.squareup.com/v2"
    return "https://connect.squareupsandbox.com/v2"


def clover_api_base(region: Optional[str]) -> str:
    return f"https://{CLOVER_API_DOMAINS.get(region or 'na', CLOVER_API_DOMAINS['na'])}"


# ============================================================================
# SQUARE
# ============================================================================


async def fetch_square_order(access_token: str, order_id: str) -> dict:
    async with http_client_factory() as client:
        response = await client.get(
            f"{square_api_url()}/orders/{order_id}",
            headers={
                "Square-Version": SQUARE_VERSION,
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
        )
    if response.status_code != 200:
        logger.error(f"❌ Square order fetch failed ({response.status_code}): {response.text[:200]}")
        raise VendorAPIError("Failed to fetch Square order", response.status_code)
    return response.json().get("order") or {}


# ============================================================================
# TOAST
# ============================================================================


async def fetch_toast_order(access_token: str, restaurant_guid: str, order_guid: str) -> dict:
    async with http_client_factory() as client:
        response = await client.get(
            f"{TOAST_API_BASE_URL}/orders/v2/orders/{order_guid}",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Toast-Restaurant-External-ID": restaurant_guid,
            },
        )
    if response.status_code != 200:
        logger.error(f"❌ Toast order fetch failed ({response.status_code}) for {order_guid}")
        raise VendorAPIError("Failed to fetch Toast order", response.status_code)
    return response.json()


# ============================================================================
# CLOVER
# ============================================================================


async def fetch_clover_orders_page(
    access_token: str,
    merchant_id: str,
    region: Optional[str],
    modified_since_ms: int,
    offset: int,
    limit: int = 100,
) -> httpx.Response:
    """One page of orders; the caller handles 401 and pagination"""
    async with http_client_factory() as client:
        return await client.get(
            f"{clover_api_base(region)}/v3/merchants/{merchant_id}/orders",
            params={
                "filter": f"modifiedTime>={modified_since_ms}",
                "expand": "lineItems",
                "limit": str(limit),
                "offset": str(offset),
            },
            headers={"Authorization": f"Bearer {access_token}"},
        )


async def refresh_clover_token(refresh_token: str, region: Optional[str]) -> dict:
    """Exchange a refresh token; returns access_token, refresh_token, expires_in"""
    async with http_client_factory() as client:
        response = await client.post(
            f"{clover_api_base(region)}/oauth/v2/refresh",
            json={
                "client_id": CLOVER_APP_ID,
                "client_secret": CLOVER_APP_SECRET,
                "refresh_token": refresh_token,
            },
        )
    if response.status_code != 200:
        logger.error(f"❌ Clover token refresh failed: {response.text[:200]}")
        raise VendorAPIError("Failed to refresh Clover token. Please reconnect your account.", response.status_code)
    return response.json()
