"""
AI caller with multi-model fallback over OpenRouter chat completions.

Models are tried in order; each gets its own retry budget. `sleep` and
`http_client_factory` are module attributes so tests can replace them.
"""

import asyncio
import json
import logging
from typing import Optional

import httpx

from ..config import FRONTEND_URL, OPENROUTER_API_URL

logger = logging.getLogger(__name__)

AI_TIMEOUT_SECONDS = 30.0

MODELS = [
    {"name": "Gemini 2.5 Flash Lite", "id": "google/gemini-2.5-flash-lite", "max_retries": 2},
    {"name": "Llama 4 Maverick", "id": "meta-llama/llama-4-maverick", "max_retries": 2},
    {"name": "Gemma 3 27B", "id": "google/gemma-3-27b-it", "max_retries": 2},
    # Paid, last resort
    {"name": "Claude Sonnet 4.5", "id": "anthropic/claude-sonnet-4-5", "max_retries": 1},
]

sleep = asyncio.sleep


def _default_client_factory() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=AI_TIMEOUT_SECONDS)


http_client_factory = _default_client_factory


async def call_model(model: dict, request_body: dict, api_key: str) -> Optional[dict]:
    """
    Call one model with retries and exponential backoff.

    - 429: wait 2**(retry+1) s and retry while attempts remain
    - other non-2xx: give up on this model
    - timeout: give up on this model
    - any other error: wait 2**retry s and retry

    Returns the parsed response body, or None.
    """
    retry = 0
    body = {**request_body, "model": model["id"]}

    while retry < model["max_retries"]:
        logger.info(f"🔄 {model['name']} attempt {retry + 1}/{model['max_retries']}...")
        try:
            async with http_client_factory() as client:
                response = await client.post(
                    OPENROUTER_API_URL,
                    json=body,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "HTTP-Referer": FRONTEND_URL,
                        "X-Title": "Restaurant Back Office AI",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException:
            logger.error(f"❌ {model['name']} timed out after {AI_TIMEOUT_SECONDS:.0f} seconds")
            return None
        except httpx.HTTPError as e:
            logger.error(f"❌ {model['name']} error: {e}")
            retry += 1
            if retry < model["max_retries"]:
                await sleep(2**retry)
            continue

        if response.is_success:
            logger.info(f"✅ {model['name']} succeeded")
            try:
                return response.json()
            except ValueError:
                logger.error(f"❌ {model['name']} returned a non-JSON body")
                return None

        if response.status_code == 429 and retry < model["max_retries"] - 1:
            logger.warning(f"⚠️ {model['name']} rate limited, waiting before retry...")
            await sleep(2 ** (retry + 1))
            retry += 1
            continue

        logger.error(f"❌ {model['name']} failed: {response.status_code} {response.text[:200]}")
        return None

    return None


async def call_ai_with_fallback(request_body: dict, api_key: str) -> Optional[dict]:
    """
    Try every model in order and return {"data": <parsed content>, "model": <name>}
    from the first one whose message content is valid JSON.
    """
    for model in MODELS:
        logger.info(f"🚀 Trying {model['name']}...")
        data = await call_model(model, request_body, api_key)
        if not data:
            logger.warning(f"⚠️ {model['name']} failed, trying next model...")
            continue

        choices = data.get("choices") or []
        message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
        content = (message or {}).get("content")
        if not content:
            logger.error(f"❌ {model['name']} returned invalid response structure")
            continue

        try:
            result = json.loads(content)
        except (TypeError, ValueError):
            logger.error(f"❌ {model['name']} returned unparseable content")
            continue

        logger.info(f"✅ {model['name']} successfully returned result")
        return {"data": result, "model": model["name"]}

    logger.error("❌ All AI models failed")
    return None
