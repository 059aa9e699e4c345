"""
Hybrid in-memory + Redis rate limiting
Counts live in process memory and are synced to Redis every few seconds,
so a burst costs one Redis command instead of one per request.
"""

import logging
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

from .config import REDIS_URL

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

# {key: {"count": int, "reset_time": int, "last_redis_sync": int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10  # seconds between Redis syncs
MEMORY_CACHE_CLEANUP_INTERVAL = 60
last_cleanup_time = 0


def _mask_url(url: str) -> str:
    if "@" not in url:
        return "****"
    scheme = url.split("@")[0].split(":")[0]
    return f"{scheme}:****@{url.split('@')[1]}"


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client from REDIS_URL.
    Returns None when Redis is not configured (memory-only limits).
    """
    global redis_client

    if redis_client is None and REDIS_URL:
        logger.info(f"📡 Connecting to Redis for rate limiting: {_mask_url(REDIS_URL)}")
        client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        client.ping()
        redis_client = client
        logger.info("✅ Redis connected")

    return redis_client


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)]
        for k in expired_keys:
            del memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = current_time


def _load_entry(key: str, window_seconds: int, client: Optional[redis.Redis], now: int) -> dict:
    if client is not None:
        try:
            redis_count = client.get(key)
            redis_ttl = client.ttl(key)
            if redis_count and redis_ttl > 0:
                return {"count": int(redis_count), "reset_time": now + redis_ttl, "last_redis_sync": now}
        except redis.RedisError as e:
            logger.warning(f"⚠️ Failed to load {key} from Redis, using memory only: {e}")
    return {"count": 0, "reset_time": now + window_seconds, "last_redis_sync": now}


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """
    Count one request against `key`.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        if key not in memory_cache:
            memory_cache[key] = _load_entry(key, window_seconds, client, current_time)
        entry = memory_cache[key]

        if current_time >= entry["reset_time"]:
            entry["count"] = 0
            entry["reset_time"] = current_time + window_seconds
            entry["last_redis_sync"] = 0

        is_allowed = entry["count"] < limit
        if is_allowed:
            entry["count"] += 1

        if client is not None and current_time - entry.get("last_redis_sync", 0) >= MEMORY_CACHE_SYNC_INTERVAL:
            try:
                client.set(key, entry["count"], ex=window_seconds)
                entry["last_redis_sync"] = current_time
                logger.debug(f"📡 Synced {key} to Redis: {entry['count']}/{limit}")
            except redis.RedisError as e:
                logger.warning(f"⚠️ Failed to sync to Redis: {e}")

        ttl = entry["reset_time"] - current_time
        return is_allowed, entry["count"], max(0, ttl)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    """
    Raise 429 once `limit` requests were made within `window_seconds`.
    An unreachable Redis lets the request through.
    """
    try:
        client = get_redis_client()
    except redis.RedisError as e:
        logger.error(f"❌ Redis unavailable for rate limiting: {e}")
        logger.warning("⚠️ Allowing request without a rate limit check (fail-open mode)")
        return

    key = f"{key_prefix}:{_client_ip(request)}" if use_ip else f"{key_prefix}:global"
    is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - current_count
    request.state.rate_limit_limit = limit
    request.state.rate_limit_reset = int(time.time()) + ttl


def create_rate_limiter(
    limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True
):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        rate_limit_ai = create_rate_limiter(limit=10, window_seconds=60, key_prefix="ai")

        @router.post("/categorize-transactions")
        async def categorize(_: None = Depends(rate_limit_ai)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter
