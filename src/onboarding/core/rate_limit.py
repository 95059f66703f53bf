"""
Rate Limiting Module

Sliding-window rate limiting backed by Redis sorted sets, with an in-memory
fallback when Redis is unavailable.

SECURITY: Public invite endpoints (validate / redeem) are rate limited per
client so invite codes cannot be brute-forced or probed.
"""

import logging
import time

from fastapi import HTTPException, Request, status

from onboarding.core.redis import get_redis

logger = logging.getLogger(__name__)

# In-memory rate limit storage (fallback when Redis unavailable)
# Format: {key: [timestamp, ...]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": (
                    f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds."
                ),
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(
    client, key: str, limit: int, window_seconds: int
) -> bool:
    """
    Check rate limit using a Redis sorted set per key.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check rate limit using in-memory storage.

    Not shared across server instances.
    """
    now = time.time()
    window_start = now - window_seconds

    hits = [ts for ts in _memory_store.get(key, []) if ts > window_start]

    if len(hits) >= limit:
        _memory_store[key] = hits
        return False

    hits.append(now)
    _memory_store[key] = hits
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check if a request is within rate limits.

    Tries Redis first, falls back to in-memory storage.

    Args:
        key: Unique key for this rate limit (e.g., "invite:redeem:10.0.0.1")
        limit: Maximum requests allowed in the window
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    client = await get_redis()

    if client is not None:
        try:
            return await _check_rate_limit_redis(client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


def client_key(request: Request, action: str) -> str:
    """Rate limit key for an action from the requesting client IP."""
    client_ip = request.client.host if request.client else "unknown"
    return f"rate_limit:{action}:{client_ip}"


async def enforce_rate_limit(
    request: Request, action: str, limit: int, window_seconds: int
) -> None:
    """
    Raise RateLimitExceeded if the client exceeded the limit for `action`.
    """
    key = client_key(request, action)
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
        raise RateLimitExceeded(limit, window_seconds)


__all__ = [
    "check_rate_limit",
    "enforce_rate_limit",
    "client_key",
    "RateLimitExceeded",
]
