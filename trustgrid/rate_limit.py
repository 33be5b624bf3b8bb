"""
TrustGrid — Rate Limiting
Redis-backed sliding window rate limiter for the public endpoints.
"""
import time
import hashlib

import redis
from fastapi import Request, HTTPException
import structlog

from trustgrid.config import settings

logger = structlog.get_logger()

_redis = None
_retry_at = 0.0
RECONNECT_SECONDS = 30


def _get_redis():
    """Lazy Redis connection. After a failure, waits before trying again."""
    global _redis, _retry_at
    if _redis is not None:
        return _redis
    if time.time() < _retry_at:
        return None
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=1)
        client.ping()
        _redis = client
        logger.info("rate_limiter_redis_connected")
        return _redis
    except redis.RedisError as e:
        _retry_at = time.time() + RECONNECT_SECONDS
        logger.warning("rate_limiter_redis_unavailable", error=str(e))
        return None


def _client_ip(request: Request) -> str:
    """Extract client IP, respecting X-Forwarded-For from nginx."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def _rate_key(endpoint: str, *parts: str) -> str:
    digest = hashlib.sha256("|".join(parts).encode()).hexdigest()[:16]
    return f"rl:{endpoint}:{digest}"


async def check_rate_limit(
    request: Request,
    endpoint: str,
    max_requests: int,
    window_seconds: int = 60,
    subject: str = "",
) -> None:
    """
    Sliding window rate limiter using Redis.
    Counts per client IP, or per subject (a handle, a token) when given.
    Raises 429 if limit exceeded.
    Falls through silently if Redis is unavailable (fail-open).
    """
    r = _get_redis()
    if r is None:
        return

    ip = _client_ip(request)
    key = _rate_key(endpoint, subject) if subject else _rate_key(endpoint, ip)
    now = time.time()
    window_start = now - window_seconds

    try:
        pipe = r.pipeline()
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.zcard(key)
        pipe.zadd(key, {str(now): now})
        pipe.expire(key, window_seconds + 1)
        results = pipe.execute()
        current_count = results[1]

        if current_count >= max_requests:
            oldest = r.zrange(key, 0, 0, withscores=True)
            retry_after = int(window_seconds - (now - oldest[0][1])) + 1 if oldest else window_seconds

            logger.warning("rate_limit_exceeded",
                           ip=ip[:8] + "...", endpoint=endpoint, scoped=bool(subject),
                           count=current_count, limit=max_requests)

            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Max {max_requests} requests per {window_seconds}s.",
                headers={"Retry-After": str(retry_after)},
            )
    except redis.RedisError as e:
        logger.warning("rate_limit_check_failed", error=str(e))


async def rate_limit_collect(request: Request, handle: str) -> None:
    """Public collection form submissions, counted per client and wall."""
    ip = _client_ip(request)
    await check_rate_limit(
        request, endpoint="collect", max_requests=settings.COLLECT_RATE_LIMIT,
        subject=f"{ip}|{handle.strip().lower()}",
    )


async def rate_limit_verify(request: Request, token: str) -> None:
    """
    Public confirmation link clicks. One window per client IP caps token
    guessing, a second one per token caps hammering a single link.
    """
    await check_rate_limit(request, endpoint="verify", max_requests=settings.VERIFY_RATE_LIMIT)
    await check_rate_limit(
        request, endpoint="verify-token", max_requests=settings.VERIFY_RATE_LIMIT,
        subject=token,
    )
