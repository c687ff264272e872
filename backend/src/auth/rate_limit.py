"""Rate limiting for authentication endpoints.

Sliding window limit per client fingerprint plus a lockout after repeated
failed logins for the same account. State lives in Redis so limits hold
across API instances; without Redis the limiter lets every request through.
"""

import hashlib
import logging
import os
import time
from typing import Optional

from fastapi import HTTPException, Request, status
from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW", "900"))  # 15 minutes
RATE_LIMIT_MAX_ATTEMPTS = int(os.getenv("RATE_LIMIT_MAX_ATTEMPTS", "10"))
LOCKOUT_DURATION_SECONDS = int(os.getenv("LOCKOUT_DURATION", "1800"))  # 30 minutes
LOCKOUT_THRESHOLD = int(os.getenv("LOCKOUT_THRESHOLD", "10"))

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


def get_redis_client() -> Optional[Redis]:
    """Return a connected Redis client, or None when Redis is unreachable."""
    if os.getenv("RATE_LIMIT_DISABLED", "").lower() in ("true", "1", "yes"):
        return None
    try:
        client = Redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=1)
        client.ping()
        return client
    except RedisError as e:
        logger.warning(f"Redis unavailable, login rate limiting disabled: {e}")
        return None


def _get_client_identifier(request: Request) -> str:
    """Hash of client IP and User-Agent."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        ip = "unknown"

    fingerprint = f"{ip}:{request.headers.get('User-Agent', '')}"
    return hashlib.sha256(fingerprint.encode()).hexdigest()[:32]


def _get_rate_limit_key(identifier: str, endpoint: str) -> str:
    return f"rate_limit:{endpoint}:{identifier}"


def _get_lockout_key(identifier: str) -> str:
    return f"lockout:{identifier}"


def _get_failed_attempts_key(email: str) -> str:
    return f"failed_attempts:{hashlib.sha256(email.lower().encode()).hexdigest()[:32]}"


class RateLimiter:
    """Rate limiter using a Redis sorted-set sliding window."""

    def __init__(self, redis: Optional[Redis] = None):
        self.redis = redis

    def is_rate_limited(self, request: Request, endpoint: str = "auth") -> bool:
        if not self.redis:
            return False

        key = _get_rate_limit_key(_get_client_identifier(request), endpoint)
        window_start = int(time.time()) - RATE_LIMIT_WINDOW_SECONDS

        self.redis.zremrangebyscore(key, 0, window_start)
        return self.redis.zcard(key) >= RATE_LIMIT_MAX_ATTEMPTS

    def record_attempt(self, request: Request, endpoint: str = "auth") -> int:
        """Record an attempt and return the count in the current window."""
        if not self.redis:
            return 0

        key = _get_rate_limit_key(_get_client_identifier(request), endpoint)
        now = time.time()

        self.redis.zadd(key, {f"{now:.6f}": int(now)})
        self.redis.expire(key, RATE_LIMIT_WINDOW_SECONDS)
        return self.redis.zcard(key)

    def is_locked_out(self, request: Request) -> bool:
        if not self.redis:
            return False
        return self.redis.exists(_get_lockout_key(_get_client_identifier(request))) > 0

    def get_lockout_remaining(self, request: Request) -> int:
        """Seconds remaining in lockout, or 0 if not locked out."""
        if not self.redis:
            return 0
        ttl = self.redis.ttl(_get_lockout_key(_get_client_identifier(request)))
        return max(0, ttl)

    def record_failed_login(self, email: str, request: Request) -> bool:
        """Count a failed login for the account; True if the client is now locked out."""
        if not self.redis:
            return False

        account_key = _get_failed_attempts_key(email)
        attempts = self.redis.incr(account_key)
        self.redis.expire(account_key, RATE_LIMIT_WINDOW_SECONDS)

        if attempts >= LOCKOUT_THRESHOLD:
            lockout_key = _get_lockout_key(_get_client_identifier(request))
            self.redis.setex(lockout_key, LOCKOUT_DURATION_SECONDS, "1")
            logger.warning(f"Login lockout triggered after {attempts} failed attempts")
            return True

        return False

    def clear_failed_attempts(self, email: str) -> None:
        if not self.redis:
            return
        self.redis.delete(_get_failed_attempts_key(email))


rate_limiter = RateLimiter(get_redis_client())


def check_rate_limit(request: Request) -> None:
    """FastAPI dependency: raise 429 when the client is locked out or over the limit."""
    if rate_limiter.is_locked_out(request):
        remaining = rate_limiter.get_lockout_remaining(request)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many failed attempts. Account locked for {remaining} seconds.",
            headers={"Retry-After": str(remaining)}
        )

    if rate_limiter.is_rate_limited(request, "auth"):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please wait before trying again.",
            headers={"Retry-After": str(RATE_LIMIT_WINDOW_SECONDS)}
        )

    rate_limiter.record_attempt(request, "auth")
