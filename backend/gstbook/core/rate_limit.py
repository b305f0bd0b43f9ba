"""
Rate Limiting
Attempt counters keyed by string, with an in-memory and a Redis backend
"""
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import math
import threading
import time
import uuid
import logging

import redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


# (max_attempts, window_seconds)
RATE_LIMITS: Dict[str, Tuple[int, int]] = {
    "sign_in": (5, 60),
    "sign_up": (3, 60),
    "forgot_password": (3, 60),
    "reset_password": (5, 60),
    "verify_email": (5, 60),
    "resend_verification": (3, 300),
    "webhook": (60, 60),
}


class RateLimitStore:
    """Interface shared by the limiter backends"""

    def check(self, key: str, max_attempts: int, window_seconds: int) -> RateLimitResult:
        raise NotImplementedError

    def reset(self, key: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class InMemoryRateLimitStore(RateLimitStore):
    """
    Fixed-window counter held in process memory.

    Only safe for a single process: each worker keeps its own counts, so a
    multi-instance deployment must use RedisRateLimitStore.
    """

    CLEANUP_EVERY = 500

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._checks = 0

    def _purge_expired(self, now: float):
        expired = [key for key, (_, reset_at) in self._entries.items() if reset_at <= now]
        for key in expired:
            del self._entries[key]

    def check(self, key: str, max_attempts: int, window_seconds: int) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            self._checks += 1
            if self._checks % self.CLEANUP_EVERY == 0:
                self._purge_expired(now)

            entry = self._entries.get(key)
            if entry is None or entry[1] <= now:
                self._entries[key] = (1, now + window_seconds)
                return RateLimitResult(allowed=True, remaining=max_attempts - 1)

            count, reset_at = entry
            if count >= max_attempts:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    retry_after_seconds=max(1, math.ceil(reset_at - now))
                )

            self._entries[key] = (count + 1, reset_at)
            return RateLimitResult(allowed=True, remaining=max_attempts - count - 1)

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class RedisRateLimitStore(RateLimitStore):
    """Sliding-window counter on a Redis sorted set, shared by all instances"""

    def __init__(self, client: redis.Redis, prefix: str = "ratelimit", clock: Callable[[], float] = time.time):
        self.client = client
        self.prefix = prefix
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimitStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def check(self, key: str, max_attempts: int, window_seconds: int) -> RateLimitResult:
        redis_key = self._key(key)
        now = self._clock()
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        pipe = self.client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
        pipe.zadd(redis_key, {member: now})
        pipe.zcard(redis_key)
        pipe.expire(redis_key, window_seconds)
        _, _, count, _ = pipe.execute()

        if count <= max_attempts:
            return RateLimitResult(allowed=True, remaining=max_attempts - count)

        # Denied attempts do not occupy the window
        self.client.zrem(redis_key, member)
        oldest = self.client.zrange(redis_key, 0, 0, withscores=True)
        if oldest:
            retry_after = math.ceil(oldest[0][1] + window_seconds - now)
        else:
            retry_after = window_seconds
        return RateLimitResult(allowed=False, remaining=0, retry_after_seconds=max(1, retry_after))

    def reset(self, key: str) -> None:
        self.client.delete(self._key(key))

    def close(self) -> None:
        self.client.close()


def build_rate_limiter(settings) -> RateLimitStore:
    """Create the process-wide limiter store; called once at startup"""
    if settings.REDIS_URL:
        logger.info("Using Redis rate limiter")
        return RedisRateLimitStore.from_url(settings.REDIS_URL)
    logger.info("Using in-memory rate limiter (single instance only)")
    return InMemoryRateLimitStore()


def get_rate_limiter(request: Request) -> RateLimitStore:
    """Dependency returning the store created in the app lifespan"""
    return request.app.state.rate_limiter


def check_rate_limit(store: RateLimitStore, preset: str, identifier: str) -> RateLimitResult:
    max_attempts, window = RATE_LIMITS[preset]
    return store.check(f"{preset}:{identifier.lower()}", max_attempts, window)


def enforce_rate_limit(store: RateLimitStore, preset: str, identifier: str) -> RateLimitResult:
    """Raise 429 when the identifier has used up its attempts for the preset"""
    result = check_rate_limit(store, preset, identifier)
    if not result.allowed:
        logger.warning(f"Rate limit exceeded for {preset}:{identifier}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many attempts. Please try again in {result.retry_after_seconds} seconds.",
            headers={"Retry-After": str(result.retry_after_seconds)}
        )
    return result


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client budget for mutating API requests"""

    def __init__(self, app, max_requests: int = 100, window_seconds: int = 60, enabled: bool = True):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or not request.url.path.startswith('/api/'):
            return await call_next(request)

        if request.method in ['GET', 'HEAD', 'OPTIONS']:
            return await call_next(request)

        store: Optional[RateLimitStore] = getattr(request.app.state, "rate_limiter", None)
        if store is None:
            return await call_next(request)

        key = f"api:{get_client_ip(request)}"
        result = store.check(key, self.max_requests, self.window_seconds)

        if not result.allowed:
            logger.warning(f"Rate limit exceeded: {request.url.path} from {key}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    'detail': 'Too many requests. Please try again later.',
                    'retry_after': result.retry_after_seconds
                },
                headers={
                    'Retry-After': str(result.retry_after_seconds),
                    'X-RateLimit-Limit': str(self.max_requests),
                    'X-RateLimit-Remaining': '0',
                }
            )

        response = await call_next(request)
        response.headers['X-RateLimit-Limit'] = str(self.max_requests)
        response.headers['X-RateLimit-Remaining'] = str(result.remaining)
        return response
