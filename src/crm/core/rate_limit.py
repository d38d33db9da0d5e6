"""In-memory sliding-window rate limiter and its FastAPI request wrapper.

Each client identifier maps to the list of request timestamps (ms) seen in
the current window. Lists live in a bounded LRU cache with a per-entry
lifetime, so idle identifiers age out and the cache never grows past
``max_entries`` identifiers.

State is per process: counts reset on restart and are not shared between
server instances.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from cachetools import TTLCache
from fastapi import Request, Response
from fastapi.responses import JSONResponse

from src.crm.core.monitoring import rate_limit_rejections_total

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Window length in milliseconds and the number of requests allowed in it."""

    interval: int = 60_000
    limit: int = 10

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.limit < 1:
            raise ValueError("limit must be at least 1")


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # unix seconds when the window frees a slot


RATE_LIMITS: dict[str, RateLimitConfig] = {
    "default": RateLimitConfig(interval=60_000, limit=60),
    "auth": RateLimitConfig(interval=60_000, limit=5),
    "email": RateLimitConfig(interval=60_000, limit=10),
    "shipments": RateLimitConfig(interval=60_000, limit=30),
    "webhooks": RateLimitConfig(interval=60_000, limit=100),
}


class RateLimiter:
    """Sliding-window counter keyed by client identifier.

    Args:
        max_entries: Maximum number of identifiers kept (least recently used evicted).
        ttl_seconds: Lifetime of an identifier's entry after its last write.
        clock: Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        max_entries: int = 500,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=clock)
        self._lock = threading.Lock()

    def check(self, identifier: str, config: RateLimitConfig | None = None) -> RateLimitResult:
        """Record a request for ``identifier`` if it fits in the window."""
        config = config or RateLimitConfig()
        now = int(self._clock() * 1000)

        with self._lock:
            timestamps: list[int] = self._cache.get(identifier, [])
            recent = [t for t in timestamps if now - t < config.interval]

            if len(recent) >= config.limit:
                return RateLimitResult(
                    success=False,
                    limit=config.limit,
                    remaining=0,
                    reset=math.ceil((min(recent) + config.interval) / 1000),
                )

            recent.append(now)
            self._cache[identifier] = recent

        return RateLimitResult(
            success=True,
            limit=config.limit,
            remaining=config.limit - len(recent),
            reset=math.ceil((now + config.interval) / 1000),
        )

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter used when the app does not provide its own."""
    return _limiter


def rate_limit(identifier: str, config: RateLimitConfig | None = None) -> RateLimitResult:
    """Check ``identifier`` against the process-wide limiter."""
    return _limiter.check(identifier, config)


def get_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }


def client_identifier(request: Request) -> str:
    """Build the limiter key from the client address and a truncated user agent.

    Proxy headers win over the socket address; ``"unknown"`` only when neither exists.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    elif request.headers.get("x-real-ip"):
        ip = request.headers["x-real-ip"]
    elif request.client is not None and request.client.host:
        ip = request.client.host
    else:
        ip = "unknown"
    user_agent = request.headers.get("user-agent", "unknown")
    return f"{ip}:{user_agent[:50]}"


# ── FastAPI integration ─────────────────────────────────────────────────────


class RateLimitExceeded(Exception):
    """Raised by the rate_limited dependency; rendered as HTTP 429."""

    def __init__(self, result: RateLimitResult) -> None:
        super().__init__(f"Rate limit exceeded: {result.limit} per minute")
        self.result = result


def rate_limited(key: str = "default") -> Callable:
    """Return a dependency that enforces the named entry of RATE_LIMITS.

    Usage:
        @router.post("/create", dependencies=[Depends(rate_limited("shipments"))])

    Successful requests carry X-RateLimit-* headers; rejected requests raise
    RateLimitExceeded before the handler runs.
    """
    config = RATE_LIMITS.get(key, RATE_LIMITS["default"])

    async def _enforce(request: Request, response: Response) -> RateLimitResult:
        limiter = getattr(request.app.state, "rate_limiter", None) or get_rate_limiter()
        identifier = f"{key}:{client_identifier(request)}"
        result = limiter.check(identifier, config)

        if not result.success:
            rate_limit_rejections_total.labels(key=key).inc()
            logger.warning(
                "rate_limit.exceeded",
                key=key,
                identifier=identifier,
                path=request.url.path,
                reset=result.reset,
            )
            raise RateLimitExceeded(result)

        for name, value in get_rate_limit_headers(result).items():
            response.headers[name] = value
        return result

    return _enforce


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Exception handler registered on the app for RateLimitExceeded."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "message": f"Too many requests. Limit: {exc.result.limit} per minute.",
        },
        headers=get_rate_limit_headers(exc.result),
    )
