"""
Fixed-window rate limiting on top of the ``limits`` library.

Each request is counted against a bucket (``auth``, ``api`` or ``default``)
for one client. Counters live in a ``limits`` storage (process memory by
default), which also expires finished windows. Limits and the on/off switch
can be changed at runtime; the scheduler reloads them from the settings table.
"""

import time
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.exceptions import AuthenticationError, RateLimitExceededError
from core.security import decode_access_token

logger = logging.getLogger(__name__)

AUTH_BUCKET = "auth"
API_BUCKET = "api"
DEFAULT_BUCKET = "default"

FALLBACK_LIMIT = 100


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(1, int(self.reset_at - now + 0.999))


class RateLimiter:
    """
    Per-bucket fixed-window limiter.

    Args:
        limits: Requests allowed per window, by bucket name
        window_seconds: Window length
        enabled: When false the middleware lets every request through
        storage: ``limits`` storage backend (in-memory when omitted)
    """

    def __init__(
        self,
        limits: Dict[str, int],
        window_seconds: int = 60,
        enabled: bool = True,
        storage: Optional[Storage] = None
    ):
        self.storage = storage or MemoryStorage()
        self.strategy = FixedWindowRateLimiter(self.storage)
        self.enabled = enabled
        self.window_seconds = window_seconds
        self.limits: Dict[str, int] = {}
        self._items: Dict[str, RateLimitItem] = {}
        self.configure(limits, window_seconds)

    def configure(
        self,
        limits: Dict[str, int],
        window_seconds: Optional[int] = None,
        enabled: Optional[bool] = None
    ) -> None:
        """
        Replace limits, window length and/or the on/off switch.

        A changed limit or window starts fresh counters for that bucket.
        """
        if window_seconds:
            self.window_seconds = window_seconds
        self.limits.update(limits)
        self._items = {
            bucket: RateLimitItemPerSecond(amount, self.window_seconds, namespace=bucket)
            for bucket, amount in self.limits.items()
        }
        if enabled is not None and enabled != self.enabled:
            logger.info(f"Rate limiting {'enabled' if enabled else 'disabled'}")
            self.enabled = enabled

    def item_for(self, bucket: str) -> RateLimitItem:
        item = self._items.get(bucket) or self._items.get(DEFAULT_BUCKET)
        if item is None:
            item = RateLimitItemPerSecond(FALLBACK_LIMIT, self.window_seconds, namespace=bucket)
        return item

    def limit_for(self, bucket: str) -> int:
        return self.item_for(bucket).amount

    def _result(self, item: RateLimitItem, identifier: str, allowed: bool) -> RateLimitResult:
        stats = self.strategy.get_window_stats(item, identifier)
        return RateLimitResult(
            allowed=allowed,
            limit=item.amount,
            remaining=max(0, stats.remaining),
            reset_at=stats.reset_time,
        )

    def hit(self, bucket: str, identifier: str) -> RateLimitResult:
        """Count one request and report whether it is within the limit."""
        item = self.item_for(bucket)
        allowed = self.strategy.hit(item, identifier)
        return self._result(item, identifier, allowed)

    def peek(self, bucket: str, identifier: str) -> RateLimitResult:
        """Current window state without counting a request."""
        item = self.item_for(bucket)
        return self._result(item, identifier, self.strategy.test(item, identifier))

    def reset(self) -> None:
        self.storage.reset()


rate_limiter = RateLimiter(
    limits={
        DEFAULT_BUCKET: settings.RATE_LIMIT_DEFAULT,
        API_BUCKET: settings.RATE_LIMIT_API,
        AUTH_BUCKET: settings.RATE_LIMIT_AUTH,
    },
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    enabled=settings.RATE_LIMIT_ENABLED,
)


def classify_path(path: str) -> str:
    if path.startswith("/api/auth"):
        return AUTH_BUCKET
    if path.startswith("/api/"):
        return API_BUCKET
    return DEFAULT_BUCKET


def client_identifier(request: Request) -> str:
    """Token subject when a valid bearer token is sent, else the client IP."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        try:
            claims = decode_access_token(auth_header[7:].strip())
            return f"user:{claims['sub']}"
        except AuthenticationError:
            pass

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests over the limit with 429 and adds ``X-RateLimit-*``
    headers to every limited response. ``limiter.enabled`` is read on every
    request so the switch can be flipped without a restart.
    """

    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or rate_limiter

    async def dispatch(self, request: Request, call_next):
        if not self.limiter.enabled:
            return await call_next(request)

        bucket = classify_path(request.url.path)
        identifier = client_identifier(request)
        result = self.limiter.hit(bucket, identifier)

        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(int(result.reset_at)),
        }

        if not result.allowed:
            request_id = getattr(request.state, "request_id", None)
            logger.warning(f"[{request_id}] Rate limit exceeded: bucket={bucket} id={identifier}")
            error = RateLimitExceededError(
                "Too many requests",
                context={"bucket": bucket},
                retry_after=result.retry_after(),
            )
            headers["Retry-After"] = str(error.retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content={"error": error.message, "code": error.error_code, "request_id": request_id},
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
