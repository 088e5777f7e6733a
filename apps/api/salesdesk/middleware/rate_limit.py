from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from salesdesk.api.errors import error_response
from salesdesk.core.auth import bearer_token
from salesdesk.core.config import get_settings
from salesdesk.core.context import client_ip
from salesdesk.metrics import observe_rate_limited


RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


@dataclass
class _BucketState:
    tokens: float
    last_refill: float


class _TokenBucketLimiter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[str, _BucketState] = {}
        self._last_sweep = time.monotonic()

    def take(self, client_key: str, capacity: int, window_seconds: int) -> tuple[bool, int]:
        if capacity <= 0:
            return False, window_seconds

        now = time.monotonic()
        refill_rate = capacity / float(window_seconds)

        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._evict_full(now, capacity, refill_rate)

            current = self._buckets.get(client_key)
            if current is None:
                current = _BucketState(tokens=float(capacity), last_refill=now)
                self._buckets[client_key] = current

            elapsed = max(0.0, now - current.last_refill)
            current.tokens = min(float(capacity), current.tokens + (elapsed * refill_rate))
            current.last_refill = now

            if current.tokens < 1.0:
                retry_after = max(1, math.ceil((1.0 - current.tokens) / refill_rate))
                return False, retry_after

            current.tokens -= 1.0
            return True, 0

    def _evict_full(self, now: float, capacity: int, refill_rate: float) -> None:
        # A bucket that has refilled to capacity is indistinguishable from a fresh one.
        self._buckets = {
            key: state
            for key, state in self._buckets.items()
            if state.tokens + (now - state.last_refill) * refill_rate < capacity
        }
        self._last_sweep = now

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = _TokenBucketLimiter()


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle every ``/api/`` request per client over a rolling window."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or not request.url.path.startswith("/api/"):
            return await call_next(request)

        allowed, retry_after = _limiter.take(
            client_key=_resolve_client_key(request),
            capacity=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
        if allowed:
            return await call_next(request)

        observe_rate_limited()
        response = error_response(request, status_code=429, message=RATE_LIMIT_MESSAGE)
        response.headers["Retry-After"] = str(retry_after)
        return response


def _resolve_client_key(request: Request) -> str:
    token = bearer_token(request)
    if token:
        settings = get_settings()
        try:
            payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        except JWTError:
            payload = {}
        subject = payload.get("sub")
        if subject is not None:
            return f"user:{subject}"
    return f"ip:{client_ip(request) or 'unknown'}"


def reset_rate_limiter() -> None:
    _limiter.clear()
