"""Per-request context: request ids, account-scoped logging and caller quotas.

Every API request gets a request id and, when it names one through
``X-Account-Id``, the account it works in; both flow into log records
through context variables.

Quotas are counted per caller *within* an account. A caller is the
authenticated user (token subject, or ``X-User-Id`` while auth is off);
anonymous callers fall back to their address. One busy account therefore
never exhausts the quota a user has in another account, and users behind a
shared proxy do not share a quota.
"""

import logging
import threading
import time
import uuid
from typing import Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.config import settings
from ..core.logging_config import account_id_var, request_id_var
from ..core.token_factory import decode_token
from ..exceptions import ErrorCode

logger = logging.getLogger(__name__)

Bucket = Dict[str, Tuple[float, float]]

# Health checks and API docs are never throttled.
_UNMETERED = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})


def check_rate_limit(
    bucket: Bucket,
    key: str,
    max_per_minute: int,
    now: Optional[float] = None,
) -> Tuple[bool, float]:
    """Spend one token for *key*, refilling at ``max_per_minute / 60`` per second.

    Returns ``(allowed, retry_after)``. *retry_after* is the number of
    seconds until a token is available again, 0.0 when allowed. A
    non-positive limit disables metering.
    """
    if max_per_minute <= 0:
        return True, 0.0
    if now is None:
        now = time.monotonic()

    per_second = max_per_minute / 60.0
    tokens, seen = bucket.get(key, (float(max_per_minute), now))
    tokens = min(float(max_per_minute), tokens + (now - seen) * per_second)

    if tokens < 1.0:
        bucket[key] = (tokens, now)
        return False, (1.0 - tokens) / per_second
    bucket[key] = (tokens - 1.0, now)
    return True, 0.0


class CallerQuotas:
    """Token buckets for every caller seen recently, safe across threads.

    Buckets idle for longer than *idle_seconds* are full again anyway and
    are dropped every *sweep_every* checks.
    """

    def __init__(self, idle_seconds: float = 120.0, sweep_every: int = 100):
        self.buckets: Bucket = {}
        self.idle_seconds = idle_seconds
        self.sweep_every = sweep_every
        self._checks = 0
        self._lock = threading.Lock()

    def spend(self, key: str, max_per_minute: int, now: Optional[float] = None) -> Tuple[bool, float]:
        if now is None:
            now = time.monotonic()
        with self._lock:
            self._checks += 1
            if self._checks % self.sweep_every == 0:
                self._sweep(now)
            return check_rate_limit(self.buckets, key, max_per_minute, now)

    def clear(self) -> None:
        with self._lock:
            self.buckets.clear()
            self._checks = 0

    def _sweep(self, now: float) -> None:
        cutoff = now - self.idle_seconds
        for key in [k for k, (_, seen) in self.buckets.items() if seen < cutoff]:
            del self.buckets[key]


quotas = CallerQuotas()


def _address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def caller_key(request: Request) -> str:
    """Quota key ``<caller>@<account>`` for *request*.

    The token is only decoded here, not trusted for access: a forged or
    expired token simply counts against the caller's address.
    """
    caller = None
    if settings.auth_enabled:
        scheme, _, token = request.headers.get("authorization", "").partition(" ")
        if scheme.lower() == "bearer" and token:
            payload = decode_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
            if payload is not None:
                caller = f"user:{payload.sub}"
    elif request.headers.get("x-user-id"):
        caller = f"user:{request.headers['x-user-id']}"
    if caller is None:
        caller = f"addr:{_address(request)}"

    account_id = request.headers.get("x-account-id")
    return f"{caller}@{account_id}" if account_id else caller


def _too_many_requests(key: str, retry_after: float, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.RATE_LIMITED.value,
                "message": "Too many requests",
                "details": {"retry_after": round(retry_after, 1), "caller": key},
            },
        },
        headers={"Retry-After": str(int(retry_after) + 1), "X-Request-ID": request_id},
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Sets the log context, meters callers and times every request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request_id_var.set(request_id)
        account_id_var.set(request.headers.get("x-account-id", ""))
        path = request.url.path

        if path not in _UNMETERED:
            key = caller_key(request)
            allowed, retry_after = quotas.spend(key, settings.rate_limit_per_minute)
            if not allowed:
                logger.warning(
                    "Caller over quota",
                    extra={"caller": key, "path": path, "retry_after": round(retry_after, 1)},
                )
                return _too_many_requests(key, retry_after, request_id)

        started = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - started) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        logger.info(
            f"{request.method} {path} {response.status_code}",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
