"""Rate limiting dependency for FastAPI routes.

This module wires the rate limit service into the HTTP layer.

Design goals:
- Minimal coupling: routes declare a limit string, nothing else.
- Fail at startup: limit strings are parsed when the route is declared.
- Shared state lives in the counter store, reached through the limiter
  installed on ``app.state`` by the application lifespan.

Rate limiting strategy:
- Fixed-window limit per (route pattern, client address, limit).
- Store failures reject the request with a server error unless fail-open is
  configured.

Usage:
    @router.get("/slow", dependencies=[limit("5/minute")])
    async def slow(): ...
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Depends, HTTPException, Request, status

from quota_gate.core.config import settings
from quota_gate.core.errors import StoreUnavailableError
from quota_gate.services.limit_spec import LimitSpec, build_counter_key, parse_limit
from quota_gate.services.rate_limit_service import FixedWindowRateLimiter, Verdict

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    """Return the process-wide limiter installed by the application lifespan.

    Raises:
        StoreUnavailableError: If the application started without a store
            (e.g. the lifespan did not run).
    """
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise StoreUnavailableError("lookup")
    return limiter


def _route_identity(request: Request) -> str:
    """Return the canonical route pattern for the matched route.

    ``/items/{item_id}`` rather than ``/items/42``, so every caller of a
    logical endpoint shares one quota family.
    """
    route = request.scope.get("route")
    path_format = getattr(route, "path_format", None)
    if path_format:
        return path_format
    return request.url.path


def _caller_identity(request: Request) -> str:
    """Return the effective client address for the request."""
    if settings.app.rate_limit_trust_forwarded_for:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            first_hop = forwarded_for.split(",")[0].strip()
            if first_hop:
                return first_hop

    return request.client.host if request.client else "unknown"


def _hash_counter_key(key: str) -> str:
    """Hash the counter key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _throttle_headers(verdict: Verdict) -> dict[str, str]:
    headers: dict[str, str] = {}
    if not settings.app.rate_limit_include_headers:
        return headers
    if verdict.retry_after_seconds is not None:
        headers["Retry-After"] = str(verdict.retry_after_seconds)
    headers["X-RateLimit-Limit"] = str(verdict.limit)
    headers["X-RateLimit-Remaining"] = str(verdict.remaining)
    return headers


class RateLimit:
    """FastAPI dependency enforcing one fixed-window limit.

    The limit string is parsed on construction, so declaring a route with an
    invalid limit raises ``InvalidLimitSpecError`` at import time.

    Attributes:
        spec: Parsed limit.
    """

    def __init__(self, limit: str) -> None:
        self.spec: LimitSpec = parse_limit(limit)

    def __repr__(self) -> str:
        return f"RateLimit({str(self.spec)!r})"

    async def __call__(self, request: Request) -> None:
        """Consume one unit of the caller's budget for this route.

        Args:
            request: FastAPI request.

        Raises:
            HTTPException: 429 Too Many Requests when the quota is exhausted.
            StoreAppError: When the store failed and fail-open is disabled.
        """
        if not settings.app.rate_limit_enabled:
            return

        limiter = get_rate_limiter(request)
        route = _route_identity(request)
        key = build_counter_key(
            route,
            _caller_identity(request),
            self.spec,
            prefix=settings.app.rate_limit_key_prefix,
        )
        key_hash = _hash_counter_key(key)
        logger.debug("rate_limit.key", extra={"counter_key": key})

        verdict = await limiter.check(key, self.spec)
        log_fields = {
            "route": route,
            "key_hash": key_hash,
            "limit": str(self.spec),
            "remaining": verdict.remaining,
        }

        if verdict.allowed:
            logger.info("rate_limit.allowed", extra=log_fields)
            return

        if verdict.error is not None:
            if settings.app.rate_limit_fail_open:
                logger.warning(
                    "rate_limit.fail_open",
                    extra={**log_fields, "error_code": verdict.error.code},
                )
                return
            raise verdict.error

        logger.warning(
            "rate_limit.exceeded",
            extra={**log_fields, "retry_after_s": verdict.retry_after_seconds},
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers=_throttle_headers(verdict) or None,
        )


def limit(limit_string: str):
    """Build a route dependency enforcing ``limit_string``.

    Example:
        >>> router = APIRouter(dependencies=[limit("100/hour")])
    """
    return Depends(RateLimit(limit_string))
