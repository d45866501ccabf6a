"""Fixed-window rate limit decisions against a shared counter store.

This service is the core of the package. For a counter key and a limit it
decides whether one more request may proceed, updating the counter held in
the store. It handles:
- First request of a window (create the counter with the window as expiry)
- Subsequent requests (increment while under quota, deny otherwise)
- Store failures (deny with an error, distinct from quota exhaustion)

Two strategies are available:
- ``check_then_act``: GET, then SET or INCR in a separate round-trip. Racing
  requests within one window can be admitted past the quota; the limit is
  approximate under contention.
- ``atomic``: one server-side INCR+EXPIRE. Admits at most ``quota`` requests
  per window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from quota_gate.adapters.store.base import AbstractCounterStore
from quota_gate.core.errors import StoreAppError, StoreDataCorruptError
from quota_gate.services.limit_spec import LimitSpec

logger = logging.getLogger(__name__)

RateLimitStrategy = Literal["check_then_act", "atomic"]


@dataclass(frozen=True)
class Verdict:
    """Outcome of one rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Quota of the applied limit.
        remaining: Requests left in the current window (0 when blocked).
        retry_after_seconds: Seconds until the window resets, when denied by
            quota and known.
        error: Store failure that prevented a decision. Set only on
            infrastructure failures, never on a plain quota deny.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int | None = None
    error: StoreAppError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def _parse_count(value: str) -> int:
    """Parse a stored counter value.

    Raises:
        StoreDataCorruptError: If the value is not an integer.
    """
    try:
        return int(value)
    except ValueError as exc:
        raise StoreDataCorruptError("get") from exc


class FixedWindowRateLimiter:
    """Fixed-window rate limiter over a shared counter store.

    The store handle is long-lived and shared by all requests of the
    process; the limiter itself holds no per-key state.

    Attributes:
        store: Counter store holding one record per key and window.
        strategy: ``check_then_act`` or ``atomic``.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        strategy: RateLimitStrategy = "check_then_act",
    ) -> None:
        if strategy not in ("check_then_act", "atomic"):
            raise ValueError(f"unknown rate limit strategy: {strategy!r}")
        self.store = store
        self.strategy = strategy

    @staticmethod
    def _allowed(spec: LimitSpec, count: int) -> Verdict:
        return Verdict(
            allowed=True,
            limit=spec.quota,
            remaining=max(0, spec.quota - count),
        )

    async def _denied(self, key: str, spec: LimitSpec) -> Verdict:
        retry_after = await self.store.ttl(key)
        return Verdict(
            allowed=False,
            limit=spec.quota,
            remaining=0,
            retry_after_seconds=retry_after,
        )

    async def _check_then_act(self, key: str, spec: LimitSpec) -> Verdict:
        value = await self.store.get(key)

        if value is None:
            await self.store.set(key, 1, expiry_seconds=spec.window_seconds)
            return self._allowed(spec, 1)

        count = _parse_count(value)
        if count >= spec.quota:
            return await self._denied(key, spec)

        count = await self.store.incr(key)
        if count == 1:
            # Expired between GET and INCR; INCR recreated it without a TTL.
            await self.store.set(key, 1, expiry_seconds=spec.window_seconds)
        return self._allowed(spec, count)

    async def _check_atomic(self, key: str, spec: LimitSpec) -> Verdict:
        count = await self.store.incr_with_expiry(key, expiry_seconds=spec.window_seconds)
        if count > spec.quota:
            return await self._denied(key, spec)
        return self._allowed(spec, count)

    async def check(self, key: str, spec: LimitSpec) -> Verdict:
        """Consume one request from the key's budget for the current window.

        Args:
            key: Counter key (see ``build_counter_key``).
            spec: Limit applied to the key.

        Returns:
            Verdict. Store failures are returned as a denied verdict with
            ``error`` set rather than raised.
        """
        if spec.quota == 0:
            return Verdict(
                allowed=False,
                limit=0,
                remaining=0,
                retry_after_seconds=spec.window_seconds,
            )

        try:
            if self.strategy == "atomic":
                return await self._check_atomic(key, spec)
            return await self._check_then_act(key, spec)
        except StoreAppError as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "error_code": exc.code,
                    "strategy": self.strategy,
                    "limit": str(spec),
                },
            )
            return Verdict(allowed=False, limit=spec.quota, remaining=0, error=exc)
