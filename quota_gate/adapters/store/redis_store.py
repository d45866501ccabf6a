"""Redis counter store adapter.

Uses the asyncio client from redis-py. All Redis failures are translated to
``StoreAppError`` subclasses so the rate limiter never sees driver-specific
exceptions.
"""

from __future__ import annotations

import logging
from typing import Awaitable, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from quota_gate.adapters.store.base import AbstractCounterStore
from quota_gate.core.errors import (
    StoreAppError,
    StoreDataCorruptError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# INCR and, on the first hit of a window, EXPIRE as one server-side step.
INCR_WITH_EXPIRY_SCRIPT = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return current
"""

# Replies Redis sends when the value at a key cannot be used as a counter.
_CORRUPT_VALUE_MARKERS = ("WRONGTYPE", "not an integer")


def _translate_error(exc: RedisError, operation: str) -> StoreAppError:
    """Map a redis-py exception to the store error taxonomy.

    Args:
        exc: Exception raised by the Redis client.
        operation: Store operation that failed (for diagnostics).

    Returns:
        StoreDataCorruptError for value-related replies, otherwise
        StoreUnavailableError.
    """
    if isinstance(exc, ResponseError) and any(
        marker in str(exc) for marker in _CORRUPT_VALUE_MARKERS
    ):
        return StoreDataCorruptError(operation)
    return StoreUnavailableError(operation)


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by a shared Redis instance.

    One instance (and its connection pool) is created per process at startup
    and shared by all requests.
    """

    def __init__(self, client: Redis) -> None:
        """Wrap an existing asyncio Redis client.

        Args:
            client: Client created with ``decode_responses=True``.
        """
        self._client = client
        self._incr_with_expiry = client.register_script(INCR_WITH_EXPIRY_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = None,
        socket_connect_timeout: float | None = None,
    ) -> "RedisCounterStore":
        """Create a store from a Redis URL.

        Args:
            url: e.g. ``redis://:password@localhost:6379/0?protocol=3``.
            socket_timeout: Per-command timeout in seconds.
            socket_connect_timeout: Connection timeout in seconds.

        Returns:
            RedisCounterStore using a new connection pool.
        """
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
        )
        return cls(client)

    async def _run(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as exc:
            error = _translate_error(exc, operation)
            logger.warning(
                "store.redis_error",
                extra={
                    "operation": operation,
                    "error_code": error.code,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            raise error from exc

    async def get(self, key: str) -> str | None:
        return await self._run("get", self._client.get(key))

    async def set(self, key: str, value: int, *, expiry_seconds: int) -> None:
        await self._run("set", self._client.set(key, value, ex=expiry_seconds))

    async def incr(self, key: str) -> int:
        return int(await self._run("incr", self._client.incr(key)))

    async def ttl(self, key: str) -> int | None:
        remaining = await self._run("ttl", self._client.ttl(key))
        # -2: key does not exist, -1: key has no expiry
        if remaining is None or remaining < 0:
            return None
        return int(remaining)

    async def incr_with_expiry(self, key: str, *, expiry_seconds: int) -> int:
        result = await self._run(
            "incr_with_expiry",
            self._incr_with_expiry(keys=[key], args=[expiry_seconds]),
        )
        return int(result)

    async def ping(self) -> None:
        await self._run("ping", self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
