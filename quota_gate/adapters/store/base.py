"""Counter store interface.

The rate limiter should depend on this abstraction (not the concrete
implementation) so the storage backend can be swapped without touching the
decision logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCounterStore(ABC):
    """Interface for key-value stores holding fixed-window counters.

    Implementations raise ``StoreUnavailableError`` on connection, timeout or
    protocol failures and ``StoreDataCorruptError`` when the store rejects an
    operation because of the value held at the key.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the raw value stored at key, or None when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: int, *, expiry_seconds: int) -> None:
        """Create or overwrite key and (re)set its expiry.

        Args:
            key: Counter key.
            value: Counter value to store.
            expiry_seconds: Time-to-live in seconds.
        """
        raise NotImplementedError

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment key by one, leaving its expiry untouched.

        Returns:
            The incremented value.
        """
        raise NotImplementedError

    @abstractmethod
    async def ttl(self, key: str) -> int | None:
        """Return the remaining time-to-live in whole seconds.

        Returns:
            Seconds until expiry, or None when the key is absent or has no
            expiry.
        """
        raise NotImplementedError

    @abstractmethod
    async def incr_with_expiry(self, key: str, *, expiry_seconds: int) -> int:
        """Atomically increment key and set its expiry when the result is 1.

        Both steps run as a single store-side operation, so no other client
        can observe the counter between them.

        Returns:
            The incremented value.
        """
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> None:
        """Verify the store is reachable."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the store client."""
        raise NotImplementedError
