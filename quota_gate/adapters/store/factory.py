"""Factory pattern for creating counter store instances."""

from __future__ import annotations

import asyncio
import logging

from quota_gate.adapters.store.base import AbstractCounterStore
from quota_gate.adapters.store.in_memory import InMemoryCounterStore
from quota_gate.adapters.store.redis_store import RedisCounterStore
from quota_gate.core.config import StoreSettings, settings
from quota_gate.core.errors import StoreUnavailableError, ValidationAppError

logger = logging.getLogger(__name__)


def create_counter_store(store_settings: StoreSettings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store selected by configuration.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        AbstractCounterStore: Configured, not yet verified, store instance.

    Raises:
        ValidationAppError: If the configured backend is unknown.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "redis":
        return RedisCounterStore.from_url(
            cfg.url,
            socket_timeout=cfg.socket_timeout_seconds,
            socket_connect_timeout=cfg.connect_timeout_seconds,
        )

    if backend == "memory":
        logger.warning(
            "store.in_memory_backend",
            extra={"reason": "counters_are_per_process"},
        )
        return InMemoryCounterStore()

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported backends: redis, memory",
    )


async def connect_counter_store(
    store_settings: StoreSettings | None = None,
) -> AbstractCounterStore:
    """Create the configured store and verify it is reachable.

    Called once at application startup; a store that cannot be reached
    prevents the application from starting.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        AbstractCounterStore: Connected store.

    Raises:
        StoreUnavailableError: If the ping fails or exceeds the connect timeout.
    """
    cfg = store_settings or settings.store
    store = create_counter_store(cfg)

    try:
        await asyncio.wait_for(store.ping(), timeout=cfg.connect_timeout_seconds)
    except asyncio.TimeoutError as exc:
        await store.close()
        logger.error(
            "store.connect_timeout",
            extra={"backend": cfg.backend, "timeout_s": cfg.connect_timeout_seconds},
        )
        raise StoreUnavailableError("ping") from exc
    except StoreUnavailableError:
        await store.close()
        logger.error("store.connect_failed", extra={"backend": cfg.backend})
        raise

    logger.info("store.connected", extra={"backend": cfg.backend})
    return store
