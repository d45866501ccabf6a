from __future__ import annotations

from fastapi import APIRouter, Request

from quota_gate.core.errors import StoreUnavailableError

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness check: the counter store answers a ping.

    Raises:
        StoreUnavailableError: If the store is not connected or unreachable
            (rendered as a 500 by the exception handlers).
    """

    store = getattr(request.app.state, "counter_store", None)
    if store is None:
        raise StoreUnavailableError("ping")
    await store.ping()
    return {"status": "ok", "store": "ok"}
