"""Example routes showing per-route and per-router limits."""

from __future__ import annotations

from fastapi import APIRouter

from quota_gate.core.rate_limit import limit

router = APIRouter(tags=["Demo"])


@router.get("/fast", dependencies=[limit("100/second")])
async def fast() -> dict:
    return {"message": "Fast"}


@router.get("/slow", dependencies=[limit("5/minute")])
async def slow() -> dict:
    return {"message": "Slow"}


# Each route of the group gets its own 100/hour budget per caller, keyed by
# the route's own pattern.
slow_group_router = APIRouter(
    prefix="/slow-group",
    tags=["Demo"],
    dependencies=[limit("100/hour")],
)


@slow_group_router.get("/one")
async def slow_one() -> dict:
    return {"message": "SlowOne"}


@slow_group_router.get("/two")
async def slow_two() -> dict:
    return {"message": "SlowTwo"}


router.include_router(slow_group_router)
