from __future__ import annotations

from quota_gate.api.routes.demo import router as demo_router
from quota_gate.api.routes.health import router as health_router

__all__ = ["demo_router", "health_router"]
