"""API routers."""

from flowops.routers.ai import router as ai_router
from flowops.routers.audit import router as audit_router
from flowops.routers.chat import router as chat_router
from flowops.routers.handoffs import router as handoffs_router
from flowops.routers.ops import router as ops_router

__all__ = [
    "ai_router",
    "audit_router",
    "chat_router",
    "handoffs_router",
    "ops_router",
]
