"""Rate limiting configuration for the FlowOps API."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from flowops.core.config import settings

# Single-process deployment; limits are kept in memory
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
CHAT_LIMIT = f"{settings.RATE_LIMIT_CHAT}/minute" if settings.RATE_LIMIT_CHAT > 0 else None

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=not IS_TESTING and CHAT_LIMIT is not None,
)


def chat_limit() -> str:
    """Limit string for /chat (evaluated lazily by slowapi)."""
    return CHAT_LIMIT or "1000000/minute"
