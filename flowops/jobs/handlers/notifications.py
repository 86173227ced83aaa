"""SLA breach notification handlers."""

from __future__ import annotations

import logging

import httpx

from flowops.core.config import settings
from flowops.core.structured_logging import build_log_context
from flowops.services.http_service import request_with_retries, safe_url

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10.0


class NotificationDeliveryError(Exception):
    pass


async def process_sla_breach_notify(db, event) -> None:
    """
    Announce an SLA breach.

    Always logged; also POSTed to SLA_BREACH_WEBHOOK_URL when configured.
    A non-2xx webhook response raises so the outbox retries.
    """
    payload = event.payload or {}
    logger.warning(
        "SLA breach: %s",
        payload.get("message") or "handoff SLA breached",
        extra=build_log_context(
            handoff_id=payload.get("handoff_id"),
            customer_id=payload.get("customer_id"),
            event_id=str(event.id),
        ),
    )

    url = settings.SLA_BREACH_WEBHOOK_URL
    if not url:
        return

    async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:

        async def request_fn() -> httpx.Response:
            return await client.post(
                url,
                json={"event": event.type, **payload},
                headers={"Idempotency-Key": event.idempotency_key},
            )

        response = await request_with_retries(request_fn)

    if response.status_code >= 300:
        raise NotificationDeliveryError(
            f"Webhook {safe_url(url)} returned {response.status_code}"
        )
    logger.info("SLA breach webhook delivered to %s", safe_url(url))
