"""Email job handlers."""

from __future__ import annotations

import logging

from flowops.core.structured_logging import build_log_context
from flowops.services.email_sender import EmailSendError, get_email_sender

logger = logging.getLogger(__name__)


async def process_email_send(db, event) -> None:
    """Deliver a queued follow-up email. The outbox key doubles as provider idempotency key."""
    payload = event.payload or {}
    to = payload.get("to")
    if not to:
        raise EmailSendError("Missing recipient in email payload")

    message_id = await get_email_sender().send(
        to=to,
        subject=payload.get("subject") or "",
        body=payload.get("body") or "",
        idempotency_key=event.idempotency_key,
    )
    logger.info(
        "Email delivered message_id=%s",
        message_id,
        extra=build_log_context(
            customer_id=payload.get("customer_id"),
            request_id=payload.get("request_id"),
            event_id=str(event.id),
        ),
    )
