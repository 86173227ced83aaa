"""SLA breach detection for pending handoffs."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flowops.core.config import settings
from flowops.core.structured_logging import build_log_context
from flowops.db.enums import HandoffStatus, OutboxEventType, Priority
from flowops.db.models import Handoff
from flowops.services import outbox_service
from flowops.utils.datetime_utils import to_iso, utcnow

logger = logging.getLogger(__name__)

BREACH_MESSAGE = "Handoff SLA breached (pending not claimed in time)."


def sla_idempotency_key(handoff_id: UUID) -> str:
    return f"sla:{handoff_id}"


def _breach_predicate(now: datetime):
    return (
        Handoff.status == HandoffStatus.PENDING.value,
        Handoff.sla_due_at.is_not(None),
        Handoff.sla_due_at <= now,
        Handoff.sla_breached_at.is_(None),
    )


def scan_for_breaches(
    db: Session,
    now: datetime | None = None,
    batch_size: int | None = None,
) -> list[UUID]:
    """
    Mark overdue pending handoffs as breached and queue a notification each.

    Each row is flipped with a conditional update carrying the same predicate
    as the scan, so a handoff claimed in between, or breached by another
    watchdog, is skipped. The flip and its outbox event commit together: a
    failure before the commit leaves the handoff due for the next scan.
    Returns the ids this call breached.
    """
    now = now or utcnow()
    limit = batch_size or settings.SLA_BATCH_SIZE

    due = db.execute(
        select(Handoff.id, Handoff.customer_id, Handoff.ticket_id, Handoff.sla_due_at)
        .where(*_breach_predicate(now))
        .order_by(Handoff.sla_due_at.asc())
        .limit(limit)
    ).all()

    breached: list[UUID] = []
    for handoff_id, customer_id, ticket_id, sla_due_at in due:
        breached_at = utcnow()
        result = db.execute(
            update(Handoff)
            .where(Handoff.id == handoff_id, *_breach_predicate(now))
            .values(
                sla_breached_at=breached_at,
                priority=Priority.HIGH.value,
                updated_at=breached_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            continue

        key = sla_idempotency_key(handoff_id)
        if outbox_service.get_event_by_key(db, key) is None:
            db.add(
                outbox_service.build_event(
                    OutboxEventType.SLA_BREACH_NOTIFY,
                    {
                        "handoff_id": str(handoff_id),
                        "customer_id": customer_id,
                        "ticket_id": str(ticket_id) if ticket_id else None,
                        "sla_due_at": to_iso(sla_due_at),
                        "breached_at": to_iso(breached_at),
                        "message": BREACH_MESSAGE,
                    },
                    key,
                )
            )
        try:
            db.commit()
        except IntegrityError:
            # Another watchdog queued the same notification; its flip wins.
            db.rollback()
            continue

        breached.append(handoff_id)
        logger.info(
            "SLA breached for handoff %s; priority raised, notification queued",
            handoff_id,
            extra=build_log_context(handoff_id=str(handoff_id), customer_id=customer_id),
        )

    return breached
