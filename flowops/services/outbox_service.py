"""Durable outbox for side effects (emails, notifications, AI generation).

Producers enqueue with an idempotency key; the dispatcher claims one eligible
event at a time with a conditional update, so two dispatchers never process
the same row concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flowops.core.config import settings
from flowops.db.enums import OutboxEventType, OutboxStatus
from flowops.db.models import OutboxEvent
from flowops.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class OutboxServiceError(Exception):
    """Base exception for outbox service errors."""

    pass


class OutboxEventNotFoundError(OutboxServiceError):
    pass


class OutboxEventNotDeadError(OutboxServiceError):
    """Only dead-lettered events can be requeued by hand."""

    pass


@dataclass(frozen=True)
class EnqueueResult:
    event: OutboxEvent
    created: bool


def backoff_seconds(attempts: int) -> float:
    """Delay before the next attempt: base * 2**attempts, capped."""
    return min(
        settings.OUTBOX_BACKOFF_CAP_SECONDS,
        settings.OUTBOX_BACKOFF_BASE_SECONDS * (2 ** max(0, attempts)),
    )


def build_event(
    event_type: OutboxEventType | str,
    payload: dict,
    idempotency_key: str,
) -> OutboxEvent:
    """Validate and construct an unsaved event (callers owning a transaction add it)."""
    type_value = event_type.value if isinstance(event_type, OutboxEventType) else event_type
    if not type_value or not type_value.strip():
        raise ValueError("Outbox event type is required")
    if not idempotency_key or not idempotency_key.strip():
        raise ValueError("Outbox idempotency_key is required")
    return OutboxEvent(
        type=type_value,
        payload=payload,
        status=OutboxStatus.PENDING.value,
        attempts=0,
        next_attempt_at=utcnow(),
        idempotency_key=idempotency_key,
    )


def get_event(db: Session, event_id: UUID) -> OutboxEvent | None:
    return db.get(OutboxEvent, event_id)


def get_event_by_key(db: Session, idempotency_key: str) -> OutboxEvent | None:
    return db.execute(
        select(OutboxEvent).where(OutboxEvent.idempotency_key == idempotency_key)
    ).scalar_one_or_none()


def enqueue_event(
    db: Session,
    event_type: OutboxEventType | str,
    payload: dict,
    idempotency_key: str,
) -> EnqueueResult:
    """
    Enqueue a side effect exactly once per idempotency key.

    Raises ValueError for a blank type or key. A duplicate key returns the
    existing row untouched with ``created=False``.
    """
    event = build_event(event_type, payload, idempotency_key)

    existing = get_event_by_key(db, idempotency_key)
    if existing:
        return EnqueueResult(existing, created=False)

    db.add(event)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_event_by_key(db, idempotency_key)
        if existing is None:
            raise
        return EnqueueResult(existing, created=False)
    db.refresh(event)
    logger.info("Outbox event enqueued type=%s event=%s", event.type, event.id)
    return EnqueueResult(event, created=True)


def claim_next_event(db: Session, now: datetime | None = None) -> OutboxEvent | None:
    """
    Claim the oldest eligible event by flipping it to processing.

    Returns None when nothing is eligible or another dispatcher won the race.
    """
    now = now or utcnow()
    claimable = OutboxStatus.claimable()

    next_id = db.execute(
        select(OutboxEvent.id)
        .where(
            OutboxEvent.status.in_(claimable),
            OutboxEvent.next_attempt_at <= now,
        )
        .order_by(OutboxEvent.created_at.asc())
        .limit(1)
    ).scalar_one_or_none()
    if next_id is None:
        return None

    result = db.execute(
        update(OutboxEvent)
        .where(
            OutboxEvent.id == next_id,
            OutboxEvent.status.in_(claimable),
        )
        .values(status=OutboxStatus.PROCESSING.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        return None

    event = db.get(OutboxEvent, next_id)
    db.refresh(event)
    return event


def mark_sent(db: Session, event: OutboxEvent) -> OutboxEvent:
    """Terminal success. Only a processing event can be marked sent."""
    db.execute(
        update(OutboxEvent)
        .where(
            OutboxEvent.id == event.id,
            OutboxEvent.status == OutboxStatus.PROCESSING.value,
        )
        .values(status=OutboxStatus.SENT.value, last_error=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(event)
    return event


def mark_failed(db: Session, event: OutboxEvent, error: str) -> OutboxEvent:
    """
    Record a failed attempt.

    Attempts are incremented; reaching OUTBOX_MAX_ATTEMPTS dead-letters the
    event, otherwise it becomes eligible again after the backoff delay.
    """
    attempts = (event.attempts or 0) + 1
    is_dead = attempts >= settings.OUTBOX_MAX_ATTEMPTS
    now = utcnow()
    next_attempt_at = now if is_dead else now + timedelta(seconds=backoff_seconds(attempts))

    db.execute(
        update(OutboxEvent)
        .where(
            OutboxEvent.id == event.id,
            OutboxEvent.status == OutboxStatus.PROCESSING.value,
        )
        .values(
            status=(OutboxStatus.DEAD if is_dead else OutboxStatus.FAILED).value,
            attempts=attempts,
            last_error=(error or "")[:MAX_ERROR_LENGTH],
            next_attempt_at=next_attempt_at,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(event)
    return event


def list_events(
    db: Session,
    status: OutboxStatus | None = None,
    limit: int = 100,
) -> list[OutboxEvent]:
    query = select(OutboxEvent)
    if status:
        query = query.where(OutboxEvent.status == status.value)
    query = query.order_by(OutboxEvent.created_at.desc()).limit(limit)
    return list(db.execute(query).scalars().all())


def list_events_for_keys(
    db: Session,
    prefixes: list[str] | None = None,
    keys: list[str] | None = None,
) -> list[OutboxEvent]:
    """Events whose idempotency key equals one of ``keys`` or starts with a prefix."""
    conditions = [OutboxEvent.idempotency_key.startswith(p, autoescape=True) for p in prefixes or []]
    if keys:
        conditions.append(OutboxEvent.idempotency_key.in_(keys))
    if not conditions:
        return []
    return list(
        db.execute(
            select(OutboxEvent).where(or_(*conditions)).order_by(OutboxEvent.created_at.asc())
        )
        .scalars()
        .all()
    )


def requeue_dead_event(db: Session, event_id: UUID) -> OutboxEvent:
    """Give a dead-lettered event a fresh set of attempts."""
    event = get_event(db, event_id)
    if not event:
        raise OutboxEventNotFoundError(f"Outbox event {event_id} not found")
    if event.status != OutboxStatus.DEAD.value:
        raise OutboxEventNotDeadError(f"Outbox event {event_id} is {event.status}, not dead")

    event.status = OutboxStatus.PENDING.value
    event.attempts = 0
    event.next_attempt_at = utcnow()
    db.commit()
    db.refresh(event)
    logger.info("Requeued dead outbox event %s", event.id)
    return event
