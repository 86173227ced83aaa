"""Interaction log (one immutable row per processed live request)."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flowops.db.models import Interaction
from flowops.services import idempotency_service


@dataclass(frozen=True)
class InteractionLogResult:
    interaction: Interaction
    created: bool


def list_recent(db: Session, customer_id: str, limit: int = 5) -> list[Interaction]:
    """Latest interactions first."""
    return list(
        db.execute(
            select(Interaction)
            .where(Interaction.customer_id == customer_id)
            .order_by(Interaction.created_at.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def list_for_customer(db: Session, customer_id: str, limit: int = 50) -> list[Interaction]:
    return list_recent(db, customer_id, limit=limit)


def log_interaction(
    db: Session,
    *,
    customer_id: str,
    request_id: str,
    ticket_id: UUID | None,
    request_text: str,
    reply_text: str,
    mode: str,
    confidence: float,
    escalated: bool,
    verified: bool,
    actions: list[str],
) -> InteractionLogResult:
    """
    Persist the interaction once.

    A duplicate (customer_id, request_id) means a concurrent request logged
    it first; that row is returned with ``created=False``.
    """
    interaction = Interaction(
        customer_id=customer_id,
        request_id=request_id,
        ticket_id=ticket_id,
        channel="chat",
        request_text=request_text,
        reply_text=reply_text,
        mode=mode,
        confidence=confidence,
        escalated=escalated,
        verified=verified,
        actions=list(actions),
    )
    db.add(interaction)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = idempotency_service.find_prior_result(db, customer_id, request_id)
        if existing is None:
            raise
        return InteractionLogResult(existing, created=False)
    db.refresh(interaction)
    return InteractionLogResult(interaction, created=True)
