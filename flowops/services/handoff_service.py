"""Handoff state machine: create, claim, resolve, list.

Every transition is a conditional UPDATE checked by rowcount, so concurrent
operators cannot both claim or both resolve the same handoff.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from flowops.core.config import settings
from flowops.core.operators import Operator
from flowops.db.enums import (
    ROLES_CAN_OVERRIDE_CLAIM,
    AiArtifactStatus,
    AiArtifactType,
    HandoffReason,
    HandoffStatus,
    OutboxEventType,
    Plan,
    Priority,
)
from flowops.db.models import Handoff
from flowops.services import outbox_service, ticket_service
from flowops.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

HANDOFF_CONTEXT_VERSION = "handoff_context.v1"

RISK_LEVELS = ("low", "medium", "high")


class HandoffServiceError(Exception):
    """Base exception for handoff service errors."""

    pass


class HandoffNotFoundError(HandoffServiceError):
    pass


class HandoffConflictError(HandoffServiceError):
    """Transition not allowed from the handoff's current state."""

    pass


@dataclass(frozen=True)
class HandoffCreateResult:
    handoff: Handoff
    created: bool


@dataclass(frozen=True)
class HandoffSignals:
    latest_risk_level: str | None
    risk_status: str
    sla_remaining_seconds: int | None
    has_draft: bool
    has_summary: bool
    last_artifact_at: datetime | None


# =============================================================================
# SLA
# =============================================================================


def sla_minutes_for_plan(plan: str) -> int:
    """Minutes a pending handoff may wait before it breaches its SLA."""
    if plan == Plan.ENTERPRISE.value:
        return settings.SLA_MINUTES_ENTERPRISE
    if plan == Plan.PRO.value:
        return settings.SLA_MINUTES_PRO
    return settings.SLA_MINUTES_DEFAULT


def ai_idempotency_key(artifact_type: AiArtifactType, handoff_id: UUID) -> str:
    return f"ai:{artifact_type.key_name}:{handoff_id}"


def ai_event_payload(handoff_id: UUID) -> dict:
    return {"handoff_id": str(handoff_id), "version": HANDOFF_CONTEXT_VERSION}


# =============================================================================
# Queries
# =============================================================================


def get_handoff(db: Session, handoff_id: UUID) -> Handoff | None:
    return db.get(Handoff, handoff_id)


def get_handoff_by_request(db: Session, customer_id: str, request_key: str) -> Handoff | None:
    return db.execute(
        select(Handoff).where(
            Handoff.customer_id == customer_id,
            Handoff.request_key == request_key,
        )
    ).scalar_one_or_none()


def list_handoffs(
    db: Session,
    status: HandoffStatus | None = None,
    limit: int = 100,
) -> list[Handoff]:
    """Newest first. Artifacts are eager-loaded for signal computation."""
    query = select(Handoff).options(selectinload(Handoff.artifacts))
    if status:
        query = query.where(Handoff.status == status.value)
    query = query.order_by(Handoff.created_at.desc()).limit(limit)
    return list(db.execute(query).scalars().all())


def compute_signals(handoff: Handoff, now: datetime | None = None) -> HandoffSignals:
    """Derive list-view signals from the handoff's artifacts and SLA clock."""
    now = now or utcnow()
    ok_types = {
        a.type: a for a in handoff.artifacts if a.status == AiArtifactStatus.OK.value
    }

    latest_risk_level = None
    risk = ok_types.get(AiArtifactType.RISK_ASSESSMENT.value)
    if risk and isinstance(risk.output, dict):
        level = risk.output.get("risk_level")
        if level in RISK_LEVELS:
            latest_risk_level = level

    sla_remaining = None
    due = as_utc(handoff.sla_due_at)
    if due is not None:
        sla_remaining = int((due - now).total_seconds() // 1)

    timestamps = [as_utc(a.updated_at) for a in handoff.artifacts if a.updated_at]
    return HandoffSignals(
        latest_risk_level=latest_risk_level,
        risk_status="assessed" if latest_risk_level else "not_assessed",
        sla_remaining_seconds=sla_remaining,
        has_draft=AiArtifactType.REPLY_DRAFT.value in ok_types,
        has_summary=AiArtifactType.HANDOFF_SUMMARY.value in ok_types,
        last_artifact_at=max(timestamps) if timestamps else None,
    )


# =============================================================================
# Transitions
# =============================================================================


def create_handoff(
    db: Session,
    *,
    customer_id: str,
    plan: str,
    reason: HandoffReason,
    priority: Priority,
    mode: str,
    ticket_id: UUID | None = None,
    request_key: str | None = None,
    confidence: float | None = None,
    issues: list[str] | None = None,
    actions: list[str] | None = None,
) -> HandoffCreateResult:
    """
    Create a pending handoff with an SLA deadline and queue its AI summary.

    The handoff row and its summary outbox event commit together. With a
    request_key, a retried request returns the existing handoff
    (``created=False``).
    """
    if request_key:
        existing = get_handoff_by_request(db, customer_id, request_key)
        if existing:
            return HandoffCreateResult(existing, created=False)

    now = utcnow()
    handoff = Handoff(
        id=uuid.uuid4(),
        customer_id=customer_id,
        ticket_id=ticket_id,
        request_key=request_key,
        reason=reason.value,
        priority=priority.value,
        mode=mode,
        confidence=confidence,
        status=HandoffStatus.PENDING.value,
        issues=list(issues or []),
        actions=list(actions or []),
        sla_due_at=now + timedelta(minutes=sla_minutes_for_plan(plan)),
        sla_breached_at=None,
    )
    summary_event = outbox_service.build_event(
        OutboxEventType.AI_HANDOFF_SUMMARY_GENERATE,
        ai_event_payload(handoff.id),
        ai_idempotency_key(AiArtifactType.HANDOFF_SUMMARY, handoff.id),
    )
    db.add(handoff)
    db.add(summary_event)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_handoff_by_request(db, customer_id, request_key) if request_key else None
        if existing is None:
            raise
        return HandoffCreateResult(existing, created=False)

    db.refresh(handoff)
    logger.info(
        "Handoff created handoff=%s reason=%s priority=%s, AI summary queued",
        handoff.id,
        handoff.reason,
        handoff.priority,
    )
    return HandoffCreateResult(handoff, created=True)


def claim_handoff(db: Session, handoff_id: UUID, operator: Operator) -> Handoff:
    """
    Claim a pending handoff.

    Succeeds for exactly one caller; everyone else gets HandoffConflictError.
    """
    result = db.execute(
        update(Handoff)
        .where(
            Handoff.id == handoff_id,
            Handoff.status == HandoffStatus.PENDING.value,
            Handoff.claimed_at.is_(None),
        )
        .values(
            status=HandoffStatus.CLAIMED.value,
            claimed_by=operator.id,
            claimed_at=utcnow(),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()

    handoff = get_handoff(db, handoff_id)
    if result.rowcount == 0:
        if handoff is None:
            raise HandoffNotFoundError("Handoff not found")
        raise HandoffConflictError("Handoff already claimed or not pending")

    db.refresh(handoff)
    logger.info("Handoff %s claimed by %s", handoff.id, operator.id)
    return handoff


def resolve_handoff(
    db: Session,
    handoff_id: UUID,
    operator: Operator,
    notes: str | None = None,
) -> Handoff:
    """
    Resolve a claimed handoff.

    Only the claimant may resolve, unless the operator's role can override
    claims. The linked ticket is moved to resolved afterwards.
    """
    handoff = get_handoff(db, handoff_id)
    if handoff is None:
        raise HandoffNotFoundError("Handoff not found")
    if handoff.status == HandoffStatus.RESOLVED.value:
        raise HandoffConflictError("Handoff already resolved")
    if (
        handoff.status != HandoffStatus.CLAIMED.value
        or handoff.claimed_at is None
        or not handoff.claimed_by
    ):
        raise HandoffConflictError("Handoff must be claimed before resolving")
    if operator.role not in ROLES_CAN_OVERRIDE_CLAIM and handoff.claimed_by != operator.id:
        raise HandoffConflictError("Only the claiming operator can resolve")

    notes = notes.strip() if notes else None
    result = db.execute(
        update(Handoff)
        .where(
            Handoff.id == handoff_id,
            Handoff.status == HandoffStatus.CLAIMED.value,
            Handoff.claimed_by == handoff.claimed_by,
        )
        .values(
            status=HandoffStatus.RESOLVED.value,
            resolved_by=operator.id,
            resolved_at=utcnow(),
            resolution_notes=notes or None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        raise HandoffConflictError("Handoff changed while resolving")

    db.refresh(handoff)
    logger.info("Handoff %s resolved by %s", handoff.id, operator.id)

    if handoff.ticket_id:
        try:
            ticket_service.mark_ticket_resolved(db, handoff.ticket_id)
        except Exception:
            db.rollback()
            logger.exception("Ticket cascade failed for handoff %s", handoff.id)

    return handoff


def force_sla_breach(db: Session, handoff_id: UUID) -> Handoff:
    """Dev helper: move a pending handoff's SLA deadline into the past."""
    handoff = get_handoff(db, handoff_id)
    if handoff is None:
        raise HandoffNotFoundError("Handoff not found")
    if handoff.status != HandoffStatus.PENDING.value:
        raise HandoffConflictError("Only pending handoffs can breach their SLA")
    handoff.sla_due_at = utcnow() - timedelta(seconds=1)
    handoff.sla_breached_at = None
    db.commit()
    db.refresh(handoff)
    return handoff
