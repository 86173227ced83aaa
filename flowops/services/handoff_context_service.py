"""Context bundle handed to AI generators for a handoff.

Everything is read from the database; nothing is inferred. The bundle is
stored verbatim as each artifact's input so outputs can be audited later.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from flowops.db.models import Handoff, Interaction
from flowops.services.action_trail import ActionKind
from flowops.services.handoff_service import (
    HANDOFF_CONTEXT_VERSION,
    HandoffNotFoundError,
    get_handoff,
)
from flowops.utils.datetime_utils import to_iso, utcnow

MAX_CONTEXT_INTERACTIONS = 10


def _policy_outcome(actions: list[str]) -> dict:
    """Refund outcome as recorded by the pipeline's action tags."""
    approved = None
    for tag in actions:
        if tag == ActionKind.REFUND_AUTO_APPROVED.value:
            approved = True
        elif tag == ActionKind.REFUND_DENIED.value:
            approved = False
    return {"refund_approved": approved, "refund_amount": None}


def _interactions_for(db: Session, handoff: Handoff) -> list[Interaction]:
    query = select(Interaction).where(Interaction.customer_id == handoff.customer_id)
    if handoff.ticket_id:
        query = query.where(Interaction.ticket_id == handoff.ticket_id)
    query = query.order_by(Interaction.created_at.asc()).limit(MAX_CONTEXT_INTERACTIONS)
    return list(db.execute(query).scalars().all())


def build_context_bundle(db: Session, handoff_id: UUID) -> dict:
    handoff = get_handoff(db, handoff_id)
    if handoff is None:
        raise HandoffNotFoundError(f"Handoff not found: {handoff_id}")

    actions = list(handoff.actions or [])
    customer = handoff.customer
    ticket = handoff.ticket

    return {
        "version": HANDOFF_CONTEXT_VERSION,
        "generated_at": to_iso(utcnow()),
        "handoff": {
            "id": str(handoff.id),
            "reason": handoff.reason,
            "priority": handoff.priority,
            "status": handoff.status,
            "confidence": handoff.confidence,
            "sla_due_at": to_iso(handoff.sla_due_at),
            "sla_breached_at": to_iso(handoff.sla_breached_at),
        },
        "customer": {
            "id": customer.id,
            "plan": customer.plan,
        },
        "ticket": (
            {
                "id": str(ticket.id),
                "subject": ticket.subject,
                "priority": ticket.priority,
                "status": ticket.status,
            }
            if ticket
            else None
        ),
        "interactions": [
            {
                "id": str(i.id),
                "created_at": to_iso(i.created_at),
                "request_text": i.request_text,
                "reply_text": i.reply_text,
                "confidence": i.confidence,
                "escalated": i.escalated,
                "verified": i.verified,
                "actions": list(i.actions or []),
            }
            for i in _interactions_for(db, handoff)
        ],
        "policy_outcome": _policy_outcome(actions),
        "verification": {"issues": list(handoff.issues or [])},
        "executed_actions": actions,
    }
