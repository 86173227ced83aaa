"""Ticket persistence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flowops.db.enums import Priority, TicketStatus
from flowops.db.models import Ticket

logger = logging.getLogger(__name__)

SUBJECT_BILLING = "Billing issue"
SUBJECT_API = "API access issue"
SUBJECT_GENERAL = "General support request"


@dataclass(frozen=True)
class TicketCreateResult:
    ticket: Ticket
    created: bool


def subject_for_intent(billing_issue: bool, api_issue: bool) -> str:
    if billing_issue:
        return SUBJECT_BILLING
    if api_issue:
        return SUBJECT_API
    return SUBJECT_GENERAL


def get_ticket(db: Session, ticket_id: UUID) -> Ticket | None:
    return db.get(Ticket, ticket_id)


def get_ticket_by_request(db: Session, customer_id: str, request_key: str) -> Ticket | None:
    return db.execute(
        select(Ticket).where(
            Ticket.customer_id == customer_id,
            Ticket.request_key == request_key,
        )
    ).scalar_one_or_none()


def create_ticket(
    db: Session,
    customer_id: str,
    request_key: str,
    subject: str,
    summary: str,
    priority: Priority = Priority.MED,
) -> TicketCreateResult:
    """
    Open a ticket for a request.

    A retried request with the same key gets the existing ticket back
    (``created=False``) instead of a duplicate.
    """
    existing = get_ticket_by_request(db, customer_id, request_key)
    if existing:
        return TicketCreateResult(existing, created=False)

    ticket = Ticket(
        customer_id=customer_id,
        request_key=request_key,
        subject=subject,
        summary=summary,
        priority=priority.value,
        status=TicketStatus.OPEN.value,
    )
    db.add(ticket)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_ticket_by_request(db, customer_id, request_key)
        if existing is None:
            raise
        return TicketCreateResult(existing, created=False)
    db.refresh(ticket)
    return TicketCreateResult(ticket, created=True)


def mark_ticket_resolved(db: Session, ticket_id: UUID) -> bool:
    """Move a ticket to resolved unless it is already terminal."""
    result = db.execute(
        update(Ticket)
        .where(
            Ticket.id == ticket_id,
            Ticket.status.not_in([TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value]),
        )
        .values(status=TicketStatus.RESOLVED.value)
    )
    db.commit()
    return result.rowcount == 1
