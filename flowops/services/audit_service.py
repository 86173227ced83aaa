"""Audit export: everything recorded for a customer (optionally one ticket)."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from flowops.db.enums import AiArtifactType
from flowops.db.models import Customer, Handoff, Interaction, OutboxEvent, Ticket
from flowops.services import customer_service, outbox_service, ticket_service
from flowops.services.handoff_service import ai_idempotency_key
from flowops.services.sla_service import sla_idempotency_key
from flowops.utils.datetime_utils import to_iso, utcnow

CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")


class AuditExportError(Exception):
    """Base exception for audit export errors."""

    pass


class AuditScopeError(AuditExportError):
    """Neither customer_id nor a valid ticket_id was given."""

    pass


class AuditNotFoundError(AuditExportError):
    pass


# =============================================================================
# Serialization
# =============================================================================


def _iso_or_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, UUID):
        return str(value)
    return value


def _customer_dict(customer: Customer | None) -> dict | None:
    if customer is None:
        return None
    return {
        "id": customer.id,
        "email": customer.email,
        "plan": customer.plan,
        "created_at": to_iso(customer.created_at),
        "updated_at": to_iso(customer.updated_at),
    }


def _ticket_dict(ticket: Ticket) -> dict:
    return {
        key: _iso_or_value(getattr(ticket, key))
        for key in (
            "id", "customer_id", "request_key", "subject", "summary", "priority",
            "status", "created_at", "updated_at",
        )
    }


def _interaction_dict(interaction: Interaction) -> dict:
    return {
        key: _iso_or_value(getattr(interaction, key))
        for key in (
            "id", "customer_id", "ticket_id", "request_id", "channel", "mode",
            "confidence", "verified", "escalated", "request_text", "reply_text",
            "actions", "created_at",
        )
    }


def _handoff_dict(handoff: Handoff) -> dict:
    return {
        key: _iso_or_value(getattr(handoff, key))
        for key in (
            "id", "customer_id", "ticket_id", "status", "priority", "reason", "mode",
            "confidence", "claimed_by", "claimed_at", "resolved_by", "resolved_at",
            "resolution_notes", "issues", "actions", "sla_due_at", "sla_breached_at",
            "created_at", "updated_at",
        )
    }


def _outbox_dict(event: OutboxEvent) -> dict:
    return {
        key: _iso_or_value(getattr(event, key))
        for key in (
            "id", "type", "status", "attempts", "idempotency_key", "next_attempt_at",
            "last_error", "created_at",
        )
    }


# =============================================================================
# Bundle
# =============================================================================


def _resolve_scope(db: Session, customer_id: str | None, ticket_id: str | None) -> tuple[str, UUID | None]:
    customer_id = (customer_id or "").strip() or None
    ticket_uuid = None
    if ticket_id and ticket_id.strip():
        try:
            ticket_uuid = UUID(ticket_id.strip())
        except ValueError as exc:
            raise AuditScopeError("ticket_id is not a valid id") from exc

    if not customer_id and ticket_uuid is None:
        raise AuditScopeError("Provide customer_id or ticket_id")

    if customer_id is None:
        ticket = ticket_service.get_ticket(db, ticket_uuid)
        if ticket is None:
            raise AuditNotFoundError("Ticket not found")
        customer_id = ticket.customer_id
    return customer_id, ticket_uuid


def build_audit_bundle(
    db: Session,
    customer_id: str | None = None,
    ticket_id: str | None = None,
) -> dict:
    """
    Collect tickets, interactions, handoffs and linked outbox rows.

    Outbox rows are linked through their idempotency keys: the customer's
    ``email:<customer>:`` events plus ``sla:`` and ``ai:`` events of the
    handoffs in scope.
    """
    customer_id, ticket_uuid = _resolve_scope(db, customer_id, ticket_id)

    tickets_q = select(Ticket).where(Ticket.customer_id == customer_id)
    interactions_q = select(Interaction).where(Interaction.customer_id == customer_id)
    handoffs_q = select(Handoff).where(Handoff.customer_id == customer_id)
    if ticket_uuid is not None:
        tickets_q = tickets_q.where(Ticket.id == ticket_uuid)
        interactions_q = interactions_q.where(Interaction.ticket_id == ticket_uuid)
        handoffs_q = handoffs_q.where(Handoff.ticket_id == ticket_uuid)

    tickets = db.execute(tickets_q.order_by(Ticket.created_at.desc())).scalars().all()
    interactions = db.execute(interactions_q.order_by(Interaction.created_at.asc())).scalars().all()
    handoffs = db.execute(handoffs_q.order_by(Handoff.created_at.asc())).scalars().all()

    handoff_keys: list[str] = []
    for handoff in handoffs:
        handoff_keys.append(sla_idempotency_key(handoff.id))
        handoff_keys.extend(ai_idempotency_key(t, handoff.id) for t in AiArtifactType)
    outbox = outbox_service.list_events_for_keys(
        db,
        prefixes=[f"email:{customer_id}:"],
        keys=handoff_keys,
    )

    return {
        "generated_at": to_iso(utcnow()),
        "scope": {
            "customer_id": customer_id,
            "ticket_id": str(ticket_uuid) if ticket_uuid else None,
        },
        "customer": _customer_dict(customer_service.get_customer(db, customer_id)),
        "tickets": [_ticket_dict(t) for t in tickets],
        "interactions": [_interaction_dict(i) for i in interactions],
        "handoffs": [_handoff_dict(h) for h in handoffs],
        "outbox": [_outbox_dict(e) for e in outbox],
    }


# =============================================================================
# CSV
# =============================================================================


def flatten_audit_rows(bundle: dict) -> list[dict]:
    """One row per interaction, handoff and outbox event, tagged by ``kind``."""
    rows: list[dict] = []
    for item in bundle.get("interactions", []):
        rows.append({"kind": "interaction", **item})
    for item in bundle.get("handoffs", []):
        rows.append({"kind": "handoff", **item})
    for item in bundle.get("outbox", []):
        rows.append({"kind": "outbox", **item})
    return rows


def _csv_safe(value: str) -> str:
    if value and value.startswith(CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def _serialize_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _write_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_safe(_serialize_csv_value(value)) for value in row])
    return output.getvalue()


def to_csv(rows: list[dict]) -> str:
    """Header is the union of row keys in first-seen order."""
    if not rows:
        return ""
    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    return _write_csv(headers, ([row.get(h) for h in headers] for row in rows))
