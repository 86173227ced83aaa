"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowops.db.base import Base
from flowops.db.enums import (
    DEFAULT_HANDOFF_STATUS,
    DEFAULT_OUTBOX_STATUS,
    DEFAULT_TICKET_STATUS,
    Priority,
)
from flowops.utils.datetime_utils import utcnow


class Customer(Base):
    """
    Customer reference data.

    Upserted whenever a live interaction or ticket references it.
    Plan drives refund policy and SLA duration.
    """
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    plan: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    tickets: Mapped[list["Ticket"]] = relationship(back_populates="customer")


class Ticket(Base):
    """
    Support case opened once per escalable interaction.

    (customer_id, request_key) is unique so retried requests converge
    on the same ticket.
    """
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("customer_id", "request_key", name="uq_ticket_request"),
        Index("idx_tickets_customer", "customer_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    request_key: Mapped[str] = mapped_column(String(255), nullable=False)

    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), default=Priority.MED.value, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_TICKET_STATUS.value, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    customer: Mapped["Customer"] = relationship(back_populates="tickets")


class Interaction(Base):
    """
    Immutable log row per processed chat request.

    (customer_id, request_id) is the idempotency anchor: a second request
    with the same key replays this row instead of re-running the pipeline.
    """
    __tablename__ = "interactions"
    __table_args__ = (
        UniqueConstraint("customer_id", "request_id", name="uq_interaction_request"),
        Index("idx_interactions_customer", "customer_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    request_id: Mapped[str] = mapped_column(String(255), nullable=False)
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )

    channel: Mapped[str] = mapped_column(String(20), default="chat", nullable=False)
    request_text: Mapped[str] = mapped_column(Text, nullable=False)
    reply_text: Mapped[str] = mapped_column(Text, nullable=False)
    mode: Mapped[str] = mapped_column(String(10), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    escalated: Mapped[bool] = mapped_column(Boolean, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False)
    # Ordered action tags, serialized from ActionTrail
    actions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


class Handoff(Base):
    """
    Unit of escalated human work with an SLA deadline.

    Mutated only through claim/resolve and the SLA watchdog's breach
    transition, always as conditional updates. Never deleted.
    """
    __tablename__ = "handoffs"
    __table_args__ = (
        UniqueConstraint("customer_id", "request_key", name="uq_handoff_request"),
        Index("idx_handoffs_sla", "status", "sla_due_at"),
        Index("idx_handoffs_customer", "customer_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )
    request_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False)
    mode: Mapped[str] = mapped_column(String(10), nullable=False)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_HANDOFF_STATUS.value, nullable=False
    )

    claimed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    issues: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    actions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    sla_due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sla_breached_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    customer: Mapped["Customer"] = relationship()
    ticket: Mapped["Ticket | None"] = relationship()
    artifacts: Mapped[list["AiArtifact"]] = relationship(
        back_populates="handoff", order_by="AiArtifact.updated_at.desc()"
    )


class OutboxEvent(Base):
    """
    Durable side-effect job.

    Dispatcher polls eligible rows (pending/failed, next_attempt_at <= now),
    flips them to processing with a conditional update, and records
    sent/failed/dead. idempotency_key collapses duplicate enqueues.
    """
    __tablename__ = "outbox_events"
    __table_args__ = (
        Index("idx_outbox_eligible", "status", "next_attempt_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_OUTBOX_STATUS.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    next_attempt_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class AiArtifact(Base):
    """Structured generation output stored against a handoff, one per type."""
    __tablename__ = "ai_artifacts"
    __table_args__ = (
        UniqueConstraint("handoff_id", "type", name="uq_ai_artifact_handoff_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    handoff_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("handoffs.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    input: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    output: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    handoff: Mapped["Handoff"] = relationship(back_populates="artifacts")
