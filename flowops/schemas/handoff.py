"""Pydantic schemas for handoffs and their AI artifacts."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class HandoffRead(BaseModel):
    """Handoff response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: str
    ticket_id: UUID | None
    reason: str
    priority: str
    mode: str
    confidence: float | None
    status: str

    claimed_by: str | None
    claimed_at: datetime | None
    resolved_by: str | None
    resolved_at: datetime | None
    resolution_notes: str | None

    issues: list[str]
    actions: list[str]

    sla_due_at: datetime | None
    sla_breached_at: datetime | None
    created_at: datetime
    updated_at: datetime


class HandoffSignalsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    latest_risk_level: str | None
    risk_status: str
    sla_remaining_seconds: int | None
    has_draft: bool
    has_summary: bool
    last_artifact_at: datetime | None


class HandoffListItem(HandoffRead):
    signals: HandoffSignalsRead | None = None


class HandoffResolveRequest(BaseModel):
    resolution_notes: str | None = Field(default=None, max_length=5000)


class AiArtifactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    handoff_id: UUID
    type: str
    status: str
    output: dict
    created_at: datetime
    updated_at: datetime


class AiEnqueueResponse(BaseModel):
    queued: bool
    created: bool
    handoff_id: UUID
    event_type: str
    idempotency_key: str
