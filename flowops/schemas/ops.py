"""Pydantic schemas for ops endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class OutboxEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    payload: dict
    status: str
    attempts: int
    next_attempt_at: datetime
    last_error: str | None
    idempotency_key: str
    created_at: datetime
    updated_at: datetime


class InteractionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: str
    ticket_id: UUID | None
    request_id: str
    channel: str
    mode: str
    confidence: float
    escalated: bool
    verified: bool
    request_text: str
    reply_text: str
    actions: list[str]
    created_at: datetime


class HandoffCountsRead(BaseModel):
    pending: int
    claimed: int
    resolved: int
    avg_resolution_seconds: float | None


class ConfidenceDriftRead(BaseModel):
    window: int
    avg_last: float | None
    avg_prev: float | None
    delta: float | None


class MetricsRead(BaseModel):
    generated_at: str
    counts: dict[str, int]
    handoffs: HandoffCountsRead
    rates: dict[str, float]
    confidence: ConfidenceDriftRead
