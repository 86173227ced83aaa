"""Ops endpoints (outbox, interaction history, handoff context, metrics)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from flowops.core.deps import get_current_operator, get_db
from flowops.core.operators import Operator
from flowops.db.enums import OutboxStatus
from flowops.schemas.ops import InteractionRead, MetricsRead, OutboxEventRead
from flowops.services import (
    handoff_context_service,
    interaction_service,
    metrics_service,
    outbox_service,
)
from flowops.services.handoff_service import HandoffNotFoundError

router = APIRouter(tags=["ops"])


@router.get("/ops/outbox", response_model=list[OutboxEventRead])
def list_outbox(
    status: OutboxStatus | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    return outbox_service.list_events(db, status=status, limit=min(limit, 500))


@router.get("/ops/interactions/{customer_id}", response_model=list[InteractionRead])
def list_interactions(
    customer_id: str,
    limit: int = 50,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    return interaction_service.list_for_customer(db, customer_id, limit=min(limit, 200))


@router.get("/ops/handoffs/{handoff_id}/context")
def get_handoff_context(
    handoff_id: UUID,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """The exact context bundle AI generators receive for this handoff."""
    try:
        return handoff_context_service.build_context_bundle(db, handoff_id)
    except HandoffNotFoundError:
        raise HTTPException(status_code=404, detail="Handoff not found")


@router.get("/metrics", response_model=MetricsRead)
def get_metrics(
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    return metrics_service.get_metrics(db)
