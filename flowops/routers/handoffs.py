"""Handoffs router - operator work queue."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from flowops.core.deps import get_current_operator, get_db, require_roles
from flowops.core.operators import Operator
from flowops.core.structured_logging import build_log_context
from flowops.db.enums import ROLES_CAN_WORK_HANDOFFS, HandoffStatus
from flowops.schemas.handoff import (
    HandoffListItem,
    HandoffRead,
    HandoffResolveRequest,
    HandoffSignalsRead,
)
from flowops.services import handoff_service
from flowops.services.handoff_service import HandoffConflictError, HandoffNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/handoffs", tags=["handoffs"])


@router.get("", response_model=list[HandoffListItem])
def list_handoffs(
    status: HandoffStatus | None = None,
    include_signals: bool = False,
    limit: int = 100,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    """List handoffs, newest first. ``include_signals`` adds risk/SLA/artifact signals."""
    handoffs = handoff_service.list_handoffs(db, status=status, limit=min(limit, 500))
    items = []
    for handoff in handoffs:
        item = HandoffListItem.model_validate(handoff)
        if include_signals:
            signals = handoff_service.compute_signals(handoff)
            item = item.model_copy(update={"signals": HandoffSignalsRead.model_validate(signals)})
        items.append(item)
    return items


@router.get("/{handoff_id}", response_model=HandoffRead)
def get_handoff(
    handoff_id: UUID,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    handoff = handoff_service.get_handoff(db, handoff_id)
    if not handoff:
        raise HTTPException(status_code=404, detail="Handoff not found")
    return handoff


@router.post("/{handoff_id}/claim", response_model=HandoffRead)
def claim_handoff(
    handoff_id: UUID,
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_roles(ROLES_CAN_WORK_HANDOFFS)),
):
    """Claim a pending handoff. Exactly one concurrent caller wins; the rest get 409."""
    try:
        return handoff_service.claim_handoff(db, handoff_id, operator)
    except HandoffNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HandoffConflictError as e:
        logger.info(
            "Claim rejected: %s",
            e,
            extra=build_log_context(operator_id=operator.id, handoff_id=str(handoff_id)),
        )
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{handoff_id}/resolve", response_model=HandoffRead)
def resolve_handoff(
    handoff_id: UUID,
    body: HandoffResolveRequest | None = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_roles(ROLES_CAN_WORK_HANDOFFS)),
):
    """Resolve a claimed handoff (claimant or supervisor only)."""
    notes = body.resolution_notes if body else None
    try:
        return handoff_service.resolve_handoff(db, handoff_id, operator, notes)
    except HandoffNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HandoffConflictError as e:
        logger.info(
            "Resolve rejected: %s",
            e,
            extra=build_log_context(operator_id=operator.id, handoff_id=str(handoff_id)),
        )
        raise HTTPException(status_code=409, detail=str(e))
