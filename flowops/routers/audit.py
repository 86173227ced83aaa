"""Audit export router."""

import logging
import re

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from flowops.core.deps import get_current_operator, get_db
from flowops.core.operators import Operator
from flowops.core.structured_logging import build_log_context
from flowops.services import audit_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])


def _bundle(db: Session, customer_id: str | None, ticket_id: str | None, operator: Operator) -> dict:
    try:
        bundle = audit_service.build_audit_bundle(db, customer_id=customer_id, ticket_id=ticket_id)
    except audit_service.AuditNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except audit_service.AuditScopeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(
        "Audit export generated",
        extra=build_log_context(
            operator_id=operator.id, customer_id=bundle["scope"]["customer_id"]
        ),
    )
    return bundle


@router.get("/export.json")
def export_json(
    customer_id: str | None = None,
    ticket_id: str | None = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    return _bundle(db, customer_id, ticket_id, operator)


@router.get("/export.csv")
def export_csv(
    customer_id: str | None = None,
    ticket_id: str | None = None,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    bundle = _bundle(db, customer_id, ticket_id, operator)
    content = audit_service.to_csv(audit_service.flatten_audit_rows(bundle))
    safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", bundle["scope"]["customer_id"])
    filename = f"audit_{safe_id}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
