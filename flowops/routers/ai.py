"""AI artifact endpoints for handoffs."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from flowops.core.deps import get_current_operator, get_db, require_roles
from flowops.core.operators import Operator
from flowops.db.enums import ROLES_CAN_WORK_HANDOFFS, AiArtifactType
from flowops.schemas.handoff import AiArtifactRead, AiEnqueueResponse
from flowops.services import ai_artifact_service, handoff_service
from flowops.services.handoff_service import HandoffNotFoundError

router = APIRouter(prefix="/handoffs/{handoff_id}/ai", tags=["ai"])

# URL segment -> artifact type
ARTIFACT_ROUTES: dict[str, AiArtifactType] = {
    "summary": AiArtifactType.HANDOFF_SUMMARY,
    "draft": AiArtifactType.REPLY_DRAFT,
    "risk": AiArtifactType.RISK_ASSESSMENT,
    "resolution-suggestion": AiArtifactType.RESOLUTION_SUGGESTION,
}


def _artifact_type(kind: str) -> AiArtifactType:
    artifact_type = ARTIFACT_ROUTES.get(kind)
    if artifact_type is None:
        raise HTTPException(status_code=404, detail=f"Unknown artifact kind: {kind}")
    return artifact_type


@router.get("/summary", response_model=AiArtifactRead)
def get_summary(
    handoff_id: UUID,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    artifact = ai_artifact_service.get_artifact(db, handoff_id, AiArtifactType.HANDOFF_SUMMARY)
    if not artifact:
        raise HTTPException(status_code=404, detail="No AI summary found for this handoff yet.")
    return artifact


@router.get("/artifacts", response_model=list[AiArtifactRead])
def list_artifacts(
    handoff_id: UUID,
    db: Session = Depends(get_db),
    operator: Operator = Depends(get_current_operator),
):
    if not handoff_service.get_handoff(db, handoff_id):
        raise HTTPException(status_code=404, detail="Handoff not found")
    return ai_artifact_service.list_artifacts(db, handoff_id)


@router.post("/{kind}", response_model=AiEnqueueResponse)
def request_artifact(
    handoff_id: UUID,
    kind: str,
    db: Session = Depends(get_db),
    operator: Operator = Depends(require_roles(ROLES_CAN_WORK_HANDOFFS)),
):
    """Queue generation of an artifact (summary, draft, risk, resolution-suggestion)."""
    artifact_type = _artifact_type(kind)
    try:
        result = ai_artifact_service.enqueue_generation(db, handoff_id, artifact_type)
    except HandoffNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return AiEnqueueResponse(
        queued=True,
        created=result.created,
        handoff_id=handoff_id,
        event_type=result.event.type,
        idempotency_key=result.event.idempotency_key,
    )
