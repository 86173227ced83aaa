"""AI artifacts: generation and storage, one row per (handoff, type)."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flowops.core.config import settings
from flowops.core.structured_logging import build_log_context
from flowops.db.enums import AI_ARTIFACT_EVENT_TYPES, AiArtifactStatus, AiArtifactType
from flowops.db.models import AiArtifact
from flowops.services import handoff_context_service, handoff_service, outbox_service
from flowops.services.ai_prompts import PROMPT_SPECS
from flowops.services.ai_provider import AIProvider, AIProviderTimeoutError, get_ai_provider
from flowops.services.ai_response_validation import require_model
from flowops.utils.datetime_utils import to_iso, utcnow

logger = logging.getLogger(__name__)


def get_artifact(
    db: Session, handoff_id: UUID, artifact_type: AiArtifactType
) -> AiArtifact | None:
    return db.execute(
        select(AiArtifact).where(
            AiArtifact.handoff_id == handoff_id,
            AiArtifact.type == artifact_type.value,
        )
    ).scalar_one_or_none()


def list_artifacts(db: Session, handoff_id: UUID) -> list[AiArtifact]:
    return list(
        db.execute(
            select(AiArtifact)
            .where(AiArtifact.handoff_id == handoff_id)
            .order_by(AiArtifact.updated_at.desc())
        )
        .scalars()
        .all()
    )


def list_recent_artifacts(db: Session, limit: int = 20) -> list[AiArtifact]:
    return list(
        db.execute(select(AiArtifact).order_by(AiArtifact.updated_at.desc()).limit(limit))
        .scalars()
        .all()
    )


def upsert_artifact(
    db: Session,
    handoff_id: UUID,
    artifact_type: AiArtifactType,
    status: AiArtifactStatus,
    input_bundle: dict,
    output: dict,
) -> AiArtifact:
    """Insert or overwrite the artifact for (handoff, type)."""
    artifact = get_artifact(db, handoff_id, artifact_type)
    if artifact is None:
        artifact = AiArtifact(
            handoff_id=handoff_id,
            type=artifact_type.value,
            status=status.value,
            input=input_bundle,
            output=output,
        )
        db.add(artifact)
        try:
            db.commit()
            db.refresh(artifact)
            return artifact
        except IntegrityError:
            db.rollback()
            artifact = get_artifact(db, handoff_id, artifact_type)
            if artifact is None:
                raise

    artifact.status = status.value
    artifact.input = input_bundle
    artifact.output = output
    db.commit()
    db.refresh(artifact)
    return artifact


def _envelope(artifact_type: AiArtifactType, handoff_id: UUID) -> dict:
    return {
        "version": artifact_type.value,
        "generated_at": to_iso(utcnow()),
        "handoff_id": str(handoff_id),
    }


async def generate_artifact(
    db: Session,
    handoff_id: UUID,
    artifact_type: AiArtifactType,
    provider: AIProvider | None = None,
) -> AiArtifact:
    """
    Build the context bundle, generate, validate and store one artifact.

    On any generation or validation failure the exception is re-raised so the
    outbox retries. A previous ``ok`` artifact is kept and only gains a
    ``last_error`` note; otherwise a ``failed`` artifact records the error.
    """
    spec = PROMPT_SPECS[artifact_type]
    provider = provider or get_ai_provider()
    bundle = handoff_context_service.build_context_bundle(db, handoff_id)
    system, user = spec.build(bundle)
    timeout = settings.AI_TIMEOUT_SECONDS

    try:
        try:
            raw = await asyncio.wait_for(
                provider.generate(system, user, spec.schema_name, spec.schema, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AIProviderTimeoutError(f"Generation timed out after {timeout}s") from exc
        validated = require_model(spec.output_model, raw)
    except Exception as exc:
        error = str(exc) or type(exc).__name__
        previous = get_artifact(db, handoff_id, artifact_type)
        if previous is not None and previous.status == AiArtifactStatus.OK.value:
            upsert_artifact(
                db,
                handoff_id,
                artifact_type,
                AiArtifactStatus.OK,
                previous.input,
                {**previous.output, "last_error": error, "last_error_at": to_iso(utcnow())},
            )
        else:
            upsert_artifact(
                db,
                handoff_id,
                artifact_type,
                AiArtifactStatus.FAILED,
                bundle,
                {**_envelope(artifact_type, handoff_id), "error": error},
            )
        logger.warning(
            "AI generation failed type=%s error=%s",
            artifact_type.value,
            type(exc).__name__,
            extra=build_log_context(handoff_id=str(handoff_id)),
        )
        raise

    artifact = upsert_artifact(
        db,
        handoff_id,
        artifact_type,
        AiArtifactStatus.OK,
        bundle,
        {**_envelope(artifact_type, handoff_id), **validated.model_dump()},
    )
    logger.info(
        "AI artifact written type=%s",
        artifact_type.value,
        extra=build_log_context(handoff_id=str(handoff_id)),
    )
    return artifact


def enqueue_generation(
    db: Session, handoff_id: UUID, artifact_type: AiArtifactType
) -> outbox_service.EnqueueResult:
    """
    Queue generation of one artifact type for a handoff.

    Keyed ``ai:<type>:<handoff id>``, so asking again while a job exists
    returns the existing event.
    """
    if handoff_service.get_handoff(db, handoff_id) is None:
        raise handoff_service.HandoffNotFoundError("Handoff not found")
    return outbox_service.enqueue_event(
        db,
        AI_ARTIFACT_EVENT_TYPES[artifact_type],
        handoff_service.ai_event_payload(handoff_id),
        handoff_service.ai_idempotency_key(artifact_type, handoff_id),
    )
