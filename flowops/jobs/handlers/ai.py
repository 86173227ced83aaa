"""AI artifact generation handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from flowops.db.enums import AiArtifactType
from flowops.services import ai_artifact_service

logger = logging.getLogger(__name__)


def _handoff_id(event) -> UUID:
    raw = (event.payload or {}).get("handoff_id")
    if not raw:
        raise ValueError("Missing handoff_id in AI job payload")
    return UUID(str(raw))


async def _generate(db, event, artifact_type: AiArtifactType) -> None:
    handoff_id = _handoff_id(event)
    logger.info("Generating %s for handoff %s", artifact_type.value, handoff_id)
    await ai_artifact_service.generate_artifact(db, handoff_id, artifact_type)


async def process_handoff_summary(db, event) -> None:
    await _generate(db, event, AiArtifactType.HANDOFF_SUMMARY)


async def process_reply_draft(db, event) -> None:
    await _generate(db, event, AiArtifactType.REPLY_DRAFT)


async def process_risk_assessment(db, event) -> None:
    await _generate(db, event, AiArtifactType.RISK_ASSESSMENT)


async def process_resolution_suggestion(db, event) -> None:
    await _generate(db, event, AiArtifactType.RESOLUTION_SUGGESTION)
