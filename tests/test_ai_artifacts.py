"""Tests for AI artifact generation, validation and context bundles."""

import asyncio
import uuid

import pytest

from flowops.core.config import settings
from flowops.db.enums import (
    AiArtifactStatus,
    AiArtifactType,
    HandoffReason,
    OutboxEventType,
    Priority,
)
from flowops.services import (
    ai_artifact_service,
    customer_service,
    handoff_context_service,
    handoff_service,
    interaction_service,
    ticket_service,
)
from flowops.services.ai_prompt_schemas import ResolutionSuggestionOutput
from flowops.services.ai_provider import AIProviderError, AIProviderTimeoutError
from flowops.services.ai_response_validation import (
    AIOutputValidationError,
    parse_json_object,
    require_model,
)
from flowops.services.handoff_service import HandoffNotFoundError


@pytest.fixture
def handoff(db):
    customer_service.upsert_customer(db, "cust_1", "customer@example.com", "pro")
    ticket = ticket_service.create_ticket(
        db, "cust_1", "req-1", "Billing / Refund request", "refund please"
    ).ticket
    return handoff_service.create_handoff(
        db,
        customer_id="cust_1",
        plan="pro",
        reason=HandoffReason.LOW_CONFIDENCE,
        priority=Priority.MED,
        mode="live",
        ticket_id=ticket.id,
        request_key="req-1",
        confidence=0.6,
        issues=["missing_plan"],
        actions=["refund_auto_approved", "escalate_to_human"],
    ).handoff


# =============================================================================
# Context bundle
# =============================================================================


def test_context_bundle_reads_from_database(db, handoff):
    bundle = handoff_context_service.build_context_bundle(db, handoff.id)

    assert bundle["version"] == "handoff_context.v1"
    assert bundle["handoff"]["id"] == str(handoff.id)
    assert bundle["handoff"]["reason"] == "low_confidence"
    assert bundle["customer"] == {"id": "cust_1", "plan": "pro"}
    assert bundle["ticket"]["subject"] == "Billing / Refund request"
    assert bundle["interactions"] == []
    assert bundle["policy_outcome"] == {"refund_approved": True, "refund_amount": None}
    assert bundle["verification"] == {"issues": ["missing_plan"]}


def test_context_bundle_missing_handoff(db):
    with pytest.raises(HandoffNotFoundError):
        handoff_context_service.build_context_bundle(db, uuid.uuid4())


# =============================================================================
# Generation
# =============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "artifact_type,field",
    [
        (AiArtifactType.HANDOFF_SUMMARY, "summary_text"),
        (AiArtifactType.REPLY_DRAFT, "draft_text"),
        (AiArtifactType.RISK_ASSESSMENT, "risk_level"),
        (AiArtifactType.RESOLUTION_SUGGESTION, "suggested_category"),
    ],
)
async def test_generate_stores_ok_artifact(db, handoff, artifact_type, field):
    artifact = await ai_artifact_service.generate_artifact(db, handoff.id, artifact_type)

    assert artifact.status == AiArtifactStatus.OK.value
    assert artifact.type == artifact_type.value
    assert artifact.output["version"] == artifact_type.value
    assert artifact.output["handoff_id"] == str(handoff.id)
    assert artifact.output["generated_at"]
    assert field in artifact.output
    assert artifact.input["handoff"]["id"] == str(handoff.id)


@pytest.mark.asyncio
async def test_regenerate_overwrites_single_row(db, handoff, ai_provider):
    await ai_artifact_service.generate_artifact(db, handoff.id, AiArtifactType.REPLY_DRAFT)
    ai_provider.outputs["reply_draft_v1"]["draft_text"] = "Second draft."
    await ai_artifact_service.generate_artifact(db, handoff.id, AiArtifactType.REPLY_DRAFT)

    artifacts = ai_artifact_service.list_artifacts(db, handoff.id)
    assert len(artifacts) == 1
    assert artifacts[0].output["draft_text"] == "Second draft."


@pytest.mark.asyncio
async def test_invalid_output_stores_failed_artifact(db, handoff, ai_provider):
    ai_provider.outputs["risk_assessment_v1"] = {"risk_level": "catastrophic", "reasons": []}

    with pytest.raises(AIOutputValidationError):
        await ai_artifact_service.generate_artifact(db, handoff.id, AiArtifactType.RISK_ASSESSMENT)

    artifact = ai_artifact_service.get_artifact(db, handoff.id, AiArtifactType.RISK_ASSESSMENT)
    assert artifact.status == AiArtifactStatus.FAILED.value
    assert "RiskAssessmentOutput" in artifact.output["error"]


@pytest.mark.asyncio
async def test_failed_regeneration_keeps_previous_ok_artifact(db, handoff, ai_provider):
    first = await ai_artifact_service.generate_artifact(db, handoff.id, AiArtifactType.REPLY_DRAFT)
    draft_text = first.output["draft_text"]
    generated_at = first.output["generated_at"]
    ai_provider.fail_with = AIProviderError("upstream 503")

    with pytest.raises(AIProviderError):
        await ai_artifact_service.generate_artifact(db, handoff.id, AiArtifactType.REPLY_DRAFT)

    artifact = ai_artifact_service.get_artifact(db, handoff.id, AiArtifactType.REPLY_DRAFT)
    assert artifact.status == AiArtifactStatus.OK.value
    assert artifact.output["draft_text"] == draft_text
    assert artifact.output["generated_at"] == generated_at
    assert artifact.output["last_error"] == "upstream 503"
    assert artifact.output["last_error_at"]

    ai_provider.fail_with = None
    await ai_artifact_service.generate_artifact(db, handoff.id, AiArtifactType.REPLY_DRAFT)
    artifact = ai_artifact_service.get_artifact(db, handoff.id, AiArtifactType.REPLY_DRAFT)
    assert "last_error" not in artifact.output


@pytest.mark.asyncio
async def test_slow_provider_times_out(db, handoff, monkeypatch):
    class SlowProvider:
        async def generate(self, system, user, schema_name, schema, timeout):
            await asyncio.sleep(5)

    monkeypatch.setattr(settings, "AI_TIMEOUT_SECONDS", 0.01)
    with pytest.raises(AIProviderTimeoutError):
        await ai_artifact_service.generate_artifact(
            db, handoff.id, AiArtifactType.HANDOFF_SUMMARY, provider=SlowProvider()
        )
    artifact = ai_artifact_service.get_artifact(db, handoff.id, AiArtifactType.HANDOFF_SUMMARY)
    assert artifact.status == AiArtifactStatus.FAILED.value


def test_enqueue_generation_is_idempotent(db, handoff):
    first = ai_artifact_service.enqueue_generation(db, handoff.id, AiArtifactType.REPLY_DRAFT)
    second = ai_artifact_service.enqueue_generation(db, handoff.id, AiArtifactType.REPLY_DRAFT)

    assert first.created is True
    assert second.created is False
    assert first.event.type == OutboxEventType.AI_REPLY_DRAFT_GENERATE.value
    assert first.event.idempotency_key == f"ai:reply_draft:{handoff.id}"


def test_enqueue_generation_unknown_handoff(db):
    with pytest.raises(HandoffNotFoundError):
        ai_artifact_service.enqueue_generation(db, uuid.uuid4(), AiArtifactType.REPLY_DRAFT)


def test_signals_reflect_generated_risk(db, handoff):
    ai_artifact_service.upsert_artifact(
        db, handoff.id, AiArtifactType.RISK_ASSESSMENT, AiArtifactStatus.OK, {},
        {"risk_level": "low", "reasons": ["ok"]},
    )
    db.refresh(handoff)
    assert handoff_service.compute_signals(handoff).latest_risk_level == "low"


# =============================================================================
# Output validation
# =============================================================================


@pytest.mark.parametrize(
    "text",
    [
        '{"a": 1}',
        '```json\n{"a": 1}\n```',
        'Sure! Here you go: {"a": 1} hope that helps',
    ],
)
def test_parse_json_object_variants(text):
    assert parse_json_object(text) == {"a": 1}


@pytest.mark.parametrize("text", ["not json", "[1, 2]", ""])
def test_parse_json_object_rejects_non_objects(text):
    assert parse_json_object(text) is None


@pytest.mark.parametrize("raw,expected", [(1.7, 1.0), (-0.2, 0.0), ("0.4", 0.4), ("high", 0.0)])
def test_resolution_confidence_is_clamped(raw, expected):
    output = ResolutionSuggestionOutput.model_validate(
        {
            "suggested_category": "other",
            "confidence": raw,
            "suggested_internal_notes": "n",
            "suggested_customer_message": "  ",
        }
    )
    assert output.confidence == expected
    assert output.suggested_customer_message is None


def test_require_model_without_json():
    with pytest.raises(AIOutputValidationError, match="no JSON object"):
        require_model(ResolutionSuggestionOutput, None)


def test_bundle_includes_interactions_on_the_ticket(db, handoff):
    for request_id, ticket_id in (("req-1", handoff.ticket_id), ("req-other", None)):
        interaction_service.log_interaction(
            db,
            customer_id="cust_1",
            request_id=request_id,
            ticket_id=ticket_id,
            request_text="refund please",
            reply_text="escalated",
            mode="live",
            confidence=0.6,
            escalated=True,
            verified=True,
            actions=["escalate_to_human"],
        )

    bundle = handoff_context_service.build_context_bundle(db, handoff.id)
    assert len(bundle["interactions"]) == 1
    assert bundle["interactions"][0]["request_text"] == "refund please"
    assert bundle["interactions"][0]["escalated"] is True


def test_require_model_accepts_raw_text_and_names_bad_fields():
    text = '```json\n{"suggested_category": "other", "confidence": 0.5}\n```'
    with pytest.raises(AIOutputValidationError, match="suggested_internal_notes"):
        require_model(ResolutionSuggestionOutput, text)

    ok = require_model(
        ResolutionSuggestionOutput,
        'Here: {"suggested_category": "other", "confidence": 0.5, "suggested_internal_notes": "n"}',
    )
    assert ok.suggested_category == "other"
