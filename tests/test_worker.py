"""Tests for the outbox dispatcher and job handlers."""

import pytest

from flowops.core.config import settings
from flowops.db.enums import (
    AiArtifactStatus,
    AiArtifactType,
    HandoffReason,
    OutboxEventType,
    OutboxStatus,
    Priority,
)
from flowops.jobs.registry import JOB_HANDLERS, resolve_job_handler
from flowops.services import ai_artifact_service, customer_service, handoff_service, outbox_service
from flowops.services.ai_provider import AIProviderError
from flowops.worker import drain, run_once


def _handoff(db):
    customer_service.upsert_customer(db, "cust_1", "customer@example.com", "pro")
    return handoff_service.create_handoff(
        db,
        customer_id="cust_1",
        plan="pro",
        reason=HandoffReason.LOW_CONFIDENCE,
        priority=Priority.MED,
        mode="live",
        request_key="req-1",
    ).handoff


def test_every_event_type_has_a_handler():
    assert set(JOB_HANDLERS) == {t.value for t in OutboxEventType}


def test_unknown_job_type_is_rejected():
    with pytest.raises(ValueError, match="Unknown job type: nope"):
        resolve_job_handler("nope")


@pytest.mark.asyncio
async def test_run_once_with_nothing_eligible(db):
    assert await run_once(db) is False


@pytest.mark.asyncio
async def test_email_event_is_sent_with_outbox_key(db, email_sender):
    event = outbox_service.enqueue_event(
        db,
        OutboxEventType.EMAIL_SEND,
        {"to": "customer@example.com", "subject": "Re: refund", "body": "Hi"},
        "email:cust_1:req-1",
    ).event

    assert await run_once(db) is True

    db.refresh(event)
    assert event.status == OutboxStatus.SENT.value
    assert email_sender.sent == [
        {
            "to": "customer@example.com",
            "subject": "Re: refund",
            "body": "Hi",
            "idempotency_key": "email:cust_1:req-1",
        }
    ]


@pytest.mark.asyncio
async def test_email_without_recipient_fails_with_backoff(db, email_sender):
    event = outbox_service.enqueue_event(
        db, OutboxEventType.EMAIL_SEND, {"subject": "x"}, "email:cust_1:req-2"
    ).event

    await run_once(db)

    db.refresh(event)
    assert event.status == OutboxStatus.FAILED.value
    assert event.attempts == 1
    assert "Missing recipient" in event.last_error
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_unknown_event_type_dead_letters_eventually(db, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_MAX_ATTEMPTS", 1)
    event = outbox_service.enqueue_event(db, "legacy.type", {}, "legacy:1").event

    await run_once(db)

    db.refresh(event)
    assert event.status == OutboxStatus.DEAD.value
    assert event.last_error == "Unknown job type: legacy.type"


@pytest.mark.asyncio
async def test_sla_notification_without_webhook_is_sent(db, monkeypatch):
    monkeypatch.setattr(settings, "SLA_BREACH_WEBHOOK_URL", "")
    event = outbox_service.enqueue_event(
        db,
        OutboxEventType.SLA_BREACH_NOTIFY,
        {"handoff_id": "h1", "message": "Handoff SLA breached"},
        "sla:h1",
    ).event

    await run_once(db)

    db.refresh(event)
    assert event.status == OutboxStatus.SENT.value


@pytest.mark.asyncio
async def test_summary_event_generates_artifact(db, ai_provider):
    handoff = _handoff(db)

    assert await drain(db) == 1

    artifact = ai_artifact_service.get_artifact(db, handoff.id, AiArtifactType.HANDOFF_SUMMARY)
    assert artifact.status == AiArtifactStatus.OK.value
    assert artifact.output["summary_text"] == "Customer asked for a refund on a pro plan."
    assert [c["schema_name"] for c in ai_provider.calls] == ["handoff_summary_v1"]


@pytest.mark.asyncio
async def test_provider_failure_is_retried_not_lost(db, ai_provider):
    handoff = _handoff(db)
    ai_provider.fail_with = AIProviderError("upstream 503", status_code=503)

    await drain(db)

    event = outbox_service.get_event_by_key(db, f"ai:handoff_summary:{handoff.id}")
    assert event.status == OutboxStatus.FAILED.value
    assert event.last_error == "upstream 503"
    artifact = ai_artifact_service.get_artifact(db, handoff.id, AiArtifactType.HANDOFF_SUMMARY)
    assert artifact.status == AiArtifactStatus.FAILED.value
    assert artifact.output["error"] == "upstream 503"


@pytest.mark.asyncio
async def test_drain_respects_limit(db):
    for n in range(3):
        outbox_service.enqueue_event(
            db, OutboxEventType.EMAIL_SEND, {"to": "a@example.com"}, f"email:cust_1:{n}"
        )
    assert await drain(db, limit=2) == 2
    assert await drain(db) == 1
