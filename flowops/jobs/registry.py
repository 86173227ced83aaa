"""Outbox job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from flowops.db.enums import OutboxEventType
from flowops.jobs.handlers import ai, email, notifications

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    OutboxEventType.EMAIL_SEND.value: email.process_email_send,
    OutboxEventType.SLA_BREACH_NOTIFY.value: notifications.process_sla_breach_notify,
    OutboxEventType.AI_HANDOFF_SUMMARY_GENERATE.value: ai.process_handoff_summary,
    OutboxEventType.AI_REPLY_DRAFT_GENERATE.value: ai.process_reply_draft,
    OutboxEventType.AI_RISK_ASSESSMENT_GENERATE.value: ai.process_risk_assessment,
    OutboxEventType.AI_RESOLUTION_SUGGESTION_GENERATE.value: ai.process_resolution_suggestion,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
