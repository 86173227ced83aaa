"""Enum definitions for application constants."""

from enum import Enum


class Plan(str, Enum):
    """Customer plan tier. Drives refund policy and SLA duration."""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class Mode(str, Enum):
    """
    Pipeline execution mode.

    - SHADOW: dry run, nothing persisted or enqueued
    - LIVE: fully durable
    """
    SHADOW = "shadow"
    LIVE = "live"


class OperatorRole(str, Enum):
    """Operator roles with increasing privilege levels."""
    VIEWER = "viewer"
    OPERATOR = "operator"
    SUPERVISOR = "supervisor"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


# Roles allowed to mutate handoffs / request AI artifacts
ROLES_CAN_WORK_HANDOFFS = frozenset({OperatorRole.OPERATOR, OperatorRole.SUPERVISOR})

# Roles allowed to resolve a handoff claimed by someone else
ROLES_CAN_OVERRIDE_CLAIM = frozenset({OperatorRole.SUPERVISOR})


class Priority(str, Enum):
    LOW = "low"
    MED = "med"
    HIGH = "high"


class TicketStatus(str, Enum):
    """
    Ticket status.

    open → pending → closed, or → resolved when the linked handoff resolves.
    """
    OPEN = "open"
    PENDING = "pending"
    CLOSED = "closed"
    RESOLVED = "resolved"


class HandoffStatus(str, Enum):
    """
    Handoff lifecycle: pending → claimed → resolved (terminal).

    SLA breach is tracked separately via sla_breached_at.
    """
    PENDING = "pending"
    CLAIMED = "claimed"
    RESOLVED = "resolved"


class HandoffReason(str, Enum):
    """Escalation reasons, listed in selection priority order."""
    VERIFICATION_FAILED = "verification_failed"
    RECENT_ESCALATION = "recent_escalation"
    LOW_CONFIDENCE = "low_confidence"
    POLICY_REQUIRES_HUMAN = "policy_requires_human"


class OutboxStatus(str, Enum):
    """Status of outbox events."""
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    DEAD = "dead"

    @classmethod
    def claimable(cls) -> list[str]:
        """Statuses the dispatcher may pick up."""
        return [cls.PENDING.value, cls.FAILED.value]


class OutboxEventType(str, Enum):
    """Types of side-effect jobs delivered through the outbox."""
    EMAIL_SEND = "email.send"
    SLA_BREACH_NOTIFY = "notify.sla_breach"
    AI_HANDOFF_SUMMARY_GENERATE = "ai.handoff_summary.generate"
    AI_REPLY_DRAFT_GENERATE = "ai.reply_draft.generate"
    AI_RISK_ASSESSMENT_GENERATE = "ai.risk_assessment.generate"
    AI_RESOLUTION_SUGGESTION_GENERATE = "ai.resolution_suggestion.generate"


class AiArtifactType(str, Enum):
    """Versioned artifact types stored per handoff."""
    HANDOFF_SUMMARY = "handoff_summary.v1"
    REPLY_DRAFT = "reply_draft.v1"
    RISK_ASSESSMENT = "risk_assessment.v1"
    RESOLUTION_SUGGESTION = "resolution_suggestion.v1"

    @property
    def key_name(self) -> str:
        """Name used in idempotency keys (``ai:<key_name>:<handoff id>``)."""
        return self.value.split(".", 1)[0]


class AiArtifactStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


# Artifact type -> outbox event type that generates it
AI_ARTIFACT_EVENT_TYPES: dict[AiArtifactType, OutboxEventType] = {
    AiArtifactType.HANDOFF_SUMMARY: OutboxEventType.AI_HANDOFF_SUMMARY_GENERATE,
    AiArtifactType.REPLY_DRAFT: OutboxEventType.AI_REPLY_DRAFT_GENERATE,
    AiArtifactType.RISK_ASSESSMENT: OutboxEventType.AI_RISK_ASSESSMENT_GENERATE,
    AiArtifactType.RESOLUTION_SUGGESTION: OutboxEventType.AI_RESOLUTION_SUGGESTION_GENERATE,
}

DEFAULT_OUTBOX_STATUS = OutboxStatus.PENDING
DEFAULT_HANDOFF_STATUS = HandoffStatus.PENDING
DEFAULT_TICKET_STATUS = TicketStatus.OPEN
