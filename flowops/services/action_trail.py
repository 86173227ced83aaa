"""Typed action tags recorded while a chat request is processed.

Tags keep their order and serialize to plain strings (``kind`` or
``kind:detail``) only when written to a JSON column or returned to a client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ActionKind(str, Enum):
    ACCOUNT_FETCHED = "account_fetched"
    BILLING_FETCHED = "billing_fetched"
    TOOL_FETCH_FAILED = "tool_fetch_failed"
    TICKET_CREATED = "ticket_created"
    TICKET_CREATE_FAILED = "ticket_create_failed"
    REFUND_DENIED = "refund_denied"
    REFUND_NEEDS_HUMAN = "refund_needs_human"
    REFUND_AUTO_APPROVED = "refund_auto_approved"
    VERIFICATION_PASSED = "verification_passed"
    VERIFICATION_FAILED = "verification_failed"
    VERIFY_ISSUE = "verify_issue"
    MEMORY_RECENT_ESCALATION = "memory_recent_escalation_escalate"
    ESCALATE_TO_HUMAN = "escalate_to_human"
    HANDOFF_CREATED = "handoff_created"
    HANDOFF_FAILED = "handoff_failed"
    EMAIL_QUEUED = "email_queued"
    EMAIL_FAILED = "email_failed"
    HISTORY_FETCH_FAILED = "history_fetch_failed"
    INTERACTION_LOG_FAILED = "interaction_log_failed"
    IDEMPOTENCY_REPLAY = "idempotency_replay"


@dataclass(frozen=True)
class ActionTag:
    kind: ActionKind
    detail: str | None = None

    def __str__(self) -> str:
        if self.detail is None:
            return self.kind.value
        return f"{self.kind.value}:{self.detail}"


@dataclass
class ActionTrail:
    """Ordered, append-only list of action tags."""

    tags: list[ActionTag] = field(default_factory=list)

    def add(self, kind: ActionKind, detail: object | None = None) -> None:
        self.tags.append(ActionTag(kind, None if detail is None else str(detail)))

    def has(self, kind: ActionKind) -> bool:
        return any(tag.kind == kind for tag in self.tags)

    def to_list(self) -> list[str]:
        return [str(tag) for tag in self.tags]

    def __iter__(self):
        return iter(self.tags)

    def __len__(self) -> int:
        return len(self.tags)
