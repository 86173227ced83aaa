"""Chat request pipeline.

Gathers account/billing facts, opens a ticket, applies refund policy, drafts
and verifies a reply, then decides whether a human takes over. Shadow mode
runs the same decisions without persisting or enqueuing anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flowops.core.config import settings
from flowops.core.structured_logging import build_log_context
from flowops.db.enums import (
    HandoffReason,
    HandoffStatus,
    Mode,
    OutboxEventType,
    Plan,
    Priority,
)
from flowops.db.models import Handoff, Interaction
from flowops.services import (
    customer_service,
    handoff_service,
    idempotency_service,
    interaction_service,
    outbox_service,
    ticket_service,
)
from flowops.services.action_trail import ActionKind, ActionTrail
from flowops.services.fact_tools import (
    AccountStatus,
    BillingSummary,
    FactSource,
    ToolErr,
    get_fact_source,
)
from flowops.services.policy_service import (
    ConfidenceEstimator,
    PolicyConfig,
    decide_refund,
    estimate_confidence,
    format_amount,
    should_escalate,
)
from flowops.services.verification_service import RefundClaim, verify_reply
from flowops.utils.datetime_utils import to_iso

logger = logging.getLogger(__name__)

SHADOW_TICKET_ID = "shadow_ticket"
SHADOW_HANDOFF_ID = "shadow_handoff"
SHADOW_EMAIL_ID = "shadow_email"

MISSING_CUSTOMER_REPLY = "Please provide a valid customerId so I can look up your account."
MISSING_CUSTOMER_CONFIDENCE = 0.3
ESCALATED_CONFIDENCE_CAP = 0.6
HISTORY_REQUEST_PREVIEW = 120

CONTINUITY_LINE = (
    "I see this is a follow-up to a recent escalated case. "
    "I'll be extra careful and keep the context."
)


@dataclass
class ChatRequest:
    customer_id: str
    message: str
    mode: Mode = Mode.SHADOW
    request_id: str | None = None


@dataclass
class ChatResult:
    reply: str
    mode: Mode
    ticket_id: str | None
    escalated: bool
    confidence: float
    actions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Intent:
    api_issue: bool
    billing_issue: bool
    asks_refund: bool


def classify_intent(message: str) -> Intent:
    text = message.lower()
    return Intent(
        api_issue="api" in text or "key" in text,
        billing_issue="bill" in text or "invoice" in text or "refund" in text,
        asks_refund="refund" in text,
    )


def has_unresolved_escalation(db: Session, recent: list[Interaction]) -> bool:
    """
    True when any escalated interaction in the window is still open.

    An escalation counts as settled once the handoff opened for its ticket
    has been resolved.
    """
    escalated = [i for i in recent if i.escalated]
    if not escalated:
        return False
    ticket_ids = {i.ticket_id for i in escalated if i.ticket_id is not None}
    resolved_tickets: set[UUID] = set()
    if ticket_ids:
        resolved_tickets = set(
            db.execute(
                select(Handoff.ticket_id).where(
                    Handoff.ticket_id.in_(ticket_ids),
                    Handoff.status == HandoffStatus.RESOLVED.value,
                )
            )
            .scalars()
            .all()
        )
    return any(i.ticket_id is None or i.ticket_id not in resolved_tickets for i in escalated)


def build_ticket_summary(
    message: str,
    account: AccountStatus,
    billing: BillingSummary,
    recent: list[Interaction],
) -> str:
    lines = [
        f"Customer message: {message}",
        f"Plan: {account.plan}, API key: {account.api_key_status}",
        f"Last invoice: {billing.last_invoice_id} ({billing.invoice_status}, "
        f"amount {format_amount(billing.last_invoice_amount)})",
    ]
    if recent:
        lines.append("")
        lines.append("Recent history (latest first):")
        for idx, item in enumerate(recent, start=1):
            request_text = " ".join(item.request_text.split())[:HISTORY_REQUEST_PREVIEW]
            lines.append(
                f"#{idx} [{to_iso(item.created_at)}] escalated={str(item.escalated).lower()} "
                f'conf={item.confidence} req="{request_text}"'
            )
    return "\n".join(lines)


def build_refund_line(
    plan: str,
    billing: BillingSummary,
    trail: ActionTrail,
    config: PolicyConfig,
) -> tuple[str, RefundClaim]:
    decision = decide_refund(plan, billing.refundable_amount, config)
    amount = format_amount(decision.max_amount)

    if not decision.allow:
        trail.add(ActionKind.REFUND_DENIED)
        return (
            f"Refund request: not eligible. Reason: {decision.reason}",
            RefundClaim(approved=False, amount=0, needs_human=False),
        )
    if decision.needs_human:
        trail.add(ActionKind.REFUND_NEEDS_HUMAN)
        return (
            f"Refund request: eligible up to €{amount}, but requires human approval. "
            f"({decision.reason})",
            RefundClaim(approved=True, amount=decision.max_amount, needs_human=True),
        )
    trail.add(ActionKind.REFUND_AUTO_APPROVED)
    return (
        f"Refund request: approved for €{amount}. ({decision.reason})",
        RefundClaim(approved=True, amount=decision.max_amount, needs_human=False),
    )


def build_reply_draft(
    ticket_id: str,
    account: AccountStatus,
    billing: BillingSummary,
    refund_line: str,
    continuity: bool,
) -> str:
    parts = [
        f"I opened ticket **{ticket_id}** for you.",
        f"Plan: **{account.plan}** · API key: **{account.api_key_status}** · "
        f"Last invoice: **{billing.last_invoice_id}** ({billing.invoice_status})",
        f"\n{refund_line}" if refund_line else "",
        f"\nI'll continue helping you here, and I sent a follow-up email to **{account.email}**.",
        f"\n\n{CONTINUITY_LINE}" if continuity else "",
    ]
    return "\n".join(p for p in parts if p)


def build_escalation_reply(ticket_id: str) -> str:
    return (
        f"I opened ticket **{ticket_id}** and pulled your account/billing details.\n\n"
        "To be safe, I'm escalating this to a human agent to double-check everything "
        "before confirming next steps."
    )


def build_email(
    ticket_id: str,
    account: AccountStatus,
    billing: BillingSummary,
    refund_line: str,
    escalated: bool,
) -> tuple[str, str]:
    subject = f"FlowOps Support Ticket {ticket_id}: Update"
    lines = [
        "Hi there,",
        "",
        f"Thanks for reaching out. I checked your account and opened ticket {ticket_id}.",
        f"Plan: {account.plan}",
        f"API key status: {account.api_key_status}",
        f"Last invoice: {billing.last_invoice_id} ({billing.invoice_status})",
    ]
    if refund_line:
        lines += ["", refund_line]
    lines += [
        "",
        "Because this case needs extra attention, I'm escalating it to a human specialist."
        if escalated
        else "I'll keep you updated here as we proceed.",
        "",
        "FlowOps AI",
    ]
    return subject, "\n".join(lines)


def select_handoff_reason(
    verification_passed: bool,
    memory_escalation: bool,
    confidence: float,
    config: PolicyConfig,
) -> HandoffReason:
    if not verification_passed:
        return HandoffReason.VERIFICATION_FAILED
    if memory_escalation:
        return HandoffReason.RECENT_ESCALATION
    if confidence < config.confidence_threshold:
        return HandoffReason.LOW_CONFIDENCE
    return HandoffReason.POLICY_REQUIRES_HUMAN


def select_handoff_priority(
    plan: str,
    memory_escalation: bool,
    confidence: float,
    config: PolicyConfig,
) -> Priority:
    if plan == Plan.ENTERPRISE.value:
        return Priority.HIGH
    if memory_escalation or confidence < config.confidence_threshold:
        return Priority.MED
    return Priority.LOW


def _replay(prior: Interaction, mode: Mode) -> ChatResult:
    return ChatResult(
        reply=prior.reply_text,
        mode=mode,
        ticket_id=str(prior.ticket_id) if prior.ticket_id else None,
        escalated=prior.escalated,
        confidence=prior.confidence,
        actions=[*list(prior.actions or []), ActionKind.IDEMPOTENCY_REPLAY.value],
    )


async def run_pipeline(
    db: Session,
    request: ChatRequest,
    *,
    facts: FactSource | None = None,
    estimator: ConfidenceEstimator = estimate_confidence,
    config: PolicyConfig | None = None,
) -> ChatResult:
    """Process one chat request end to end. Never raises for business outcomes."""
    mode = Mode(request.mode)
    live = mode == Mode.LIVE
    facts = facts or get_fact_source()
    config = config or PolicyConfig.from_settings()
    trail = ActionTrail()
    customer_id = (request.customer_id or "").strip()
    message = request.message or ""

    if not customer_id:
        return ChatResult(
            reply=MISSING_CUSTOMER_REPLY,
            mode=mode,
            ticket_id=None,
            escalated=True,
            confidence=MISSING_CUSTOMER_CONFIDENCE,
            actions=[],
        )

    request_key = idempotency_service.resolve_request_id(
        customer_id, message, mode.value, request.request_id
    )
    log_context = build_log_context(customer_id=customer_id, request_id=request_key)

    recent: list[Interaction] = []
    memory_escalation = False
    if live:
        # Writes below are keyed by request_key; a failed lookup means no history.
        try:
            prior = idempotency_service.find_prior_result(db, customer_id, request_key)
            if prior is not None:
                logger.info("Replaying prior result for chat request", extra=log_context)
                return _replay(prior, mode)
            recent = interaction_service.list_recent(
                db, customer_id, limit=settings.HISTORY_WINDOW
            )
            memory_escalation = has_unresolved_escalation(db, recent) if recent else False
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("History lookup failed", extra=log_context)
            trail.add(ActionKind.HISTORY_FETCH_FAILED, type(exc).__name__)
            recent = []
            memory_escalation = False

    # Facts
    account_res = await facts.get_account_status(customer_id)
    if account_res.ok:
        trail.add(ActionKind.ACCOUNT_FETCHED)
    billing_res = await facts.get_billing_summary(customer_id)
    if billing_res.ok:
        trail.add(ActionKind.BILLING_FETCHED)

    tool_ok = account_res.ok and billing_res.ok
    confidence = estimator(tool_ok, message)

    if not tool_ok:
        failed = account_res if isinstance(account_res, ToolErr) else billing_res
        trail.add(ActionKind.TOOL_FETCH_FAILED)
        logger.warning("Fact tools failed: %s", failed.error, extra=log_context)
        return ChatResult(
            reply=(
                "I couldn't retrieve the necessary account/billing details "
                f"({failed.error}). I'm escalating this to a human agent."
            ),
            mode=mode,
            ticket_id=None,
            escalated=True,
            confidence=confidence,
            actions=trail.to_list(),
        )

    account: AccountStatus = account_res.data
    billing: BillingSummary = billing_res.data
    plan = account.plan
    intent = classify_intent(message)

    # Ticket
    subject = ticket_service.subject_for_intent(intent.billing_issue, intent.api_issue)
    summary = build_ticket_summary(message, account, billing, recent)
    ticket_uuid: UUID | None = None
    if live:
        try:
            customer_service.upsert_customer(db, customer_id, account.email, plan)
            ticket_result = ticket_service.create_ticket(
                db, customer_id, request_key, subject, summary, Priority.MED
            )
        except SQLAlchemyError as exc:
            db.rollback()
            trail.add(ActionKind.TICKET_CREATE_FAILED)
            logger.exception("Ticket creation failed", extra=log_context)
            return ChatResult(
                reply=(
                    "I found your account details but couldn't create a ticket "
                    f"({type(exc).__name__}). I'm escalating this to a human agent."
                ),
                mode=mode,
                ticket_id=None,
                escalated=True,
                confidence=min(confidence, ESCALATED_CONFIDENCE_CAP),
                actions=trail.to_list(),
            )
        ticket_uuid = ticket_result.ticket.id
        ticket_id = str(ticket_uuid)
    else:
        ticket_id = SHADOW_TICKET_ID
    trail.add(ActionKind.TICKET_CREATED, ticket_id)

    # Refund
    refund_line = ""
    refund_claim: RefundClaim | None = None
    if intent.asks_refund:
        refund_line, refund_claim = build_refund_line(plan, billing, trail, config)

    # Draft + verification
    draft = build_reply_draft(ticket_id, account, billing, refund_line, memory_escalation)
    verification = verify_reply(draft, account, billing, refund_claim)
    if verification.passed:
        trail.add(ActionKind.VERIFICATION_PASSED)
    else:
        trail.add(ActionKind.VERIFICATION_FAILED)
        for issue in verification.issues:
            trail.add(ActionKind.VERIFY_ISSUE, issue)

    # Escalation
    decision = should_escalate(plan, confidence, verification.passed, config)
    escalate = decision.escalate
    if memory_escalation:
        escalate = True
        trail.add(ActionKind.MEMORY_RECENT_ESCALATION)
    final_confidence = min(confidence, ESCALATED_CONFIDENCE_CAP) if escalate else confidence

    if escalate:
        trail.add(ActionKind.ESCALATE_TO_HUMAN)
        reason = select_handoff_reason(verification.passed, memory_escalation, confidence, config)
        priority = select_handoff_priority(plan, memory_escalation, confidence, config)
        if live:
            try:
                handoff_result = handoff_service.create_handoff(
                    db,
                    customer_id=customer_id,
                    plan=plan,
                    reason=reason,
                    priority=priority,
                    mode=mode.value,
                    ticket_id=ticket_uuid,
                    request_key=request_key,
                    confidence=final_confidence,
                    issues=verification.issues,
                    actions=trail.to_list(),
                )
                trail.add(ActionKind.HANDOFF_CREATED, handoff_result.handoff.id)
            except (SQLAlchemyError, ValueError) as exc:
                db.rollback()
                logger.exception("Handoff creation failed", extra=log_context)
                trail.add(ActionKind.HANDOFF_FAILED, str(exc) or type(exc).__name__)
        else:
            trail.add(ActionKind.HANDOFF_CREATED, SHADOW_HANDOFF_ID)

    # Follow-up email
    email_subject, email_body = build_email(ticket_id, account, billing, refund_line, escalate)
    if live:
        try:
            enqueue_result = outbox_service.enqueue_event(
                db,
                OutboxEventType.EMAIL_SEND,
                {
                    "to": account.email,
                    "subject": email_subject,
                    "body": email_body,
                    "customer_id": customer_id,
                    "request_id": request_key,
                },
                f"email:{customer_id}:{request_key}",
            )
            trail.add(ActionKind.EMAIL_QUEUED, enqueue_result.event.id)
        except (SQLAlchemyError, ValueError) as exc:
            db.rollback()
            logger.exception("Email enqueue failed", extra=log_context)
            trail.add(ActionKind.EMAIL_FAILED, str(exc) or type(exc).__name__)
    else:
        trail.add(ActionKind.EMAIL_QUEUED, SHADOW_EMAIL_ID)

    reply = build_escalation_reply(ticket_id) if escalate else draft
    actions = trail.to_list()

    if live:
        try:
            logged = interaction_service.log_interaction(
                db,
                customer_id=customer_id,
                request_id=request_key,
                ticket_id=ticket_uuid,
                request_text=message,
                reply_text=reply,
                mode=mode.value,
                confidence=final_confidence,
                escalated=escalate,
                verified=verification.passed,
                actions=actions,
            )
            if not logged.created:
                logger.info(
                    "Interaction already logged by a concurrent request", extra=log_context
                )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Interaction log failed", extra=log_context)
            trail.add(ActionKind.INTERACTION_LOG_FAILED, type(exc).__name__)
            actions = trail.to_list()

    logger.info(
        "Chat request processed mode=%s escalated=%s confidence=%.2f",
        mode.value,
        escalate,
        final_confidence,
        extra=log_context,
    )
    return ChatResult(
        reply=reply,
        mode=mode,
        ticket_id=ticket_id,
        escalated=escalate,
        confidence=final_confidence,
        actions=actions,
    )
