"""Refund and escalation policy.

Pure functions over plan, amounts and confidence. Thresholds live in
``PolicyConfig`` so they can be tuned from settings without code changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from flowops.core.config import settings
from flowops.db.enums import Plan


@dataclass(frozen=True)
class PolicyConfig:
    max_auto_refund: float = 100.0
    enterprise_requires_human: bool = True
    confidence_threshold: float = 0.75
    high_risk_plans: tuple[str, ...] = (Plan.ENTERPRISE.value,)

    @classmethod
    def from_settings(cls) -> "PolicyConfig":
        return cls(
            max_auto_refund=settings.REFUND_MAX_AUTO_AMOUNT,
            enterprise_requires_human=settings.REFUND_ENTERPRISE_REQUIRES_HUMAN,
            confidence_threshold=settings.ESCALATION_CONFIDENCE_THRESHOLD,
            high_risk_plans=tuple(settings.high_risk_plans_list),
        )


@dataclass(frozen=True)
class RefundDecision:
    allow: bool
    needs_human: bool
    max_amount: float
    reason: str


@dataclass(frozen=True)
class EscalationDecision:
    escalate: bool
    reason: str


def format_amount(amount: float) -> str:
    """Render a euro amount the way replies quote it (49.0 -> "49", 12.5 -> "12.5").

    Rounded to cents, never to significant digits, so large amounts stay exact.
    """
    cents = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{cents:f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def decide_refund(
    plan: str,
    refundable_amount: float,
    config: PolicyConfig | None = None,
) -> RefundDecision:
    """
    Decide whether a refund may be offered and whether a human must approve it.

    Never raises. ``max_amount`` never exceeds the refundable amount.
    """
    config = config or PolicyConfig.from_settings()
    ceiling = config.max_auto_refund

    if refundable_amount <= 0:
        return RefundDecision(
            allow=False,
            needs_human=False,
            max_amount=0,
            reason="No refundable amount available.",
        )

    if plan == Plan.ENTERPRISE.value and config.enterprise_requires_human:
        return RefundDecision(
            allow=True,
            needs_human=True,
            max_amount=min(refundable_amount, ceiling),
            reason="Enterprise refunds require human approval.",
        )

    if refundable_amount > ceiling:
        return RefundDecision(
            allow=True,
            needs_human=True,
            max_amount=ceiling,
            reason=f"Refund exceeds €{format_amount(ceiling)}. Human approval required.",
        )

    return RefundDecision(
        allow=True,
        needs_human=False,
        max_amount=refundable_amount,
        reason="Refund is within auto-approval limits.",
    )


def should_escalate(
    plan: str,
    confidence: float,
    verification_passed: bool,
    config: PolicyConfig | None = None,
) -> EscalationDecision:
    """Escalate on failed verification or low confidence; never on plan alone."""
    config = config or PolicyConfig.from_settings()

    if not verification_passed:
        return EscalationDecision(True, "Verification failed. Escalating to a human.")

    if confidence < config.confidence_threshold:
        return EscalationDecision(
            True, f"Low confidence ({confidence}). Escalating to a human."
        )

    if plan in config.high_risk_plans:
        return EscalationDecision(False, "High-risk plan. Proceed cautiously.")

    return EscalationDecision(False, "Within policy. No escalation required.")


# Swappable confidence heuristic: (tool_ok, message) -> 0..1
ConfidenceEstimator = Callable[[bool, str], float]


def estimate_confidence(tool_ok: bool, message: str) -> float:
    if not tool_ok:
        return 0.4
    if len(message) < 10:
        return 0.6
    return 0.85
