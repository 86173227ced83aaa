"""Tests for refund and escalation policy."""

import pytest

from flowops.services.policy_service import (
    PolicyConfig,
    decide_refund,
    estimate_confidence,
    format_amount,
    should_escalate,
)

CONFIG = PolicyConfig(
    max_auto_refund=100.0,
    enterprise_requires_human=True,
    confidence_threshold=0.75,
    high_risk_plans=("enterprise",),
)


def test_refund_within_ceiling_is_auto_approved():
    decision = decide_refund("pro", 49, CONFIG)
    assert decision.allow is True
    assert decision.needs_human is False
    assert decision.max_amount == 49
    assert decision.reason == "Refund is within auto-approval limits."


def test_enterprise_refund_needs_human():
    decision = decide_refund("enterprise", 49, CONFIG)
    assert decision.allow is True
    assert decision.needs_human is True
    assert decision.max_amount == 49
    assert decision.reason == "Enterprise refunds require human approval."


def test_enterprise_refund_auto_when_flag_disabled():
    config = PolicyConfig(enterprise_requires_human=False)
    decision = decide_refund("enterprise", 49, config)
    assert decision.needs_human is False


def test_refund_above_ceiling_is_capped_and_needs_human():
    decision = decide_refund("pro", 250, CONFIG)
    assert decision.allow is True
    assert decision.needs_human is True
    assert decision.max_amount == 100
    assert decision.reason == "Refund exceeds €100. Human approval required."


@pytest.mark.parametrize("amount", [0, -5])
def test_no_refundable_amount_is_denied(amount):
    decision = decide_refund("pro", amount, CONFIG)
    assert decision.allow is False
    assert decision.max_amount == 0


def test_refund_max_amount_never_exceeds_refundable():
    for plan in ("free", "pro", "enterprise"):
        for amount in (1, 49, 99.5, 100, 101, 1000):
            decision = decide_refund(plan, amount, CONFIG)
            assert decision.max_amount <= amount
            assert decision.max_amount <= CONFIG.max_auto_refund


def test_refund_needs_human_is_monotonic_in_amount():
    # Once a plan needs a human at some amount, larger amounts do too
    for plan in ("free", "pro", "enterprise"):
        seen_human = False
        for amount in (10, 50, 99, 100, 100.01, 500):
            needs = decide_refund(plan, amount, CONFIG).needs_human
            if seen_human:
                assert needs
            seen_human = seen_human or needs


def test_failed_verification_always_escalates():
    decision = should_escalate("pro", 0.99, False, CONFIG)
    assert decision.escalate is True
    assert decision.reason == "Verification failed. Escalating to a human."


def test_low_confidence_escalates():
    decision = should_escalate("pro", 0.6, True, CONFIG)
    assert decision.escalate is True
    assert decision.reason == "Low confidence (0.6). Escalating to a human."


def test_high_risk_plan_alone_does_not_escalate():
    decision = should_escalate("enterprise", 0.85, True, CONFIG)
    assert decision.escalate is False
    assert decision.reason == "High-risk plan. Proceed cautiously."


def test_within_policy_does_not_escalate():
    decision = should_escalate("pro", 0.85, True, CONFIG)
    assert decision.escalate is False


def test_estimate_confidence():
    assert estimate_confidence(False, "I want a refund") == 0.4
    assert estimate_confidence(True, "refund") == 0.6
    assert estimate_confidence(True, "I want a refund") == 0.85


def test_format_amount():
    assert format_amount(49.0) == "49"
    assert format_amount(12.5) == "12.5"


def test_format_amount_keeps_large_amounts_exact():
    assert format_amount(1234567.89) == "1234567.89"
    assert format_amount(1_000_000) == "1000000"
    assert format_amount(12345.67) == "12345.67"
    assert format_amount(0.105) == "0.11"
