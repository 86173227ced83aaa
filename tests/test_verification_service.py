"""Tests for reply verification against ground truth."""

from flowops.services.fact_tools import DEFAULT_ACCOUNT, DEFAULT_BILLING, BillingSummary
from flowops.services.verification_service import RefundClaim, verify_reply

GOOD_DRAFT = (
    "I opened ticket **t1** for you.\n"
    "Plan: **pro** · API key: **expired** · Last invoice: **inv_123** (paid)\n"
    "Refund request: approved for €49."
)


def test_consistent_draft_passes():
    result = verify_reply(
        GOOD_DRAFT,
        DEFAULT_ACCOUNT,
        DEFAULT_BILLING,
        RefundClaim(approved=True, amount=49, needs_human=False),
    )
    assert result.passed is True
    assert result.issues == []


def test_wrong_plan_is_flagged():
    # No refund line: "approved" contains "pro"
    draft = "Plan: **free** · API key: **expired**"
    result = verify_reply(draft, DEFAULT_ACCOUNT, DEFAULT_BILLING)
    assert result.passed is False
    assert "Reply mentions plan but does not match the account plan." in result.issues


def test_wrong_invoice_is_flagged():
    draft = GOOD_DRAFT.replace("inv_123", "inv_999").replace("(paid)", "(open)")
    result = verify_reply(draft, DEFAULT_ACCOUNT, DEFAULT_BILLING)
    assert "Reply mentions last invoice but invoice ID does not match." in result.issues
    assert "Reply mentions invoice but does not include correct invoice status." in result.issues


def test_unmentioned_facts_are_not_checked():
    result = verify_reply("Thanks, we are looking into it.", DEFAULT_ACCOUNT, DEFAULT_BILLING)
    assert result.passed is True


def test_refund_over_refundable_amount_is_flagged():
    result = verify_reply(
        GOOD_DRAFT.replace("€49", "€80"),
        DEFAULT_ACCOUNT,
        DEFAULT_BILLING,
        RefundClaim(approved=True, amount=80, needs_human=False),
    )
    assert "Refund amount (€80) exceeds refundable amount (€49)." in result.issues


def test_missing_approved_amount_is_flagged():
    result = verify_reply(
        GOOD_DRAFT.replace("€49", "the full amount"),
        DEFAULT_ACCOUNT,
        DEFAULT_BILLING,
        RefundClaim(approved=True, amount=49, needs_human=False),
    )
    assert (
        "Reply claims refund approval but does not include the approved amount."
        in result.issues
    )


def test_denied_refund_described_as_approved_is_flagged():
    result = verify_reply(
        GOOD_DRAFT,
        DEFAULT_ACCOUNT,
        DEFAULT_BILLING,
        RefundClaim(approved=False, amount=0, needs_human=False),
    )
    assert "Reply suggests refund approval but refund was not approved." in result.issues


def test_large_refund_amount_is_compared_to_the_cent():
    billing = BillingSummary("inv_123", 1234567.89, "paid", 1234567.89)
    claim = RefundClaim(approved=True, amount=1234567.89, needs_human=False)

    exact = verify_reply(GOOD_DRAFT.replace("€49", "€1234567.89"), DEFAULT_ACCOUNT, billing, claim)
    rounded = verify_reply(GOOD_DRAFT.replace("€49", "€1234568"), DEFAULT_ACCOUNT, billing, claim)

    assert exact.passed is True
    assert (
        "Reply claims refund approval but does not include the approved amount."
        in rounded.issues
    )
