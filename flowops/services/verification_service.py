"""Reply verification against tool-fetched ground truth."""

from __future__ import annotations

from dataclasses import dataclass, field

from flowops.services.fact_tools import AccountStatus, BillingSummary
from flowops.services.policy_service import format_amount


@dataclass(frozen=True)
class RefundClaim:
    """What the draft asserts about a refund."""

    approved: bool
    amount: float
    needs_human: bool


@dataclass(frozen=True)
class VerificationResult:
    passed: bool
    issues: list[str] = field(default_factory=list)


def verify_reply(
    draft: str,
    account: AccountStatus,
    billing: BillingSummary,
    claimed_refund: RefundClaim | None = None,
) -> VerificationResult:
    """
    Check a reply draft for contradictions with account/billing facts.

    Matching is case-insensitive substring containment. Only facts the draft
    mentions are checked, so a draft that says nothing about the invoice
    cannot fail on invoice details.
    """
    issues: list[str] = []
    text = draft.lower()

    if "plan:" in text and account.plan.lower() not in text:
        issues.append("Reply mentions plan but does not match the account plan.")

    if "api key" in text and account.api_key_status.lower() not in text:
        issues.append("Reply mentions API key status but does not match tool output.")

    if "last invoice" in text:
        if billing.last_invoice_id.lower() not in text:
            issues.append("Reply mentions last invoice but invoice ID does not match.")
        if billing.invoice_status.lower() not in text:
            issues.append(
                "Reply mentions invoice but does not include correct invoice status."
            )

    if claimed_refund is not None:
        amount = format_amount(claimed_refund.amount)
        if claimed_refund.approved:
            if claimed_refund.amount > billing.refundable_amount:
                issues.append(
                    f"Refund amount (€{amount}) exceeds refundable amount "
                    f"(€{format_amount(billing.refundable_amount)})."
                )
            if f"€{amount}" not in text:
                issues.append(
                    "Reply claims refund approval but does not include the approved amount."
                )
        elif "refund" in text and "approved" in text:
            issues.append("Reply suggests refund approval but refund was not approved.")

    return VerificationResult(passed=not issues, issues=issues)
