"""Tests for request keys and action trails."""

from flowops.services.action_trail import ActionKind, ActionTrail
from flowops.services.idempotency_service import normalize_message, resolve_request_id


def test_supplied_request_id_is_used_verbatim():
    assert resolve_request_id("cust_1", "hello", "live", "req-42") == "req-42"


def test_derived_key_is_stable_and_whitespace_case_insensitive():
    a = resolve_request_id("cust_1", "I want a refund", "live")
    b = resolve_request_id("cust_1", "  i WANT   a refund ", "live")
    assert a == b
    assert len(a) == 24


def test_derived_key_depends_on_customer_and_mode():
    base = resolve_request_id("cust_1", "refund", "live")
    assert resolve_request_id("cust_2", "refund", "live") != base
    assert resolve_request_id("cust_1", "refund", "shadow") != base


def test_blank_supplied_id_falls_back_to_derived_key():
    assert resolve_request_id("cust_1", "refund", "live", "   ") == resolve_request_id(
        "cust_1", "refund", "live"
    )


def test_normalize_message():
    assert normalize_message("  Hello\n\tWorld ") == "hello world"


def test_action_trail_serializes_in_order():
    trail = ActionTrail()
    trail.add(ActionKind.ACCOUNT_FETCHED)
    trail.add(ActionKind.TICKET_CREATED, "t-1")
    trail.add(ActionKind.VERIFY_ISSUE, "plan mismatch")

    assert trail.to_list() == [
        "account_fetched",
        "ticket_created:t-1",
        "verify_issue:plan mismatch",
    ]
    assert trail.has(ActionKind.TICKET_CREATED)
    assert not trail.has(ActionKind.ESCALATE_TO_HUMAN)
    assert len(trail) == 3
