"""Tests for the audit export."""

import csv
import io
import uuid

import pytest

from flowops.db.enums import Mode
from flowops.services import audit_service, handoff_service, sla_service
from flowops.services.orchestrator_service import ChatRequest, run_pipeline


async def _chat(db, message, request_id, customer_id="cust_1"):
    return await run_pipeline(
        db,
        ChatRequest(customer_id=customer_id, message=message, mode=Mode.LIVE, request_id=request_id),
    )


@pytest.mark.asyncio
async def test_bundle_links_everything_for_customer(db):
    await _chat(db, "Where is my invoice?", "req-ok")
    await _chat(db, "refund", "req-esc")
    await _chat(db, "refund", "req-other", customer_id="cust_2")

    bundle = audit_service.build_audit_bundle(db, customer_id="cust_1")

    assert bundle["scope"] == {"customer_id": "cust_1", "ticket_id": None}
    assert bundle["customer"]["plan"] == "pro"
    assert len(bundle["tickets"]) == 2
    assert {i["request_id"] for i in bundle["interactions"]} == {"req-esc", "req-ok"}
    assert len(bundle["handoffs"]) == 1

    handoff_id = bundle["handoffs"][0]["id"]
    keys = {e["idempotency_key"] for e in bundle["outbox"]}
    assert f"ai:handoff_summary:{handoff_id}" in keys
    assert sum(k.startswith("email:cust_1:") for k in keys) == 2
    assert not any("cust_2" in k for k in keys)


@pytest.mark.asyncio
async def test_bundle_scoped_to_ticket(db):
    first = await _chat(db, "refund", "req-a")
    await _chat(db, "Where is my invoice?", "req-b")

    bundle = audit_service.build_audit_bundle(db, ticket_id=first.ticket_id)

    assert bundle["scope"] == {"customer_id": "cust_1", "ticket_id": first.ticket_id}
    assert [t["id"] for t in bundle["tickets"]] == [first.ticket_id]
    assert [i["request_id"] for i in bundle["interactions"]] == ["req-a"]
    assert [h["ticket_id"] for h in bundle["handoffs"]] == [first.ticket_id]


@pytest.mark.asyncio
async def test_bundle_includes_sla_notifications(db):
    await _chat(db, "refund", "req-a")
    handoff = handoff_service.list_handoffs(db)[0]
    handoff_service.force_sla_breach(db, handoff.id)

    sla_service.scan_for_breaches(db)
    bundle = audit_service.build_audit_bundle(db, customer_id="cust_1")

    assert f"sla:{handoff.id}" in {e["idempotency_key"] for e in bundle["outbox"]}
    assert bundle["handoffs"][0]["sla_breached_at"] is not None


@pytest.mark.parametrize(
    "customer_id,ticket_id,error",
    [
        (None, None, audit_service.AuditScopeError),
        ("  ", "", audit_service.AuditScopeError),
        (None, "not-a-uuid", audit_service.AuditScopeError),
        (None, str(uuid.uuid4()), audit_service.AuditNotFoundError),
    ],
)
def test_scope_errors(db, customer_id, ticket_id, error):
    with pytest.raises(error):
        audit_service.build_audit_bundle(db, customer_id=customer_id, ticket_id=ticket_id)


def test_unknown_customer_gives_empty_bundle(db):
    bundle = audit_service.build_audit_bundle(db, customer_id="nobody")
    assert bundle["customer"] is None
    assert bundle["tickets"] == bundle["interactions"] == bundle["handoffs"] == bundle["outbox"] == []


@pytest.mark.asyncio
async def test_csv_rows_are_tagged_and_formula_safe(db):
    await _chat(db, "=1+1 refund please", "req-a")

    bundle = audit_service.build_audit_bundle(db, customer_id="cust_1")
    content = audit_service.to_csv(audit_service.flatten_audit_rows(bundle))
    rows = list(csv.DictReader(io.StringIO(content)))

    assert {r["kind"] for r in rows} == {"interaction", "outbox"}
    interaction = next(r for r in rows if r["kind"] == "interaction")
    assert interaction["request_text"] == "'=1+1 refund please"
    assert interaction["escalated"] == "false"
    assert interaction["actions"].startswith("[")


def test_csv_of_no_rows_is_empty():
    assert audit_service.to_csv([]) == ""


def test_csv_header_is_union_of_keys():
    content = audit_service.to_csv([{"a": 1}, {"b": "-x", "a": None}])
    assert content.splitlines() == ["a,b", "1,", ",'-x"]
