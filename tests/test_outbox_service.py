"""Tests for the durable outbox."""

from datetime import timedelta

import pytest

from flowops.core.config import settings
from flowops.db.enums import OutboxEventType, OutboxStatus
from flowops.services import outbox_service
from flowops.utils.datetime_utils import as_utc, utcnow


def _enqueue(db, key="email:cust_1:req-1"):
    return outbox_service.enqueue_event(
        db, OutboxEventType.EMAIL_SEND, {"to": "customer@example.com"}, key
    )


def test_enqueue_is_idempotent_per_key(db):
    first = _enqueue(db)
    second = _enqueue(db)
    assert first.created is True
    assert second.created is False
    assert second.event.id == first.event.id


@pytest.mark.parametrize("event_type,key", [("", "k"), ("email.send", " ")])
def test_build_event_rejects_blank_type_or_key(event_type, key):
    with pytest.raises(ValueError):
        outbox_service.build_event(event_type, {}, key)


def test_backoff_doubles_and_caps(monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_BACKOFF_BASE_SECONDS", 1.0)
    monkeypatch.setattr(settings, "OUTBOX_BACKOFF_CAP_SECONDS", 60.0)
    assert outbox_service.backoff_seconds(1) == 2
    assert outbox_service.backoff_seconds(3) == 8
    assert outbox_service.backoff_seconds(10) == 60


def test_claim_flips_to_processing_and_is_exclusive(db):
    _enqueue(db)
    event = outbox_service.claim_next_event(db)
    assert event.status == OutboxStatus.PROCESSING.value
    assert outbox_service.claim_next_event(db) is None


def test_claim_picks_oldest_eligible_first(db):
    first = _enqueue(db, "k1").event
    _enqueue(db, "k2")
    assert outbox_service.claim_next_event(db).id == first.id


def test_failed_event_waits_for_backoff(db):
    _enqueue(db)
    event = outbox_service.claim_next_event(db)
    outbox_service.mark_failed(db, event, "smtp down")

    assert event.status == OutboxStatus.FAILED.value
    assert event.attempts == 1
    assert event.last_error == "smtp down"
    assert as_utc(event.next_attempt_at) > utcnow()
    assert outbox_service.claim_next_event(db) is None
    retried = outbox_service.claim_next_event(db, now=utcnow() + timedelta(minutes=5))
    assert retried.id == event.id


def test_sent_after_max_minus_one_failures(db, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_MAX_ATTEMPTS", 4)
    _enqueue(db)
    far = utcnow() + timedelta(days=1)

    for _ in range(3):
        event = outbox_service.claim_next_event(db, now=far)
        outbox_service.mark_failed(db, event, "boom")
        assert event.status == OutboxStatus.FAILED.value

    event = outbox_service.claim_next_event(db, now=far)
    outbox_service.mark_sent(db, event)
    assert event.status == OutboxStatus.SENT.value
    assert event.last_error is None
    assert outbox_service.claim_next_event(db, now=far) is None


def test_dead_after_max_failures_and_never_retried(db, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_MAX_ATTEMPTS", 3)
    _enqueue(db)
    far = utcnow() + timedelta(days=1)

    for _ in range(3):
        event = outbox_service.claim_next_event(db, now=far)
        outbox_service.mark_failed(db, event, "boom")

    assert event.status == OutboxStatus.DEAD.value
    assert event.attempts == 3
    assert outbox_service.claim_next_event(db, now=far + timedelta(days=30)) is None


def test_mark_sent_ignores_event_not_processing(db):
    event = _enqueue(db).event
    outbox_service.mark_sent(db, event)
    assert event.status == OutboxStatus.PENDING.value


def test_requeue_dead_event(db, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_MAX_ATTEMPTS", 1)
    _enqueue(db)
    event = outbox_service.claim_next_event(db)
    outbox_service.mark_failed(db, event, "boom")
    assert event.status == OutboxStatus.DEAD.value

    requeued = outbox_service.requeue_dead_event(db, event.id)
    assert requeued.status == OutboxStatus.PENDING.value
    assert requeued.attempts == 0
    assert outbox_service.claim_next_event(db).id == event.id


def test_requeue_rejects_live_event(db):
    event = _enqueue(db).event
    with pytest.raises(outbox_service.OutboxEventNotDeadError):
        outbox_service.requeue_dead_event(db, event.id)


def test_list_events_for_keys(db):
    _enqueue(db, "email:cust_1:a")
    _enqueue(db, "email:cust_10:b")
    _enqueue(db, "sla:h1")
    _enqueue(db, "sla:h2")

    keys = {
        e.idempotency_key
        for e in outbox_service.list_events_for_keys(db, prefixes=["email:cust_1:"], keys=["sla:h1"])
    }
    assert keys == {"email:cust_1:a", "sla:h1"}
    assert outbox_service.list_events_for_keys(db) == []
