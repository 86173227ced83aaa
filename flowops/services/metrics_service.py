"""Operational metrics for the ops dashboard."""

from __future__ import annotations

from sqlalchemy import String, cast, func, select
from sqlalchemy.orm import Session

from flowops.db.enums import HandoffStatus
from flowops.db.models import Handoff, Interaction
from flowops.services.action_trail import ActionKind
from flowops.utils.datetime_utils import as_utc, to_iso, utcnow

CONFIDENCE_WINDOW = 50
RESOLUTION_SAMPLE = 200


def _count(db: Session, query) -> int:
    return db.execute(query).scalar_one() or 0


def handoff_status_counts(db: Session) -> dict[str, int]:
    rows = db.execute(select(Handoff.status, func.count()).group_by(Handoff.status)).all()
    counts = {status.value: 0 for status in HandoffStatus}
    for status, count in rows:
        counts[status] = count
    return counts


def average_resolution_seconds(db: Session) -> float | None:
    """Mean claim-to-resolve time over the most recently resolved handoffs."""
    rows = db.execute(
        select(Handoff.claimed_at, Handoff.resolved_at)
        .where(Handoff.status == HandoffStatus.RESOLVED.value)
        .order_by(Handoff.resolved_at.desc())
        .limit(RESOLUTION_SAMPLE)
    ).all()
    durations = [
        max(0.0, (as_utc(resolved) - as_utc(claimed)).total_seconds())
        for claimed, resolved in rows
        if claimed and resolved
    ]
    if not durations:
        return None
    return sum(durations) / len(durations)


def _average_confidence(db: Session, offset: int) -> float | None:
    values = (
        db.execute(
            select(Interaction.confidence)
            .order_by(Interaction.created_at.desc())
            .offset(offset)
            .limit(CONFIDENCE_WINDOW)
        )
        .scalars()
        .all()
    )
    if not values:
        return None
    return sum(values) / len(values)


def get_metrics(db: Session) -> dict:
    total_interactions = _count(db, select(func.count()).select_from(Interaction))
    total_handoffs = _count(db, select(func.count()).select_from(Handoff))
    replay_interactions = _count(
        db,
        select(func.count())
        .select_from(Interaction)
        .where(cast(Interaction.actions, String).contains(ActionKind.IDEMPOTENCY_REPLAY.value)),
    )

    avg_last = _average_confidence(db, 0)
    avg_prev = _average_confidence(db, CONFIDENCE_WINDOW)
    delta = avg_last - avg_prev if avg_last is not None and avg_prev is not None else None

    return {
        "generated_at": to_iso(utcnow()),
        "counts": {
            "interactions": total_interactions,
            "handoffs": total_handoffs,
        },
        "handoffs": {
            **handoff_status_counts(db),
            "avg_resolution_seconds": average_resolution_seconds(db),
        },
        "rates": {
            "replay_rate": replay_interactions / total_interactions if total_interactions else 0.0,
            "escalation_rate": total_handoffs / total_interactions if total_interactions else 0.0,
        },
        "confidence": {
            "window": CONFIDENCE_WINDOW,
            "avg_last": avg_last,
            "avg_prev": avg_prev,
            "delta": delta,
        },
    }
