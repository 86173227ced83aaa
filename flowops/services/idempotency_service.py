"""Request keys and replay lookup for chat requests."""

from __future__ import annotations

import hashlib
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from flowops.db.models import Interaction

_WHITESPACE = re.compile(r"\s+")


def normalize_message(message: str) -> str:
    return _WHITESPACE.sub(" ", message.strip()).lower()


def resolve_request_id(
    customer_id: str,
    message: str,
    mode: str,
    supplied_id: str | None = None,
) -> str:
    """
    Return the idempotency key for a chat request.

    A caller-supplied id wins. Otherwise the key is derived from customer,
    normalized message and mode, so trivially re-sent messages collapse but
    punctuation changes do not.
    """
    if supplied_id and supplied_id.strip():
        return supplied_id.strip()
    base = f"{customer_id}|{normalize_message(message)}|{mode}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()[:24]


def find_prior_result(db: Session, customer_id: str, key: str) -> Interaction | None:
    """Return the interaction already logged for this request key, if any."""
    return db.execute(
        select(Interaction).where(
            Interaction.customer_id == customer_id,
            Interaction.request_id == key,
        )
    ).scalar_one_or_none()
