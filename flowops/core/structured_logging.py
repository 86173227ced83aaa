"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    operator_id: str | None = None,
    customer_id: str | None = None,
    request_id: str | None = None,
    handoff_id: str | None = None,
    event_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if operator_id:
        context["operator_id"] = operator_id
    if customer_id:
        context["customer_id"] = customer_id
    if request_id:
        context["request_id"] = request_id
    if handoff_id:
        context["handoff_id"] = handoff_id
    if event_id:
        context["event_id"] = event_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context


def mask_email(email: str | None) -> str:
    """Keep enough of an address to correlate logs without logging it."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."
