"""Outbound email transport.

Resend when RESEND_API_KEY is configured; otherwise a dry-run sender that only
logs. Both honour the caller's idempotency key so outbox retries never send
twice.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from flowops.core.config import settings
from flowops.core.structured_logging import mask_email
from flowops.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


class EmailSendError(Exception):
    """Email could not be handed to the provider."""

    pass


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str, idempotency_key: str) -> str: ...


class DryRunEmailSender:
    """Logs instead of sending (local dev, tests)."""

    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, body: str, idempotency_key: str) -> str:
        if not to:
            raise EmailSendError("Recipient is required")
        self.sent.append(
            {"to": to, "subject": subject, "body": body, "idempotency_key": idempotency_key}
        )
        logger.info("[DRY RUN] Email send skipped recipient=%s", mask_email(to))
        return f"dryrun:{idempotency_key}"


class ResendEmailSender:
    def __init__(self, api_key: str, from_email: str) -> None:
        self.api_key = api_key
        self.from_email = from_email

    async def send(self, to: str, subject: str, body: str, idempotency_key: str) -> str:
        if not to:
            raise EmailSendError("Recipient is required")

        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "text": body,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Idempotency-Key": idempotency_key,
        }

        try:
            async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

                async def request_fn() -> httpx.Response:
                    return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

                response = await request_with_retries(
                    request_fn,
                    max_attempts=RESEND_MAX_ATTEMPTS,
                    base_delay=RESEND_RETRY_BASE_DELAY,
                    max_delay=RESEND_RETRY_MAX_DELAY,
                    retry_statuses=DEFAULT_RETRY_STATUSES,
                )
        except httpx.TimeoutException as exc:
            raise EmailSendError("Resend connection timeout") from exc
        except httpx.HTTPError as exc:
            raise EmailSendError(f"Resend connection error: {exc.__class__.__name__}") from exc

        # 409 = idempotency conflict, the provider already accepted this key
        if 200 <= response.status_code < 300 or response.status_code == 409:
            message_id = None
            try:
                data = response.json()
                if isinstance(data, dict) and isinstance(data.get("id"), str):
                    message_id = data["id"]
            except ValueError:
                pass
            logger.info(
                "Email sent recipient=%s message_id=%s", mask_email(to), message_id
            )
            return message_id or idempotency_key

        error_detail = None
        try:
            data = response.json()
            if isinstance(data, dict):
                error_detail = data.get("message") or data.get("error")
        except ValueError:
            pass
        error_msg = f"Resend API error: {response.status_code}"
        if error_detail:
            error_msg = f"{error_msg} ({error_detail})"
        raise EmailSendError(error_msg)


_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is None:
        if settings.RESEND_API_KEY:
            _sender = ResendEmailSender(settings.RESEND_API_KEY, settings.EMAIL_FROM)
        else:
            logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")
            _sender = DryRunEmailSender()
    return _sender


def set_email_sender(sender: EmailSender | None) -> None:
    """Override the process-wide sender (tests, alternative transports)."""
    global _sender
    _sender = sender
