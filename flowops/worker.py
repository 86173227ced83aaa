"""
Outbox dispatcher.

Usage:
    python -m flowops.worker

Polls for eligible outbox events and runs the registered handler for each.
Run as a separate process next to the API.
"""

import asyncio
import logging

import sentry_sdk

from flowops.core.config import settings
from flowops.core.structured_logging import build_log_context
from flowops.db.session import SessionLocal
from flowops.jobs.registry import resolve_job_handler
from flowops.services import outbox_service

logger = logging.getLogger(__name__)


async def run_once(db) -> bool:
    """
    Claim and process a single event.

    Returns False when nothing was eligible. Handler errors are recorded on
    the event (retry with backoff, or dead-letter) and never propagate.
    """
    event = outbox_service.claim_next_event(db)
    if event is None:
        return False

    log_context = build_log_context(event_id=str(event.id), route="worker", method="background")
    logger.info(
        "Processing outbox event type=%s attempt=%s",
        event.type,
        event.attempts + 1,
        extra=log_context,
    )
    try:
        handler = resolve_job_handler(event.type)
        await handler(db, event)
    except Exception as e:
        db.rollback()
        error_msg = str(e) or type(e).__name__
        outbox_service.mark_failed(db, event, error_msg)
        logger.error(
            "Outbox event failed (%s) status=%s attempts=%s",
            type(e).__name__,
            event.status,
            event.attempts,
            extra=log_context,
        )
        return True

    outbox_service.mark_sent(db, event)
    logger.info("Outbox event sent", extra=log_context)
    return True


async def drain(db, limit: int = 100) -> int:
    """Process events until none are eligible (or ``limit`` is reached)."""
    processed = 0
    while processed < limit and await run_once(db):
        processed += 1
    return processed


async def worker_loop() -> None:
    """Main dispatcher loop."""
    logger.info(
        "Outbox dispatcher starting (poll interval: %ss, max attempts: %s)",
        settings.OUTBOX_POLL_INTERVAL_SECONDS,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    while True:
        with SessionLocal() as db:
            try:
                processed = await drain(db)
                if processed:
                    logger.info("Processed %s outbox events", processed)
            except Exception as e:
                db.rollback()
                logger.error("Error in dispatcher loop: %s", type(e).__name__)

        await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the dispatcher."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if settings.SENTRY_DSN and settings.ENV != "dev":
        sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.ENV)

    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Dispatcher shutting down")
    except Exception:
        sentry_sdk.capture_exception()
        logger.exception(
            "Dispatcher crashed",
            extra=build_log_context(route="worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
