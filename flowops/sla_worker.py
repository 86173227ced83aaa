"""
SLA watchdog.

Usage:
    python -m flowops.sla_worker

Every SLA_POLL_INTERVAL_SECONDS, marks overdue pending handoffs as breached
and queues a notify.sla_breach outbox event for each.
"""

import asyncio
import logging

import sentry_sdk

from flowops.core.config import settings
from flowops.core.structured_logging import build_log_context
from flowops.db.session import SessionLocal
from flowops.services import sla_service

logger = logging.getLogger(__name__)


async def watchdog_loop() -> None:
    logger.info(
        "SLA watchdog starting (poll interval: %ss, batch size: %s)",
        settings.SLA_POLL_INTERVAL_SECONDS,
        settings.SLA_BATCH_SIZE,
    )

    while True:
        with SessionLocal() as db:
            try:
                breached = sla_service.scan_for_breaches(db)
                if breached:
                    logger.info("Marked %s handoffs as SLA breached", len(breached))
            except Exception as e:
                db.rollback()
                logger.error("Error in SLA watchdog loop: %s", type(e).__name__)

        await asyncio.sleep(settings.SLA_POLL_INTERVAL_SECONDS)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if settings.SENTRY_DSN and settings.ENV != "dev":
        sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.ENV)

    try:
        asyncio.run(watchdog_loop())
    except KeyboardInterrupt:
        logger.info("SLA watchdog shutting down")
    except Exception:
        sentry_sdk.capture_exception()
        logger.exception(
            "SLA watchdog crashed",
            extra=build_log_context(route="sla_worker", method="background"),
        )
        raise


if __name__ == "__main__":
    main()
