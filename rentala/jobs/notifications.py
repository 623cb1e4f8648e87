"""
Notification sweep job.

Run with: python -m rentala.jobs.notifications

Checks pending payments for overdue thresholds and active leases for
expiration thresholds, then emails/texts the affected tenants.
"""

import asyncio

from rentala.core.database import AsyncSessionLocal
from rentala.core.logging import get_logger, setup_logging
from rentala.services.notification_sweep import run_notification_sweep

logger = get_logger(__name__)


async def main() -> dict[str, dict[str, int]]:
    """Run both notification checks once."""
    logger.info("notification_sweep_job_started")

    async with AsyncSessionLocal() as db:
        try:
            results = await run_notification_sweep(db)
        except Exception as e:
            logger.bind(error=str(e)).error("notification_sweep_job_failed")
            raise

    return results


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
