"""
Due report scan job.

Run with: python -m rentala.jobs.reports

This job:
1. Finds active schedules whose next send time has passed
2. Claims each one so an overlapping scan skips it
3. Renders and emails the report, then advances the schedule
"""

import asyncio

from rentala.core.database import AsyncSessionLocal
from rentala.core.logging import get_logger, setup_logging
from rentala.services.report_scheduler import run_due_reports

logger = get_logger(__name__)


async def main() -> dict[str, int]:
    """Run one due-report scan."""
    logger.debug("report_scan_started")

    async with AsyncSessionLocal() as db:
        try:
            stats = await run_due_reports(db)
            await db.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("report_scan_failed")
            raise

    if stats["due"]:
        logger.bind(**stats).info("report_scan_completed")
    return stats


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
