"""Worker process for scheduled jobs.

Runs an asyncio loop that, once daily, escalates stale approval steps and
drains undelivered outbox events. On January 1 it first runs year-end
carry-forward for the year just closed; on the first of every month it
credits monthly accruals after that.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from leaveflow.config import get_settings
from leaveflow.container import build_core, get_core, set_core
from leaveflow.db import dispose_engine, get_session_factory
from leaveflow.log import configure_logging
from leaveflow.services.accrual import is_accrual_date

logger = logging.getLogger(__name__)

WORKER_INTERVAL_SECONDS = 86400  # 24 hours


async def run_daily_jobs(today: date) -> None:
    """One pass of the daily jobs; each job's failure is logged and contained."""
    core = get_core()

    if today.month == 1 and today.day == 1:
        try:
            result = await core.year_end.run(today)
            logger.info(
                "Year-end run for %d: staff=%d carried=%d forfeited=%d skipped=%d errors=%d",
                result.closing_year,
                result.staff_processed,
                result.carried_forward,
                result.forfeited,
                result.skipped,
                result.errors,
            )
        except Exception:
            logger.exception("Year-end run failed for %s", today)

    if is_accrual_date(today):
        try:
            accrual = await core.accrual.run(today)
            logger.info(
                "Accrual run for %s: processed=%d accrued=%d skipped=%d errors=%d",
                accrual.period,
                accrual.processed,
                accrual.accrued,
                accrual.skipped,
                accrual.errors,
            )
        except Exception:
            logger.exception("Accrual run failed for %s", today)

    try:
        escalation = await core.engine.escalate_stale_steps(today)
        if escalation.escalated > 0 or escalation.unescalated > 0:
            logger.info(
                "Escalation for %s: escalated=%d unescalated=%d errors=%d",
                today,
                escalation.escalated,
                escalation.unescalated,
                escalation.errors,
            )
    except Exception:
        logger.exception("Escalation run failed for %s", today)

    try:
        dispatched = await core.dispatcher.drain()
        if dispatched > 0:
            logger.info("Outbox drain for %s: dispatched=%d", today, dispatched)
    except Exception:
        logger.exception("Outbox drain failed for %s", today)


async def run_worker_loop() -> None:
    """Main worker loop."""
    set_core(build_core(get_session_factory(), get_settings()))
    logger.info("Leave worker started")
    try:
        while True:
            await run_daily_jobs(date.today())
            await asyncio.sleep(WORKER_INTERVAL_SECONDS)
    finally:
        logger.info("Leave worker stopping")
        set_core(None)
        await dispose_engine()


def main() -> None:
    """Entry point for the worker process."""
    configure_logging(get_settings().log_level)
    asyncio.run(run_worker_loop())


if __name__ == "__main__":
    main()
