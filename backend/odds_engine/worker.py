import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import text

from odds_engine.config import get_database_identity, settings
from odds_engine.database import AsyncSessionLocal
from odds_engine.tasks.capture_closing_lines import run_capture_closing_lines
from odds_engine.tasks.refresh_picks import run_refresh_edge_picks, run_refresh_momentum_picks
from odds_engine.tasks.update_clv import run_update_clv

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("odds_quotes", "odds_closing", "bet_legs", "clv_records", "pick_cycles")


async def wait_for_required_tables(max_attempts: int = 30, sleep_seconds: int = 2) -> None:
    for attempt in range(1, max_attempts + 1):
        try:
            async with AsyncSessionLocal() as session:
                for table in REQUIRED_TABLES:
                    await session.execute(text(f"SELECT 1 FROM {table} LIMIT 1"))
            if attempt > 1:
                logger.info("database schema ready after retry: attempts=%s", attempt)
            return
        except Exception:
            if attempt == max_attempts:
                logger.exception("database schema not ready after retries")
                raise
            logger.warning(
                "database schema not ready; waiting before retry: attempt=%s/%s sleep_seconds=%s",
                attempt,
                max_attempts,
                sleep_seconds,
            )
            await asyncio.sleep(sleep_seconds)


async def run_refresh_edge_picks_task() -> None:
    try:
        summary = await run_refresh_edge_picks()
    except Exception:
        logger.exception("edge refresh job failed")
        return
    logger.info(
        "edge refresh job complete: cycle_id=%s picks=%s annotated=%s",
        summary["cycle_id"],
        summary["picks"],
        summary["annotated"],
    )


async def run_refresh_momentum_picks_task() -> None:
    try:
        summary = await run_refresh_momentum_picks()
    except Exception:
        logger.exception("momentum refresh job failed")
        return
    logger.info(
        "momentum refresh job complete: cycle_id=%s picks=%s annotated=%s",
        summary["cycle_id"],
        summary["picks"],
        summary["annotated"],
    )


async def run_capture_closing_lines_task() -> None:
    try:
        summary = await run_capture_closing_lines()
    except Exception:
        logger.exception("closing capture job failed")
        return
    logger.info(
        "closing capture job complete: games=%s captured_rows=%s games_without_price=%s lock_acquired=%s",
        summary["games"],
        summary["captured_rows"],
        summary["games_without_price"],
        summary["lock_acquired"],
    )


async def run_update_clv_task() -> None:
    try:
        summary = await run_update_clv()
    except Exception:
        logger.exception("clv update job failed")
        return
    logger.info(
        "clv update job complete: legs=%s written=%s unknown=%s lock_acquired=%s",
        summary["legs"],
        summary["written"],
        summary["unknown"],
        summary["lock_acquired"],
    )


async def main() -> None:
    db_host, db_name = get_database_identity()
    logger.info(
        "worker startup: database_host=%s database_name=%s rationale_enabled=%s momentum_windows=%s/%s",
        db_host,
        db_name,
        bool(settings.rationale_api_key),
        settings.momentum_short_minutes,
        settings.momentum_long_minutes,
    )

    await wait_for_required_tables()
    await run_capture_closing_lines_task()
    await run_refresh_edge_picks_task()

    sched = AsyncIOScheduler(timezone="UTC")
    sched.add_job(run_refresh_edge_picks_task, "interval", minutes=settings.edge_refresh_interval_minutes)
    sched.add_job(run_refresh_momentum_picks_task, "interval", minutes=settings.momentum_refresh_interval_minutes)
    sched.add_job(run_capture_closing_lines_task, "interval", minutes=settings.closing_capture_interval_minutes)
    sched.add_job(run_update_clv_task, "interval", minutes=settings.clv_update_interval_minutes)
    sched.start()

    while True:
        await asyncio.sleep(3600)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    asyncio.run(main())
