"""
Scheduler module for Hunt Alerts.

Uses APScheduler to run every active hunt on an interval
(HUNT_SCAN_INTERVAL_HOURS, default 6). The job never overlaps itself, so a
single process never runs two orchestrations of the same hunt at once.

Can also be run manually via command line.
"""

import logging
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import get_app_config
from .pipeline import run_active_hunts

logger = logging.getLogger(__name__)


def run_active_hunts_job() -> None:
    """Wrapper so one bad cycle is logged instead of killing the scheduler thread."""
    logger.info("Starting scheduled hunt cycle...")
    try:
        results = run_active_hunts()
        failed = [hunt_id for hunt_id, r in results.items() if r.get("status_code") != 200]
        logger.info(f"Hunt cycle finished: {len(results)} hunts, {len(failed)} failed")
    except Exception as e:
        logger.error(f"Hunt cycle failed: {e}")


def create_scheduler(interval_hours: int = None) -> BlockingScheduler:
    """
    Create and configure the APScheduler.

    Jobs:
    1. run_active_hunts: every ``interval_hours`` hours

    Returns:
        Configured BlockingScheduler
    """
    hours = interval_hours or get_app_config().scan_interval_hours
    scheduler = BlockingScheduler()

    scheduler.add_job(
        run_active_hunts_job,
        trigger=IntervalTrigger(hours=hours),
        id="run_active_hunts",
        name="Run all active hunts",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(f"Scheduler configured: active hunts every {hours}h")
    return scheduler


def start_scheduler(run_now: bool = True) -> None:
    """Start the scheduler (blocking)."""
    scheduler = create_scheduler()

    logger.info("Starting Hunt Alerts scheduler...")
    logger.info("Press Ctrl+C to stop")

    if run_now:
        logger.info("Running initial hunt cycle...")
        run_active_hunts_job()

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for the scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Hunt Alerts Scheduler")
    parser.add_argument(
        "--mode",
        choices=["schedule", "once"],
        default="schedule",
        help="Mode to run: schedule (continuous) or once (single cycle)"
    )
    parser.add_argument(
        "--no-initial-run",
        action="store_true",
        help="Wait for the first interval instead of running immediately"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.mode == "schedule":
        start_scheduler(run_now=not args.no_initial_run)
    elif args.mode == "once":
        logger.info("Running single hunt cycle...")
        run_active_hunts_job()


if __name__ == "__main__":
    main()
