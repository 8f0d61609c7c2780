#!/usr/bin/env python3
"""
Correlation Discovery Job - nightly discovery and global learning.

Runs correlation discovery for every active restaurant, then contributes
proven patterns to the regional and global pools.

Usage:
    python jobs/discover_correlations.py                    # Run once
    python jobs/discover_correlations.py --restaurant 42    # One restaurant
    python jobs/discover_correlations.py --loop             # Run continuously
    python jobs/discover_correlations.py --schedule         # Nightly cron schedule
"""

import sys
import signal
import argparse
import threading
from dataclasses import asdict
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from covercast.config import settings
from covercast.db.session import SessionLocal, get_db_transaction, init_db
from covercast.log_config import configure_logging, get_logger
from covercast.services.discovery_job import DiscoveryJob, JobSummary, build_services

cancel_event = threading.Event()


def run_discovery(restaurant_ids=None, days=None) -> JobSummary:
    """Run one discovery pass over a fresh session."""
    try:
        with get_db_transaction() as session:
            services = build_services(session, settings)
            job = DiscoveryJob.from_services(services, settings, db=session)
            summary = job.run(cancel_token=cancel_event, restaurant_ids=restaurant_ids, days=days)
    finally:
        SessionLocal.remove()
    get_logger("discover_correlations").info("discovery_job_summary", **asdict(summary))
    return summary


def _handle_signal(signum, frame):
    logger.warning(f"Received signal {signum}; stopping after the current restaurant")
    cancel_event.set()


def main():
    """Main entry point for the correlation discovery job."""
    parser = argparse.ArgumentParser(
        description="Correlation Discovery Job - discovers and pools restaurant patterns"
    )
    parser.add_argument(
        "--restaurant",
        type=int,
        action="append",
        help="Restaurant id to process (repeatable; default: all active restaurants)"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=settings.discovery_window_days,
        help=f"Days of history to analyse (default: {settings.discovery_window_days})"
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Run continuously"
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=86400,
        help="Loop interval in seconds (default: 86400 = 1 day)"
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help=f"Run nightly at {settings.discovery_cron_hour}:00 {settings.discovery_cron_timezone}"
    )

    args = parser.parse_args()

    configure_logging(settings)
    init_db()
    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    if args.schedule:
        if not settings.scheduler_enabled:
            logger.error("Scheduler disabled (SCHEDULER_ENABLED=false)")
            sys.exit(1)

        scheduler = BlockingScheduler(timezone=settings.discovery_cron_timezone)
        scheduler.add_job(
            func=run_discovery,
            kwargs={"restaurant_ids": args.restaurant, "days": args.days},
            trigger=CronTrigger(hour=settings.discovery_cron_hour, minute=0, timezone=settings.discovery_cron_timezone),
            id="correlation_discovery",
            name="Correlation Discovery",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(f"Scheduled correlation discovery daily at {settings.discovery_cron_hour}:00")

        watcher = threading.Thread(
            target=lambda: (cancel_event.wait(), scheduler.shutdown(wait=False)),
            daemon=True,
        )
        watcher.start()
        scheduler.start()
        return

    if args.loop:
        logger.info(f"Starting continuous correlation discovery (interval: {args.interval}s)...")

        while not cancel_event.is_set():
            try:
                run_discovery(args.restaurant, args.days)
            except Exception as e:
                logger.exception(f"Unhandled error in discovery loop: {e}")

            # Sleep until next run, waking early on shutdown
            logger.info(f"Sleeping for {args.interval}s until next run...")
            cancel_event.wait(args.interval)
    else:
        # Run once
        summary = run_discovery(args.restaurant, args.days)
        sys.exit(0 if summary.errors == 0 and not summary.cancelled else 1)


if __name__ == "__main__":
    main()
