#!/usr/bin/env python
"""
Run Jobs
Run the reminder background jobs once, e.g. from cron or by hand when no
Celery beat scheduler is running.

Run: python scripts/run_jobs.py [materialize|sweep|all]
"""

import sys
import os
import argparse
import asyncio
import logging

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import init_db
from actions.reminder_engine import ReminderEngine


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def run_jobs(job: str, engine: ReminderEngine = None) -> int:
    """Run the selected jobs; returns a process exit code"""
    engine = engine or ReminderEngine()
    failed = False

    if job in ("materialize", "all"):
        result = await engine.run_materialization()
        if result is None:
            failed = True
        else:
            logger.info(f"Materialization: {result.to_dict()}")

    if job in ("sweep", "all"):
        await engine.run_sweep()
        failed = failed or not engine.get_history()[-1].succeeded

    return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(
        description="Run reminder jobs once"
    )
    parser.add_argument(
        "job",
        nargs="?",
        default="all",
        choices=["materialize", "sweep", "all"],
        help="Which job to run"
    )

    args = parser.parse_args()

    init_db()
    sys.exit(asyncio.run(run_jobs(args.job)))


if __name__ == "__main__":
    main()
