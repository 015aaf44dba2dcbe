"""Celery tasks for the reminder jobs."""

import asyncio
import logging
from typing import Any, Dict, Optional

from actions.celery_app import celery_app
from actions.reminder_engine import reminder_engine


logger = logging.getLogger(__name__)


@celery_app.task(name="actions.tasks.materialize_doses", bind=True)
def materialize_doses(self) -> Optional[Dict[str, Any]]:
    """Materialize today's doses and announce the due ones."""
    result = asyncio.run(reminder_engine.run_materialization())
    if result is None:
        return None
    return result.to_dict()


@celery_app.task(name="actions.tasks.sweep_missed_doses", bind=True)
def sweep_missed_doses(self) -> int:
    """Mark unanswered doses past their window as missed."""
    missed = asyncio.run(reminder_engine.run_sweep())
    if missed:
        logger.info(f"Sweep task marked {missed} doses missed")
    return missed
