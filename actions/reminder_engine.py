"""
Reminder Engine
Job bodies for dose materialization and the missed-dose sweep.
The Celery beat schedule in actions.celery_app decides when they run.
"""

import logging
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from database import get_db_context
from services.dose_scheduler import DoseScheduler, MaterializationResult, dose_scheduler
from services.missed_dose_sweeper import MissedDoseSweeper, missed_dose_sweeper


logger = logging.getLogger(__name__)


class JobType(str, Enum):
    """Recurring jobs run by the engine"""
    MATERIALIZE = "materialize"
    MISSED_SWEEP = "missed_sweep"


@dataclass
class JobRun:
    """Record of one job tick"""
    job: JobType
    started_at: datetime
    finished_at: Optional[datetime] = None
    succeeded: bool = False
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "succeeded": self.succeeded,
            "detail": self.detail
        }


class ReminderEngine:
    """
    Engine for the reminder background jobs

    Responsibilities:
    - Materialize today's doses and announce due ones
    - Sweep unanswered doses into MISSED
    - Keep each tick isolated so a failure is retried on the next one
    """

    def __init__(
        self,
        scheduler: Optional[DoseScheduler] = None,
        sweeper: Optional[MissedDoseSweeper] = None,
        session_factory: Callable = get_db_context,
        history_size: int = 50
    ):
        self.scheduler = scheduler or dose_scheduler
        self.sweeper = sweeper or missed_dose_sweeper
        self.session_factory = session_factory
        self.history_size = history_size

        self._history: List[JobRun] = []

    def _record(self, run: JobRun) -> None:
        run.finished_at = self.scheduler.clock.now()
        self._history.append(run)
        if len(self._history) > self.history_size:
            self._history = self._history[-self.history_size:]

    def get_history(self, job: Optional[JobType] = None) -> List[JobRun]:
        if job is None:
            return list(self._history)
        return [run for run in self._history if run.job == job]

    async def run_materialization(self) -> Optional[MaterializationResult]:
        """One materialize-and-dispatch tick. Returns None if the tick failed."""
        run = JobRun(job=JobType.MATERIALIZE, started_at=self.scheduler.clock.now())
        try:
            with self.session_factory() as session:
                result = await self.scheduler.run(db=session)
            run.succeeded = True
            run.detail = result.to_dict()
            return result
        except Exception:
            logger.exception("Dose materialization tick failed")
            return None
        finally:
            self._record(run)

    async def run_sweep(self) -> int:
        """One missed-dose sweep tick. Returns 0 if the tick failed."""
        run = JobRun(job=JobType.MISSED_SWEEP, started_at=self.scheduler.clock.now())
        try:
            with self.session_factory() as session:
                missed = await self.sweeper.sweep(db=session)
            run.succeeded = True
            run.detail = {"marked_missed": missed}
            return missed
        except Exception:
            logger.exception("Missed-dose sweep tick failed")
            return 0
        finally:
            self._record(run)


# Singleton instance
reminder_engine = ReminderEngine()
