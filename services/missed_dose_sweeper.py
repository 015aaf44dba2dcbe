"""
Missed Dose Sweeper
Closes PENDING doses whose grace window has elapsed
"""

import logging
from typing import Optional
from datetime import datetime, timedelta
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import get_db_context
import models
from models import AdherenceStatus
from tools.clock import Clock, system_clock


logger = logging.getLogger(__name__)


class MissedDoseSweeper:
    """
    Marks PENDING logs as MISSED once ``scheduled_at + missed_window_minutes``
    has passed. The update is conditional on status so a concurrent patient
    response always wins.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or system_clock

    def _sweep_window(self, session: Session, window_minutes: int, now: datetime) -> int:
        cutoff = now - timedelta(minutes=window_minutes)
        reminder_ids = select(models.MedicationReminder.id).where(
            models.MedicationReminder.missed_window_minutes == window_minutes
        )

        return session.query(models.AdherenceLog).filter(
            models.AdherenceLog.status == AdherenceStatus.PENDING,
            models.AdherenceLog.scheduled_at <= cutoff,
            models.AdherenceLog.reminder_id.in_(reminder_ids)
        ).update(
            {
                models.AdherenceLog.status: AdherenceStatus.MISSED,
                models.AdherenceLog.updated_at: now,
            },
            synchronize_session=False
        )

    async def sweep(self, now: Optional[datetime] = None, db: Optional[Session] = None) -> int:
        """
        Run one sweep and return how many logs became MISSED.

        Re-running immediately after yields 0.
        """
        def _sweep(session: Session) -> int:
            sweep_time = now or self.clock.now()

            windows = [
                row[0] for row in session.query(models.MedicationReminder.missed_window_minutes).join(
                    models.AdherenceLog,
                    models.AdherenceLog.reminder_id == models.MedicationReminder.id
                ).filter(
                    models.AdherenceLog.status == AdherenceStatus.PENDING
                ).distinct().all()
            ]

            total = 0
            for window_minutes in windows:
                try:
                    total += self._sweep_window(session, window_minutes, sweep_time)
                    session.commit()
                except Exception:
                    session.rollback()
                    logger.exception(f"Missed-dose sweep failed for {window_minutes}-minute window")

            if total:
                logger.info(f"Marked {total} doses as missed")
            return total

        if db:
            return _sweep(db)

        with get_db_context() as session:
            return _sweep(session)


# Singleton instance
missed_dose_sweeper = MissedDoseSweeper()
