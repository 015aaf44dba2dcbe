"""
Dose Scheduler
Materializes adherence logs from active reminders and announces due doses
"""

import logging
from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from collections import defaultdict
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_, or_
from sqlalchemy.dialects import postgresql, sqlite

from config import settings
from database import get_db_context
import models
from models import AdherenceStatus, ReminderFrequency, ReminderStatus
from tools.clock import Clock, system_clock
from tools.notification_service import NotificationService, NotificationType, notification_service


logger = logging.getLogger(__name__)


SPARSE_FREQUENCIES = (ReminderFrequency.EVERY_OTHER_DAY, ReminderFrequency.WEEKLY)


@dataclass
class MaterializationResult:
    """Outcome of one materialization pass"""
    target_date: date
    reminders_scanned: int = 0
    logs_created: int = 0
    failures: int = 0
    notifications_sent: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_date": self.target_date.isoformat(),
            "reminders_scanned": self.reminders_scanned,
            "logs_created": self.logs_created,
            "failures": self.failures,
            "notifications_sent": self.notifications_sent,
        }


def is_dose_day(
    frequency: ReminderFrequency,
    start_date: date,
    end_date: Optional[date],
    day: date,
    end_policy: str = "inclusive"
) -> bool:
    """
    Whether a reminder calls for doses on ``day``.

    Daily cadences dose every day of the window. EVERY_OTHER_DAY counts
    alternate days from the start date; WEEKLY repeats the start date's weekday.
    With the "exclusive" policy the sparse cadences stop before the end date.
    """
    if day < start_date:
        return False
    if end_date is not None:
        if day > end_date:
            return False
        if end_policy == "exclusive" and frequency in SPARSE_FREQUENCIES and day == end_date:
            return False

    if frequency == ReminderFrequency.EVERY_OTHER_DAY:
        return (day - start_date).days % 2 == 0
    if frequency == ReminderFrequency.WEEKLY:
        return day.weekday() == start_date.weekday()
    return True


def scheduled_times(times_of_day: List[str], day: date) -> List[datetime]:
    """Combine each HH:mm with ``day``, keeping dose order and dropping repeats"""
    seen = set()
    result = []
    for value in times_of_day:
        hours, minutes = (int(part) for part in value.split(":"))
        scheduled_at = datetime.combine(day, time(hours, minutes))
        if scheduled_at not in seen:
            seen.add(scheduled_at)
            result.append(scheduled_at)
    return result


class DoseScheduler:
    """
    Periodic job that turns reminders into concrete dose rows.

    Safe to run repeatedly and from several processes at once: rows are
    inserted only if absent on the (reminder_id, scheduled_at) key.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationService] = None,
        end_policy: Optional[str] = None
    ):
        self.clock = clock or system_clock
        self.notifier = notifier or notification_service
        self.end_policy = end_policy or settings.CADENCE_END_POLICY

    def _insert_if_absent(
        self,
        session: Session,
        reminder_id: int,
        patient_id: int,
        scheduled_at: datetime
    ) -> bool:
        now = self.clock.now()
        values = {
            "reminder_id": reminder_id,
            "patient_id": patient_id,
            "scheduled_at": scheduled_at,
            "status": AdherenceStatus.PENDING,
            "created_at": now,
            "updated_at": now,
        }
        table = models.AdherenceLog.__table__
        dialect = session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(table).values(**values).on_conflict_do_nothing(
                index_elements=["reminder_id", "scheduled_at"]
            )
            return session.execute(stmt).rowcount == 1

        try:
            with session.begin_nested():
                session.execute(table.insert().values(**values))
            return True
        except IntegrityError:
            return False

    async def materialize(
        self,
        target_date: Optional[date] = None,
        db: Optional[Session] = None
    ) -> MaterializationResult:
        """
        Ensure one PENDING log exists per scheduled dose time on ``target_date``

        Each reminder is committed on its own; a failing reminder is logged
        and skipped without aborting the batch.
        """
        def _materialize(session: Session) -> MaterializationResult:
            day = target_date or self.clock.today()
            result = MaterializationResult(target_date=day)

            reminders = session.query(models.MedicationReminder).filter(
                and_(
                    models.MedicationReminder.status == ReminderStatus.ACTIVE,
                    models.MedicationReminder.start_date <= day,
                    or_(
                        models.MedicationReminder.end_date.is_(None),
                        models.MedicationReminder.end_date >= day
                    )
                )
            ).all()

            # Snapshot before the per-reminder commits
            plans: List[Tuple[int, int, ReminderFrequency, List[str], date, Optional[date]]] = [
                (r.id, r.patient_id, r.frequency, list(r.times_of_day or []), r.start_date, r.end_date)
                for r in reminders
            ]
            result.reminders_scanned = len(plans)

            for reminder_id, patient_id, frequency, times, start_date, end_date in plans:
                try:
                    if not is_dose_day(frequency, start_date, end_date, day, self.end_policy):
                        continue
                    for scheduled_at in scheduled_times(times, day):
                        if self._insert_if_absent(session, reminder_id, patient_id, scheduled_at):
                            result.logs_created += 1
                    session.commit()
                except Exception:
                    session.rollback()
                    result.failures += 1
                    logger.exception(f"Failed to materialize doses for reminder {reminder_id}")

            logger.info(
                f"Generated {result.logs_created} adherence logs for "
                f"{result.reminders_scanned} active reminders on {day.isoformat()}"
            )
            return result

        if db:
            return _materialize(db)

        with get_db_context() as session:
            return _materialize(session)

    async def dispatch_due_doses(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> int:
        """
        Notify patients about PENDING doses that are due and not yet announced.

        Each log is claimed by stamping ``notified_at`` with a conditional
        update before anything is sent, so a dose is announced at most once no
        matter how the ticks are spaced or how many workers run them. Doses
        whose missed window has already closed are left for the sweeper.
        Doses for the same patient at the same time share one message per
        channel. Delivery failures are logged and ignored.
        """
        now = now or self.clock.now()

        def _claim(session: Session) -> List[Dict[str, Any]]:
            logs = session.query(models.AdherenceLog).options(
                joinedload(models.AdherenceLog.reminder).joinedload(models.MedicationReminder.prescription)
            ).filter(
                and_(
                    models.AdherenceLog.status == AdherenceStatus.PENDING,
                    models.AdherenceLog.notified_at.is_(None),
                    models.AdherenceLog.scheduled_at <= now
                )
            ).order_by(models.AdherenceLog.scheduled_at).all()

            claimed = []
            for log in logs:
                window = timedelta(minutes=log.reminder.missed_window_minutes)
                if log.scheduled_at + window <= now:
                    continue

                updated = session.query(models.AdherenceLog).filter(
                    and_(
                        models.AdherenceLog.id == log.id,
                        models.AdherenceLog.status == AdherenceStatus.PENDING,
                        models.AdherenceLog.notified_at.is_(None)
                    )
                ).update({"notified_at": now}, synchronize_session=False)
                if not updated:
                    continue

                claimed.append({
                    "log_id": log.id,
                    "patient_id": log.patient_id,
                    "scheduled_at": log.scheduled_at,
                    "medication": f"{log.reminder.prescription.medication_name} {log.reminder.prescription.dosage}",
                    "channels": list(log.reminder.notify_via or []),
                })

            session.commit()
            return claimed

        if db:
            due = _claim(db)
        else:
            with get_db_context() as session:
                due = _claim(session)

        grouped: Dict[Tuple[int, datetime], List[Dict[str, Any]]] = defaultdict(list)
        for entry in due:
            grouped[(entry["patient_id"], entry["scheduled_at"])].append(entry)

        sent = 0
        for (patient_id, _), entries in grouped.items():
            medications = ", ".join(e["medication"] for e in entries)
            channels = list(dict.fromkeys(c for e in entries for c in e["channels"]))
            body = (
                f"It's time to take {medications}" if len(entries) == 1
                else f"It's time to take: {medications}"
            )

            for channel in channels:
                try:
                    await self.notifier.send(
                        user_id=patient_id,
                        notification_type=NotificationType.MEDICATION_REMINDER,
                        title="Time to take your medication",
                        body=body,
                        channel=channel,
                        metadata={"adherence_log_ids": [e["log_id"] for e in entries]}
                    )
                    sent += 1
                except Exception as e:
                    logger.warning(f"Failed to send medication reminder via {channel}: {e}")

        if due:
            logger.info(f"Sent {sent} reminders for {len(due)} due doses")
        return sent

    async def run(self, db: Optional[Session] = None) -> MaterializationResult:
        """One scheduler tick: materialize today's doses, then announce the due ones"""
        result = await self.materialize(db=db)
        try:
            result.notifications_sent = await self.dispatch_due_doses(db=db)
        except Exception:
            logger.exception("Due-dose dispatch failed")
        return result


# Singleton instance
dose_scheduler = DoseScheduler()
