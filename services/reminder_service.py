"""
Reminder Service
Medication reminder lifecycle and adherence logging
"""

import re
import math
import logging
from typing import Dict, List, Optional, Any, Iterable, Tuple
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_, desc

from config import settings
from database import get_db_context
import models
from models import AdherenceStatus, NotificationChannel, ReminderFrequency, ReminderStatus
from services.errors import NotFoundError, ForbiddenError, InvalidStateError
from tools.clock import Clock, system_clock
from tools.frequency_parser import default_times_for, parse_frequency, parse_schedule
from tools.notification_service import NotificationService, NotificationType, notification_service


logger = logging.getLogger(__name__)


TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

UPDATABLE_FIELDS = {"times_of_day", "end_date", "notify_via", "missed_window_minutes", "status"}


def validate_times_of_day(times: Iterable[str]) -> List[str]:
    """Return the times as a list, or raise ValueError if any is not a distinct 24-hour HH:mm"""
    times = list(times or [])
    if not times:
        raise ValueError("times_of_day must contain at least one time")
    for value in times:
        if not isinstance(value, str) or not TIME_OF_DAY_RE.match(value):
            raise ValueError(f"Invalid time of day '{value}', expected HH:mm")
    if len(set(times)) != len(times):
        raise ValueError("times_of_day must not repeat a time")
    return times


def validate_channels(channels: Iterable[Any]) -> List[str]:
    channels = [NotificationChannel(c).value for c in (channels or [])]
    if not channels:
        raise ValueError("notify_via must contain at least one channel")
    return channels


def validate_missed_window(minutes: int) -> int:
    low, high = settings.MIN_MISSED_WINDOW_MINUTES, settings.MAX_MISSED_WINDOW_MINUTES
    if not isinstance(minutes, int) or not low <= minutes <= high:
        raise ValueError(f"missed_window_minutes must be between {low} and {high}")
    return minutes


def validate_window(start_date: date, end_date: Optional[date]) -> None:
    if end_date is not None and end_date < start_date:
        raise ValueError("end_date must not be before start_date")


class ReminderService:
    """
    Service for medication reminders and the adherence log state machine

    Reminder:      ACTIVE <-> PAUSED, ACTIVE/PAUSED -> CANCELLED (terminal)
    AdherenceLog:  PENDING -> TAKEN | SKIPPED | MISSED (all terminal)
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationService] = None
    ):
        self.clock = clock or system_clock
        self.notifier = notifier or notification_service

    # ==================== LOOKUPS ====================

    def _get_owned_reminder(
        self,
        session: Session,
        patient_id: int,
        reminder_id: int
    ) -> models.MedicationReminder:
        reminder = session.get(models.MedicationReminder, reminder_id)
        if not reminder:
            raise NotFoundError("Medication reminder not found")
        if reminder.patient_id != patient_id:
            raise ForbiddenError("This reminder does not belong to you")
        return reminder

    # ==================== CREATE ====================

    async def create_reminder(
        self,
        patient_id: int,
        prescription_id: int,
        start_date: date,
        notify_via: List[Any],
        frequency: Optional[ReminderFrequency] = None,
        times_of_day: Optional[List[str]] = None,
        end_date: Optional[date] = None,
        missed_window_minutes: Optional[int] = None,
        db: Optional[Session] = None
    ) -> models.MedicationReminder:
        """
        Create a reminder for a dispensed prescription on the patient's request

        Frequency and times default to what the prescription text implies.

        Raises:
            NotFoundError: prescription does not exist
            ForbiddenError: prescription belongs to another patient
            InvalidStateError: not dispensed yet, or a reminder already exists
            ValueError: invalid times, window, channels or dates
        """
        def _create(session: Session) -> models.MedicationReminder:
            prescription = session.get(models.Prescription, prescription_id)
            if not prescription:
                raise NotFoundError("Prescription not found")
            if prescription.patient_id != patient_id:
                raise ForbiddenError("This prescription does not belong to you")
            if not prescription.dispensed:
                raise InvalidStateError("Reminders can only be created for dispensed prescriptions")

            existing = session.query(models.MedicationReminder).filter(
                models.MedicationReminder.prescription_id == prescription_id
            ).first()
            if existing:
                raise InvalidStateError("A reminder already exists for this prescription")

            if frequency is None:
                resolved_frequency, default_times = parse_frequency(prescription.frequency)
            else:
                resolved_frequency = ReminderFrequency(frequency)
                default_times = default_times_for(resolved_frequency)
            window = (
                missed_window_minutes if missed_window_minutes is not None
                else settings.DEFAULT_MISSED_WINDOW_MINUTES
            )
            validate_window(start_date, end_date)

            reminder = models.MedicationReminder(
                prescription_id=prescription_id,
                patient_id=patient_id,
                frequency=resolved_frequency,
                times_of_day=validate_times_of_day(times_of_day if times_of_day is not None else default_times),
                start_date=start_date,
                end_date=end_date,
                notify_via=validate_channels(notify_via),
                missed_window_minutes=validate_missed_window(window),
                total_quantity=prescription.quantity,
                status=ReminderStatus.ACTIVE
            )

            session.add(reminder)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise InvalidStateError("A reminder already exists for this prescription")
            session.refresh(reminder)

            logger.info(f"Medication reminder created: {reminder.id} for patient {patient_id}")
            return reminder

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def auto_create_reminder(
        self,
        prescription_id: int,
        db: Optional[Session] = None
    ) -> Optional[models.MedicationReminder]:
        """
        Seed a reminder when a prescription is dispensed.

        Idempotent: returns None without error if the prescription is unknown
        or already has a reminder. The patient notification is best effort.
        """
        def _create(session: Session) -> Optional[Tuple[models.MedicationReminder, models.Prescription]]:
            prescription = session.get(models.Prescription, prescription_id)
            if not prescription:
                logger.warning(f"Auto-create skipped: prescription {prescription_id} not found")
                return None

            existing = session.query(models.MedicationReminder).filter(
                models.MedicationReminder.prescription_id == prescription_id
            ).first()
            if existing:
                logger.info(
                    f"Reminder already exists for prescription {prescription_id}, skipping auto-create"
                )
                return None

            start_date = self.clock.today()
            parsed = parse_schedule(
                prescription.frequency,
                prescription.duration,
                start_date,
                default_days=settings.DEFAULT_DURATION_DAYS
            )

            reminder = models.MedicationReminder(
                prescription_id=prescription_id,
                patient_id=prescription.patient_id,
                frequency=parsed.frequency,
                times_of_day=parsed.times_of_day,
                start_date=start_date,
                end_date=parsed.end_date,
                notify_via=[NotificationChannel.IN_APP.value],
                missed_window_minutes=settings.DEFAULT_MISSED_WINDOW_MINUTES,
                total_quantity=prescription.quantity,
                status=ReminderStatus.ACTIVE
            )
            session.add(reminder)
            try:
                session.commit()
            except IntegrityError:
                # Another worker created it first
                session.rollback()
                logger.info(
                    f"Reminder for prescription {prescription_id} was created concurrently, skipping"
                )
                return None
            session.refresh(reminder)

            logger.info(
                f"Auto-created medication reminder {reminder.id} for prescription {prescription_id}"
            )
            return reminder, prescription

        if db:
            created = _create(db)
        else:
            with get_db_context() as session:
                created = _create(session)

        if created is None:
            return None

        reminder, prescription = created
        # Notification runs after the reminder is committed and never fails the caller
        await self._notify_reminder_created(reminder, prescription)
        return reminder

    async def _notify_reminder_created(
        self,
        reminder: models.MedicationReminder,
        prescription: models.Prescription
    ) -> None:
        name, dosage, prescription_id = prescription.medication_name, prescription.dosage, prescription.id
        try:
            await self.notifier.send(
                user_id=reminder.patient_id,
                notification_type=NotificationType.MEDICATION_REMINDER_CREATED,
                title="Medication Reminder Set Up",
                body=(
                    f"A reminder has been automatically created for {name} ({dosage}). "
                    "You can customize the schedule in your Reminders page."
                ),
                channel=NotificationChannel.IN_APP,
                metadata={"reminder_id": reminder.id, "prescription_id": prescription_id}
            )
        except Exception as e:
            logger.warning(f"Failed to send auto-reminder notification: {e}")

    # ==================== UPDATE / STATUS TRANSITIONS ====================

    async def update_reminder(
        self,
        patient_id: int,
        reminder_id: int,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> models.MedicationReminder:
        """
        Update reminder settings. Keys absent from ``updates`` are left unchanged.

        Allowed keys: times_of_day, end_date (None clears it), notify_via,
        missed_window_minutes, status.
        """
        def _update(session: Session) -> models.MedicationReminder:
            reminder = self._get_owned_reminder(session, patient_id, reminder_id)

            unknown = set(updates) - UPDATABLE_FIELDS
            if unknown:
                raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

            if "times_of_day" in updates:
                reminder.times_of_day = validate_times_of_day(updates["times_of_day"])
            if "end_date" in updates:
                validate_window(reminder.start_date, updates["end_date"])
                reminder.end_date = updates["end_date"]
            if "notify_via" in updates:
                reminder.notify_via = validate_channels(updates["notify_via"])
            if "missed_window_minutes" in updates:
                reminder.missed_window_minutes = validate_missed_window(updates["missed_window_minutes"])
            if "status" in updates:
                new_status = ReminderStatus(updates["status"])
                if reminder.status == ReminderStatus.CANCELLED and new_status != ReminderStatus.CANCELLED:
                    raise InvalidStateError("Cannot change the status of a cancelled reminder")
                reminder.status = new_status

            session.commit()
            session.refresh(reminder)

            logger.info(f"Updated reminder {reminder_id}: {sorted(updates)}")
            return reminder

        if db:
            return _update(db)

        with get_db_context() as session:
            return _update(session)

    def _transition(
        self,
        session: Session,
        patient_id: int,
        reminder_id: int,
        allowed_from: List[ReminderStatus],
        target: ReminderStatus,
        error_message: str
    ) -> models.MedicationReminder:
        reminder = self._get_owned_reminder(session, patient_id, reminder_id)
        if reminder.status not in allowed_from:
            raise InvalidStateError(error_message.format(status=reminder.status.value))

        # Guarded on the status we just read so a concurrent transition loses cleanly
        updated = session.query(models.MedicationReminder).filter(
            and_(
                models.MedicationReminder.id == reminder_id,
                models.MedicationReminder.status.in_(allowed_from)
            )
        ).update(
            {"status": target, "updated_at": self.clock.now()},
            synchronize_session=False
        )
        if updated == 0:
            session.rollback()
            raise InvalidStateError(error_message.format(status="changed concurrently"))

        session.commit()
        session.refresh(reminder)
        logger.info(f"Reminder {reminder_id} is now {target.value}")
        return reminder

    async def pause_reminder(
        self,
        patient_id: int,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> models.MedicationReminder:
        """Pause an ACTIVE reminder"""
        def _pause(session: Session) -> models.MedicationReminder:
            return self._transition(
                session, patient_id, reminder_id,
                [ReminderStatus.ACTIVE], ReminderStatus.PAUSED,
                "Cannot pause reminder with status {status}"
            )

        if db:
            return _pause(db)

        with get_db_context() as session:
            return _pause(session)

    async def resume_reminder(
        self,
        patient_id: int,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> models.MedicationReminder:
        """Resume a PAUSED reminder"""
        def _resume(session: Session) -> models.MedicationReminder:
            return self._transition(
                session, patient_id, reminder_id,
                [ReminderStatus.PAUSED], ReminderStatus.ACTIVE,
                "Cannot resume reminder with status {status}"
            )

        if db:
            return _resume(db)

        with get_db_context() as session:
            return _resume(session)

    async def cancel_reminder(
        self,
        patient_id: int,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> models.MedicationReminder:
        """Cancel a reminder. Its adherence history is kept."""
        def _cancel(session: Session) -> models.MedicationReminder:
            return self._transition(
                session, patient_id, reminder_id,
                [ReminderStatus.ACTIVE, ReminderStatus.PAUSED, ReminderStatus.COMPLETED],
                ReminderStatus.CANCELLED,
                "Cannot cancel reminder with status {status}"
            )

        if db:
            return _cancel(db)

        with get_db_context() as session:
            return _cancel(session)

    # ==================== ADHERENCE LOGGING ====================

    async def log_adherence(
        self,
        patient_id: int,
        log_id: int,
        status: AdherenceStatus,
        reason: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.AdherenceLog:
        """
        Record the patient's response to a scheduled dose

        Only PENDING logs accept a response; the update is conditional on that,
        so of two concurrent attempts exactly one succeeds.

        Raises:
            ValueError: status is not TAKEN or SKIPPED
            NotFoundError / ForbiddenError / InvalidStateError
        """
        status = AdherenceStatus(status)
        if status not in (AdherenceStatus.TAKEN, AdherenceStatus.SKIPPED):
            raise ValueError("Status must be taken or skipped")

        def _log(session: Session) -> models.AdherenceLog:
            log = session.get(models.AdherenceLog, log_id)
            if not log:
                raise NotFoundError("Adherence log not found")
            if log.patient_id != patient_id:
                raise ForbiddenError("This adherence log does not belong to you")

            values = {
                "status": status,
                "responded_at": self.clock.now(),
                "updated_at": self.clock.now(),
            }
            if status == AdherenceStatus.SKIPPED and reason is not None:
                values["reason"] = reason

            updated = session.query(models.AdherenceLog).filter(
                and_(
                    models.AdherenceLog.id == log_id,
                    models.AdherenceLog.status == AdherenceStatus.PENDING
                )
            ).update(values, synchronize_session=False)

            if updated == 0:
                session.rollback()
                session.refresh(log)
                raise InvalidStateError(f"Cannot update log with status {log.status.value}")

            session.commit()
            session.refresh(log)

            logger.info(f"Patient {patient_id} logged dose {log_id} as {status.value}")
            return log

        if db:
            return _log(db)

        with get_db_context() as session:
            return _log(session)

    # ==================== READS ====================

    async def get_reminders(
        self,
        patient_id: int,
        status: Optional[ReminderStatus] = None,
        page: int = 1,
        limit: int = 20,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Paginated reminders for a patient, newest first"""
        def _get(session: Session) -> Dict[str, Any]:
            query = session.query(models.MedicationReminder).options(
                joinedload(models.MedicationReminder.prescription)
            ).filter(models.MedicationReminder.patient_id == patient_id)

            if status:
                query = query.filter(models.MedicationReminder.status == ReminderStatus(status))

            total = query.count()
            reminders = query.order_by(
                desc(models.MedicationReminder.created_at),
                desc(models.MedicationReminder.id)
            ).offset((page - 1) * limit).limit(limit).all()

            return {
                "data": reminders,
                "meta": {
                    "total": total,
                    "page": page,
                    "limit": limit,
                    "total_pages": math.ceil(total / limit) if limit else 0,
                },
            }

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_reminder(
        self,
        patient_id: int,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """A reminder with its most recent adherence logs"""
        def _get(session: Session) -> Dict[str, Any]:
            reminder = self._get_owned_reminder(session, patient_id, reminder_id)
            logs = session.query(models.AdherenceLog).filter(
                models.AdherenceLog.reminder_id == reminder_id
            ).order_by(
                desc(models.AdherenceLog.scheduled_at)
            ).limit(settings.REMINDER_DETAIL_LOGS_LIMIT).all()

            return {"reminder": reminder, "recent_logs": logs}

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_todays_doses(
        self,
        patient_id: int,
        db: Optional[Session] = None
    ) -> List[models.AdherenceLog]:
        """Today's materialized doses for a patient, earliest first"""
        def _get(session: Session) -> List[models.AdherenceLog]:
            start = datetime.combine(self.clock.today(), datetime.min.time())
            end = start + timedelta(days=1)

            return session.query(models.AdherenceLog).options(
                joinedload(models.AdherenceLog.reminder).joinedload(models.MedicationReminder.prescription)
            ).filter(
                and_(
                    models.AdherenceLog.patient_id == patient_id,
                    models.AdherenceLog.scheduled_at >= start,
                    models.AdherenceLog.scheduled_at < end
                )
            ).order_by(models.AdherenceLog.scheduled_at).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
reminder_service = ReminderService()
