"""
Adherence Service
Read-side compliance analytics over adherence history
"""

import math
import logging
from typing import Dict, List, Optional, Any, Sequence, Tuple
from datetime import datetime, date, timedelta
from collections import OrderedDict
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import and_, desc

from config import settings
from database import get_db_context
import models
from models import AdherenceStatus, ReminderStatus
from services.errors import NotFoundError, ForbiddenError
from tools.clock import Clock, system_clock


logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def non_pending(logs: Sequence[Any]) -> List[Any]:
    return [l for l in logs if l.status != AdherenceStatus.PENDING]


def compute_compliance(taken: int, total: int) -> int:
    """Percentage of ``total`` that was taken, rounded half up. 0 when total is 0."""
    if total <= 0:
        return 0
    return round_half_up(100 * taken / total)


def compute_streaks(logs: Sequence[Any]) -> Tuple[int, int]:
    """
    Current and longest runs of TAKEN doses.

    PENDING logs are dropped first, so they neither break nor extend a run.
    The current streak counts back from the most recently scheduled dose.
    """
    ordered = sorted(non_pending(logs), key=lambda l: (l.scheduled_at, l.id or 0))

    longest = 0
    run = 0
    for log in ordered:
        if log.status == AdherenceStatus.TAKEN:
            run += 1
            longest = max(longest, run)
        else:
            run = 0

    current = 0
    for log in reversed(ordered):
        if log.status != AdherenceStatus.TAKEN:
            break
        current += 1

    return current, longest


def compute_weekly_trend(logs: Sequence[Any], today: date, days: int = 7) -> List[Dict[str, Any]]:
    """Per-day taken/total/compliance for the last ``days`` days, oldest first"""
    buckets: "OrderedDict[date, List[Any]]" = OrderedDict(
        (today - timedelta(days=offset), []) for offset in range(days - 1, -1, -1)
    )
    for log in non_pending(logs):
        day = log.scheduled_at.date()
        if day in buckets:
            buckets[day].append(log)

    trend = []
    for day, day_logs in buckets.items():
        taken = sum(1 for l in day_logs if l.status == AdherenceStatus.TAKEN)
        trend.append({
            "date": day.isoformat(),
            "taken": taken,
            "total": len(day_logs),
            "compliance": compute_compliance(taken, len(day_logs))
        })
    return trend


def estimate_refill(
    total_quantity: Optional[int],
    taken_count: int,
    doses_per_day: int,
    threshold_days: int = 7
) -> Dict[str, Any]:
    """Remaining units and how many days they last at the current cadence"""
    remaining = max(0, (total_quantity or 0) - taken_count)
    days_remaining = remaining // doses_per_day if doses_per_day > 0 else 0

    return {
        "total_quantity": total_quantity or 0,
        "doses_taken": taken_count,
        "remaining": remaining,
        "doses_per_day": doses_per_day,
        "estimated_days_remaining": days_remaining,
        "needs_refill_soon": days_remaining <= threshold_days
    }


class AdherenceService:
    """
    Service for adherence analytics
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or system_clock

    def _summarize(
        self,
        session: Session,
        patient_id: int,
        prescription_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        query = session.query(models.AdherenceLog).options(
            joinedload(models.AdherenceLog.reminder).joinedload(models.MedicationReminder.prescription)
        ).filter(models.AdherenceLog.patient_id == patient_id)

        if prescription_id:
            query = query.join(models.AdherenceLog.reminder).filter(
                models.MedicationReminder.prescription_id == prescription_id
            )
        if start_date:
            query = query.filter(
                models.AdherenceLog.scheduled_at >= datetime.combine(start_date, datetime.min.time())
            )
        if end_date:
            query = query.filter(
                models.AdherenceLog.scheduled_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time())
            )

        logs = query.order_by(models.AdherenceLog.scheduled_at, models.AdherenceLog.id).all()
        answered = non_pending(logs)

        taken = sum(1 for l in answered if l.status == AdherenceStatus.TAKEN)
        missed = sum(1 for l in answered if l.status == AdherenceStatus.MISSED)
        skipped = sum(1 for l in answered if l.status == AdherenceStatus.SKIPPED)
        current_streak, longest_streak = compute_streaks(logs)

        # Group by owning prescription, first-seen order
        per_medication: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
        for log in answered:
            prescription = log.reminder.prescription
            entry = per_medication.setdefault(prescription.id, {
                "prescription_id": prescription.id,
                "medication_name": prescription.medication_name,
                "dosage": prescription.dosage,
                "total": 0,
                "taken": 0,
            })
            entry["total"] += 1
            if log.status == AdherenceStatus.TAKEN:
                entry["taken"] += 1
        for entry in per_medication.values():
            entry["compliance"] = compute_compliance(entry["taken"], entry["total"])

        return {
            "overall_compliance": compute_compliance(taken, len(answered)),
            "current_streak": current_streak,
            "longest_streak": longest_streak,
            "total_doses": len(answered),
            "doses_taken": taken,
            "doses_missed": missed,
            "doses_skipped": skipped,
            "per_medication": list(per_medication.values()),
            "weekly_trend": compute_weekly_trend(logs, self.clock.today())
        }

    async def get_adherence_summary(
        self,
        patient_id: int,
        prescription_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Compliance summary for a patient

        Args:
            patient_id: Patient ID
            prescription_id: Restrict to one prescription
            start_date: First day included (by scheduled time)
            end_date: Last day included
            db: Database session

        Returns:
            overall_compliance, streaks, dose totals, per_medication breakdown
            and a 7-day weekly_trend ending today
        """
        if start_date and end_date and end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        def _get(session: Session) -> Dict[str, Any]:
            return self._summarize(session, patient_id, prescription_id, start_date, end_date)

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_refill_status(
        self,
        patient_id: int,
        reminder_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Estimate when a reminder's medication supply runs out"""
        def _get(session: Session) -> Dict[str, Any]:
            reminder = session.query(models.MedicationReminder).options(
                joinedload(models.MedicationReminder.prescription)
            ).filter(models.MedicationReminder.id == reminder_id).first()
            if not reminder:
                raise NotFoundError("Medication reminder not found")
            if reminder.patient_id != patient_id:
                raise ForbiddenError("This reminder does not belong to you")

            taken = session.query(models.AdherenceLog).filter(
                and_(
                    models.AdherenceLog.reminder_id == reminder_id,
                    models.AdherenceLog.status == AdherenceStatus.TAKEN
                )
            ).count()

            total_quantity = reminder.total_quantity
            if total_quantity is None:
                total_quantity = reminder.prescription.quantity

            estimate = estimate_refill(
                total_quantity,
                taken,
                reminder.doses_per_day,
                threshold_days=settings.REFILL_THRESHOLD_DAYS
            )
            return {
                "reminder_id": reminder.id,
                "medication_name": reminder.prescription.medication_name,
                "dosage": reminder.prescription.dosage,
                **estimate
            }

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_patient_adherence(
        self,
        practitioner_id: int,
        patient_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Practitioner view of a patient's adherence.

        Requires at least one prescription from the practitioner to the patient.
        """
        def _get(session: Session) -> Dict[str, Any]:
            treating = session.query(models.Prescription.id).filter(
                and_(
                    models.Prescription.practitioner_id == practitioner_id,
                    models.Prescription.patient_id == patient_id
                )
            ).first()
            if not treating:
                raise ForbiddenError("You do not have a treatment relationship with this patient")

            patient = session.get(models.Patient, patient_id)
            if not patient:
                raise NotFoundError("Patient not found")

            active_reminders = session.query(models.MedicationReminder).options(
                joinedload(models.MedicationReminder.prescription)
            ).filter(
                and_(
                    models.MedicationReminder.patient_id == patient_id,
                    models.MedicationReminder.status == ReminderStatus.ACTIVE
                )
            ).order_by(models.MedicationReminder.id).all()

            recent_logs = session.query(models.AdherenceLog).filter(
                models.AdherenceLog.patient_id == patient_id
            ).order_by(
                desc(models.AdherenceLog.scheduled_at),
                desc(models.AdherenceLog.id)
            ).limit(settings.RECENT_LOGS_LIMIT).all()

            return {
                "patient": {"id": patient.id, "name": patient.full_name},
                "summary": self._summarize(session, patient_id),
                "active_reminders": active_reminders,
                "recent_logs": recent_logs
            }

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
adherence_service = AdherenceService()
