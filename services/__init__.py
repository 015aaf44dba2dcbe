"""
Services Module
Business logic layer for the AdherenceEngine application
"""

from services.errors import ReminderError, NotFoundError, ForbiddenError, InvalidStateError
from services.reminder_service import ReminderService, reminder_service
from services.dose_scheduler import DoseScheduler, MaterializationResult, dose_scheduler
from services.missed_dose_sweeper import MissedDoseSweeper, missed_dose_sweeper
from services.adherence_service import AdherenceService, adherence_service


__all__ = [
    # Errors
    "ReminderError",
    "NotFoundError",
    "ForbiddenError",
    "InvalidStateError",
    # Service classes
    "ReminderService",
    "DoseScheduler",
    "MaterializationResult",
    "MissedDoseSweeper",
    "AdherenceService",
    # Singleton instances
    "reminder_service",
    "dose_scheduler",
    "missed_dose_sweeper",
    "adherence_service",
]
