"""
Actions Module
Background engines for the reminder jobs
"""

from .reminder_engine import (
    JobType,
    JobRun,
    ReminderEngine,
    reminder_engine
)


__all__ = [
    "JobType",
    "JobRun",
    "ReminderEngine",
    "reminder_engine"
]
