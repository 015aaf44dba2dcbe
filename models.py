"""
Database Models
SQLAlchemy ORM models for AdherenceEngine
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Date, Enum, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, date
from enum import Enum as PyEnum

from database import Base


# ==================== ENUMS ====================

class ReminderFrequency(str, PyEnum):
    """Dosing cadence of a medication reminder"""
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_TIMES_DAILY = "three_times_daily"
    FOUR_TIMES_DAILY = "four_times_daily"
    EVERY_OTHER_DAY = "every_other_day"
    WEEKLY = "weekly"


class ReminderStatus(str, PyEnum):
    """Lifecycle status of a medication reminder"""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AdherenceStatus(str, PyEnum):
    """Status of a scheduled medication dose"""
    PENDING = "pending"
    TAKEN = "taken"
    SKIPPED = "skipped"
    MISSED = "missed"

    @property
    def is_terminal(self) -> bool:
        return self is not AdherenceStatus.PENDING


class NotificationChannel(str, PyEnum):
    """Delivery channels a patient can pick for reminders"""
    IN_APP = "in_app"
    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"


# ==================== EXTERNAL RECORDS ====================
# Patients, practitioners and prescriptions are owned by other parts of the
# product. The engine only reads them.

class Patient(Base):
    """Patient identity used for ownership checks"""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    prescriptions = relationship("Prescription", back_populates="patient")
    reminders = relationship("MedicationReminder", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Practitioner(Base):
    """Prescribing practitioner"""
    __tablename__ = "practitioners"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    prescriptions = relationship("Prescription", back_populates="practitioner")


class Prescription(Base):
    """Prescription as recorded by the prescribing/dispensing workflow"""
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), nullable=False)

    medication_name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)  # e.g., "500mg"
    frequency = Column(String(255), nullable=False)  # free text, e.g. "Twice daily"
    duration = Column(String(100))  # free text, e.g. "3 months"
    quantity = Column(Integer)

    dispensed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    patient = relationship("Patient", back_populates="prescriptions")
    practitioner = relationship("Practitioner", back_populates="prescriptions")
    reminder = relationship("MedicationReminder", back_populates="prescription", uselist=False)

    __table_args__ = (
        Index("ix_prescriptions_practitioner_patient", "practitioner_id", "patient_id"),
    )


# ==================== REMINDERS ====================

class MedicationReminder(Base):
    """A patient's recurring dose schedule for one prescription"""
    __tablename__ = "medication_reminders"

    id = Column(Integer, primary_key=True, index=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id"), nullable=False, unique=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    # Cadence
    frequency = Column(Enum(ReminderFrequency), nullable=False)
    times_of_day = Column(JSON, nullable=False, default=list)  # ["08:00", "20:00"], dose order

    # Window (both ends inclusive)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)

    # Delivery
    notify_via = Column(JSON, nullable=False, default=list)
    missed_window_minutes = Column(Integer, nullable=False, default=120)

    # Refill accounting
    total_quantity = Column(Integer)

    status = Column(Enum(ReminderStatus), nullable=False, default=ReminderStatus.ACTIVE, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="reminders")
    prescription = relationship("Prescription", back_populates="reminder")
    adherence_logs = relationship(
        "AdherenceLog",
        back_populates="reminder",
        order_by="AdherenceLog.scheduled_at.desc()"
    )

    @property
    def doses_per_day(self) -> int:
        return len(self.times_of_day or [])

    def effective_status(self, today: date) -> ReminderStatus:
        """Status as reported to callers: an ACTIVE reminder past its end date reads as COMPLETED"""
        if (
            self.status == ReminderStatus.ACTIVE
            and self.end_date is not None
            and self.end_date < today
        ):
            return ReminderStatus.COMPLETED
        return self.status


class AdherenceLog(Base):
    """One materialized dose occurrence and its outcome"""
    __tablename__ = "adherence_logs"

    id = Column(Integer, primary_key=True, index=True)
    reminder_id = Column(Integer, ForeignKey("medication_reminders.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)

    scheduled_at = Column(DateTime, nullable=False)
    responded_at = Column(DateTime)
    notified_at = Column(DateTime)

    status = Column(Enum(AdherenceStatus), nullable=False, default=AdherenceStatus.PENDING)
    reason = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reminder = relationship("MedicationReminder", back_populates="adherence_logs")

    __table_args__ = (
        UniqueConstraint("reminder_id", "scheduled_at", name="uq_adherence_logs_reminder_scheduled"),
        Index("ix_adherence_patient_scheduled", "patient_id", "scheduled_at"),
        Index("ix_adherence_status", "status"),
    )
