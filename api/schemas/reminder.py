"""
Reminder Schemas
Pydantic models for medication reminder API requests and responses
"""

from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict

from models import NotificationChannel, ReminderFrequency, ReminderStatus
from api.schemas.adherence import AdherenceLogResponse, AdherenceSummary, PatientInfo


# ==================== REQUEST SCHEMAS ====================

class ReminderCreate(BaseModel):
    """Schema for creating a reminder for a dispensed prescription"""
    prescription_id: int
    frequency: Optional[ReminderFrequency] = None
    times_of_day: Optional[List[str]] = Field(None, min_length=1)
    start_date: date
    end_date: Optional[date] = None
    notify_via: List[NotificationChannel] = Field(..., min_length=1)
    missed_window_minutes: Optional[int] = Field(None, ge=15, le=480)


class ReminderUpdate(BaseModel):
    """Schema for updating reminder settings; omitted fields are unchanged"""
    times_of_day: Optional[List[str]] = Field(None, min_length=1)
    end_date: Optional[date] = None
    notify_via: Optional[List[NotificationChannel]] = Field(None, min_length=1)
    missed_window_minutes: Optional[int] = Field(None, ge=15, le=480)
    status: Optional[ReminderStatus] = None


# ==================== RESPONSE SCHEMAS ====================

class PrescriptionSummary(BaseModel):
    """Prescription fields shown alongside a reminder"""
    id: int
    medication_name: str
    dosage: str
    frequency: str
    duration: Optional[str] = None
    quantity: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ReminderResponse(BaseModel):
    """Schema for reminder response"""
    id: int
    prescription_id: int
    patient_id: int
    frequency: ReminderFrequency
    times_of_day: List[str]
    start_date: date
    end_date: Optional[date] = None
    notify_via: List[NotificationChannel]
    missed_window_minutes: int
    total_quantity: Optional[int] = None
    status: ReminderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    prescription: Optional[PrescriptionSummary] = None

    model_config = ConfigDict(from_attributes=True)


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class ReminderList(BaseModel):
    """Paginated list of reminders"""
    data: List[ReminderResponse]
    meta: PaginationMeta


class ReminderDetail(BaseModel):
    """Reminder with its recent adherence logs"""
    reminder: ReminderResponse
    recent_logs: List[AdherenceLogResponse]


class PatientAdherence(BaseModel):
    """Practitioner view of a patient's adherence"""
    patient: PatientInfo
    summary: AdherenceSummary
    active_reminders: List[ReminderResponse]
    recent_logs: List[AdherenceLogResponse]
