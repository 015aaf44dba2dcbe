"""
Adherence Schemas
Pydantic models for adherence logging and analytics API requests and responses
"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from models import AdherenceStatus


# ==================== REQUEST SCHEMAS ====================

class AdherenceLogCreate(BaseModel):
    """Schema for responding to a scheduled dose"""
    log_id: int
    status: AdherenceStatus
    reason: Optional[str] = Field(None, max_length=500)


# ==================== RESPONSE SCHEMAS ====================

class AdherenceLogResponse(BaseModel):
    """Schema for adherence log response"""
    id: int
    reminder_id: int
    patient_id: int
    scheduled_at: datetime
    responded_at: Optional[datetime] = None
    status: AdherenceStatus
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TodayDose(AdherenceLogResponse):
    """Today's dose with its medication"""
    medication_name: str
    dosage: str


class MedicationCompliance(BaseModel):
    """Compliance for one prescription"""
    prescription_id: int
    medication_name: str
    dosage: str
    total: int
    taken: int
    compliance: int = Field(..., ge=0, le=100)


class DailyTrend(BaseModel):
    """Compliance for a single day"""
    date: str
    taken: int
    total: int
    compliance: int = Field(..., ge=0, le=100)


class AdherenceSummary(BaseModel):
    """Compliance summary over a patient's answered doses"""
    overall_compliance: int = Field(..., ge=0, le=100)
    current_streak: int
    longest_streak: int
    total_doses: int
    doses_taken: int
    doses_missed: int
    doses_skipped: int
    per_medication: List[MedicationCompliance]
    weekly_trend: List[DailyTrend]


class RefillStatus(BaseModel):
    """Supply estimate for one reminder"""
    reminder_id: int
    medication_name: str
    dosage: str
    total_quantity: int
    doses_taken: int
    remaining: int
    doses_per_day: int
    estimated_days_remaining: int
    needs_refill_soon: bool


class PatientInfo(BaseModel):
    id: int
    name: str
