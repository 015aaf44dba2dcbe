"""
Adherence API Router
Endpoints for dose logging and compliance analytics
"""

from typing import Optional
from datetime import date
from fastapi import APIRouter, Depends, Query

from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user_id, services, to_http_exception
from api.reminders import reminder_response
from api.schemas.adherence import (
    AdherenceLogCreate,
    AdherenceLogResponse,
    AdherenceSummary,
)
from api.schemas.reminder import PatientAdherence
from services.errors import ReminderError


router = APIRouter(prefix="/medication-reminders", tags=["adherence"])


@router.post("/log", response_model=AdherenceLogResponse)
async def log_adherence(
    log_data: AdherenceLogCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Mark a pending dose as taken or skipped
    """
    reminder_service = services.get_reminder_service()

    try:
        return await reminder_service.log_adherence(
            patient_id=user_id,
            log_id=log_data.log_id,
            status=log_data.status,
            reason=log_data.reason,
            db=db
        )
    except (ReminderError, ValueError) as e:
        raise to_http_exception(e)


@router.get("/summary", response_model=AdherenceSummary)
async def get_adherence_summary(
    prescription_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Compliance summary for the caller, optionally for one prescription
    and an inclusive date range
    """
    adherence_service = services.get_adherence_service()

    try:
        return await adherence_service.get_adherence_summary(
            patient_id=user_id,
            prescription_id=prescription_id,
            start_date=start_date,
            end_date=end_date,
            db=db
        )
    except ValueError as e:
        raise to_http_exception(e)


@router.get("/patient/{patient_id}/adherence", response_model=PatientAdherence)
async def get_patient_adherence(
    patient_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Practitioner view of a patient they prescribe for
    """
    adherence_service = services.get_adherence_service()

    try:
        result = await adherence_service.get_patient_adherence(
            practitioner_id=user_id,
            patient_id=patient_id,
            db=db
        )
    except ReminderError as e:
        raise to_http_exception(e)

    return PatientAdherence(
        patient=result["patient"],
        summary=result["summary"],
        active_reminders=[reminder_response(r) for r in result["active_reminders"]],
        recent_logs=[AdherenceLogResponse.model_validate(l) for l in result["recent_logs"]]
    )
