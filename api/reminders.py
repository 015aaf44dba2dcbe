"""
Medication Reminders API Router
Endpoints for reminder lifecycle and today's doses
"""

from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, get_current_user_id, pagination_params, services, to_http_exception
from api.schemas.reminder import (
    ReminderCreate,
    ReminderUpdate,
    ReminderResponse,
    ReminderList,
    ReminderDetail,
)
from api.schemas.adherence import AdherenceLogResponse, TodayDose, RefillStatus
from models import MedicationReminder, ReminderStatus
from services.errors import ReminderError


router = APIRouter(prefix="/medication-reminders", tags=["medication-reminders"])


def reminder_response(reminder: MedicationReminder, today: Optional[date] = None) -> ReminderResponse:
    """Serialize a reminder, reporting ACTIVE reminders past their end date as COMPLETED"""
    today = today or services.get_reminder_service().clock.today()
    response = ReminderResponse.model_validate(reminder)
    response.status = reminder.effective_status(today)
    return response


@router.post("/", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    reminder_data: ReminderCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Create a reminder for one of the caller's dispensed prescriptions
    """
    reminder_service = services.get_reminder_service()

    try:
        reminder = await reminder_service.create_reminder(
            patient_id=user_id,
            prescription_id=reminder_data.prescription_id,
            start_date=reminder_data.start_date,
            notify_via=reminder_data.notify_via,
            frequency=reminder_data.frequency,
            times_of_day=reminder_data.times_of_day,
            end_date=reminder_data.end_date,
            missed_window_minutes=reminder_data.missed_window_minutes,
            db=db
        )
    except (ReminderError, ValueError) as e:
        raise to_http_exception(e)

    return reminder_response(reminder)


@router.get("/", response_model=ReminderList)
async def list_reminders(
    status_filter: Optional[ReminderStatus] = Query(None, alias="status"),
    pagination: dict = Depends(pagination_params),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    List the caller's reminders, newest first
    """
    reminder_service = services.get_reminder_service()

    result = await reminder_service.get_reminders(
        patient_id=user_id,
        status=status_filter,
        page=pagination["page"],
        limit=pagination["limit"],
        db=db
    )

    today = reminder_service.clock.today()
    return ReminderList(
        data=[reminder_response(r, today) for r in result["data"]],
        meta=result["meta"]
    )


@router.get("/today", response_model=List[TodayDose])
async def get_todays_doses(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Today's scheduled doses for the caller
    """
    reminder_service = services.get_reminder_service()
    logs = await reminder_service.get_todays_doses(patient_id=user_id, db=db)

    return [
        TodayDose(
            **AdherenceLogResponse.model_validate(log).model_dump(),
            medication_name=log.reminder.prescription.medication_name,
            dosage=log.reminder.prescription.dosage
        )
        for log in logs
    ]


@router.get("/{reminder_id}", response_model=ReminderDetail)
async def get_reminder(
    reminder_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Get a reminder with its recent adherence logs
    """
    reminder_service = services.get_reminder_service()

    try:
        result = await reminder_service.get_reminder(user_id, reminder_id, db=db)
    except ReminderError as e:
        raise to_http_exception(e)

    return ReminderDetail(
        reminder=reminder_response(result["reminder"]),
        recent_logs=[AdherenceLogResponse.model_validate(l) for l in result["recent_logs"]]
    )


@router.patch("/{reminder_id}", response_model=ReminderResponse)
async def update_reminder(
    reminder_id: int,
    reminder_data: ReminderUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Update reminder settings
    """
    reminder_service = services.get_reminder_service()
    updates = reminder_data.model_dump(exclude_unset=True)

    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update"
        )

    try:
        reminder = await reminder_service.update_reminder(user_id, reminder_id, updates, db=db)
    except (ReminderError, ValueError) as e:
        raise to_http_exception(e)

    return reminder_response(reminder)


@router.post("/{reminder_id}/pause", response_model=ReminderResponse)
async def pause_reminder(
    reminder_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Pause an active reminder"""
    reminder_service = services.get_reminder_service()

    try:
        reminder = await reminder_service.pause_reminder(user_id, reminder_id, db=db)
    except ReminderError as e:
        raise to_http_exception(e)

    return reminder_response(reminder)


@router.post("/{reminder_id}/resume", response_model=ReminderResponse)
async def resume_reminder(
    reminder_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Resume a paused reminder"""
    reminder_service = services.get_reminder_service()

    try:
        reminder = await reminder_service.resume_reminder(user_id, reminder_id, db=db)
    except ReminderError as e:
        raise to_http_exception(e)

    return reminder_response(reminder)


@router.post("/{reminder_id}/cancel", response_model=ReminderResponse)
async def cancel_reminder(
    reminder_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Cancel a reminder"""
    reminder_service = services.get_reminder_service()

    try:
        reminder = await reminder_service.cancel_reminder(user_id, reminder_id, db=db)
    except ReminderError as e:
        raise to_http_exception(e)

    return reminder_response(reminder)


@router.get("/{reminder_id}/refill-status", response_model=RefillStatus)
async def get_refill_status(
    reminder_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Estimate how long the medication supply lasts
    """
    adherence_service = services.get_adherence_service()

    try:
        return await adherence_service.get_refill_status(user_id, reminder_id, db=db)
    except ReminderError as e:
        raise to_http_exception(e)


@router.post("/auto-create/{prescription_id}", response_model=Optional[ReminderResponse])
async def auto_create_reminder(
    prescription_id: int,
    db: Session = Depends(get_db)
):
    """
    Seed a reminder after a prescription is dispensed.
    Returns null when the prescription already has one or does not exist.
    """
    reminder_service = services.get_reminder_service()
    reminder = await reminder_service.auto_create_reminder(prescription_id, db=db)

    if reminder is None:
        return None
    return reminder_response(reminder)
