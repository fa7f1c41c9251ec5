"""
Appointments API Routes

API endpoints for manual appointment booking, availability and the
appointment lifecycle.
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date

from app.infrastructure.database import get_db
from app.domain.appointments.availability import SlotPolicy
from app.domain.appointments.models import AppointmentStatus
from app.domain.appointments.service import AppointmentService
from app.api.v1.appointments.schemas import (
    AppointmentCreate, AppointmentCancel, AppointmentReschedule,
    ConsultationComplete, AppointmentResponse, AvailableSlotsResponse
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


@router.get("/availability", response_model=AvailableSlotsResponse)
async def get_availability(
    doctor_id: str,
    appointment_date: date = Query(..., alias="date"),
    policy: SlotPolicy = Query(SlotPolicy.MANUAL),
    db: AsyncSession = Depends(get_db)
):
    """Bookable start times for a doctor on a date"""
    service = AppointmentService(db)
    slots = await service.get_available_slots(doctor_id, appointment_date, policy)
    return AvailableSlotsResponse(
        doctor_id=doctor_id,
        appointment_date=appointment_date,
        policy=policy,
        available_times=slots
    )


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment_data: AppointmentCreate,
    db: AsyncSession = Depends(get_db)
):
    """Book an appointment manually"""
    service = AppointmentService(db)
    appointment = await service.create_appointment(
        patient_id=appointment_data.patient_id,
        doctor_id=appointment_data.doctor_id,
        appointment_date=appointment_data.appointment_date,
        appointment_time=appointment_data.appointment_time,
        reason=appointment_data.reason,
        notes=appointment_data.notes,
        duration_minutes=appointment_data.duration_minutes,
        policy=appointment_data.policy
    )
    return appointment


@router.get("", response_model=List[AppointmentResponse])
async def list_appointments(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    doctor_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    appointment_date: Optional[date] = Query(None, alias="date"),
    appointment_status: Optional[AppointmentStatus] = Query(None, alias="status"),
    ai_agent_booking: Optional[bool] = None
):
    """List appointments with filtering"""
    service = AppointmentService(db)
    return await service.list_appointments(
        skip=skip,
        limit=limit,
        doctor_id=doctor_id,
        patient_id=patient_id,
        appointment_date=appointment_date,
        status=appointment_status,
        ai_agent_booking=ai_agent_booking
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    db: AsyncSession = Depends(get_db)
):
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    cancel_data: AppointmentCancel,
    db: AsyncSession = Depends(get_db)
):
    """Cancel an appointment and free its slot"""
    service = AppointmentService(db)
    return await service.cancel_appointment(
        appointment_id,
        reason=cancel_data.reason,
        notify_patient=cancel_data.notify_patient
    )


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: str,
    reschedule_data: AppointmentReschedule,
    db: AsyncSession = Depends(get_db)
):
    """Move an appointment to another slot"""
    service = AppointmentService(db)
    return await service.reschedule_appointment(
        appointment_id,
        new_date=reschedule_data.new_date,
        new_time=reschedule_data.new_time,
        reason=reschedule_data.reason
    )


@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
async def start_consultation(
    appointment_id: str,
    db: AsyncSession = Depends(get_db)
):
    service = AppointmentService(db)
    return await service.start_consultation(appointment_id)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_consultation(
    appointment_id: str,
    consultation: ConsultationComplete,
    db: AsyncSession = Depends(get_db)
):
    service = AppointmentService(db)
    return await service.complete_consultation(
        appointment_id,
        consultation_notes=consultation.consultation_notes,
        diagnosis=consultation.diagnosis,
        prescription=consultation.prescription,
        follow_up_instructions=consultation.follow_up_instructions
    )


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: str,
    db: AsyncSession = Depends(get_db)
):
    service = AppointmentService(db)
    return await service.mark_no_show(appointment_id)
