"""
Appointments API Schemas

Pydantic models for appointment-related API requests and responses.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date
from app.core.calendar import normalize_hhmm
from app.domain.appointments.availability import SlotPolicy
from app.domain.appointments.models import AppointmentStatus


class AppointmentCreate(BaseModel):
    """Schema for manual appointment booking"""
    patient_id: str
    doctor_id: str
    appointment_date: date
    appointment_time: str = Field(..., description="HH:MM")
    duration_minutes: Optional[int] = Field(None, ge=5, le=240)
    reason: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = None
    policy: Optional[SlotPolicy] = Field(None, description="Restrict the time to a booking grid")

    @field_validator("appointment_time")
    @classmethod
    def validate_appointment_time(cls, v: str) -> str:
        return normalize_hhmm(v)


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)
    notify_patient: bool = False


class AppointmentReschedule(BaseModel):
    new_date: date
    new_time: str = Field(..., description="HH:MM")
    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("new_time")
    @classmethod
    def validate_new_time(cls, v: str) -> str:
        return normalize_hhmm(v)


class ConsultationComplete(BaseModel):
    consultation_notes: Optional[str] = None
    diagnosis: Optional[str] = None
    prescription: Optional[str] = None
    follow_up_instructions: Optional[str] = None


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""
    id: str
    patient_id: str
    doctor_id: str
    appointment_date: date
    appointment_time: str
    duration_minutes: int
    status: AppointmentStatus
    reason: Optional[str] = None
    notes: Optional[str] = None
    ai_agent_booking: bool

    consultation_notes: Optional[str] = None
    diagnosis: Optional[str] = None
    prescription: Optional[str] = None
    follow_up_instructions: Optional[str] = None
    consultation_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    notify_patient: Optional[bool] = None

    reschedule_reason: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailableSlotsResponse(BaseModel):
    doctor_id: str
    appointment_date: date
    policy: SlotPolicy
    available_times: List[str]
