"""
Agent API Schemas

Request/response models for the conversational agent, the structured
booking endpoint and the agent webhook. Request bodies accept both
snake_case and the camelCase keys sent by existing agent integrations.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel, to_snake
from typing import Optional, List, Dict, Any
from datetime import date
from app.core.calendar import normalize_hhmm
from app.domain.booking.machine import ReplyOutcome
from app.domain.booking.session import BookingStep
from app.domain.patients.models import Gender


class AgentRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AgentMessageRequest(AgentRequest):
    conversation_id: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)


class AgentMessageResponse(BaseModel):
    conversation_id: str
    step: BookingStep
    outcome: ReplyOutcome
    message: str
    appointment_id: Optional[str] = None
    available_slots: List[str] = []
    session_expired: bool = False


class SessionResetResponse(BaseModel):
    conversation_id: str
    discarded: bool


class PatientInfo(AgentRequest):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    gender: Gender = Gender.OTHER
    age: int = Field(0, ge=0, le=150)
    weight: Optional[float] = Field(None, gt=0)
    date_of_birth: Optional[date] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v and "@" not in v:
            raise ValueError("Invalid email format")
        return v


class BookAppointmentRequest(AgentRequest):
    patient_info: PatientInfo
    doctor_id: str
    appointment_date: date
    appointment_time: str = Field(..., description="HH:MM")
    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("appointment_time")
    @classmethod
    def validate_appointment_time(cls, v: str) -> str:
        return normalize_hhmm(v)


class PatientSummary(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        from_attributes = True


class DoctorSummary(BaseModel):
    id: str
    first_name: str
    last_name: str
    specialization: str

    class Config:
        from_attributes = True


class BookAppointmentResponse(BaseModel):
    success: bool = True
    appointment_id: str
    patient: PatientSummary
    doctor: DoctorSummary


class WebhookRequest(AgentRequest):
    event_type: str = Field(..., min_length=1)
    data: Dict[str, Any] = {}

    @field_validator("data")
    @classmethod
    def snake_case_keys(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return {to_snake(key): value for key, value in v.items()}
