"""
Booking Session

The per-conversation record carried between dialogue steps. It is owned by
the caller (a session store), passed into the state machine and returned
from it; nothing about a conversation lives anywhere else.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.calendar import normalize_hhmm
from app.domain.patients.models import Gender


class BookingStep(str, Enum):
    INITIAL = "initial"
    DOCTOR_SELECTED = "doctor_selected"
    PATIENT_INFO = "patient_info"
    DATE_TIME = "date_time"
    CONFIRMATION = "confirmation"


class DoctorSnapshot(BaseModel):
    """The chosen doctor as shown to the patient"""
    id: str
    first_name: str
    last_name: str
    specialization: str = ""

    @property
    def display_name(self) -> str:
        return f"Dr. {self.first_name} {self.last_name}".strip()

    @classmethod
    def from_doctor(cls, doctor) -> "DoctorSnapshot":
        return cls(
            id=doctor.id,
            first_name=doctor.first_name,
            last_name=doctor.last_name,
            specialization=doctor.specialization or "",
        )


class PatientDraft(BaseModel):
    """Patient details collected during the dialogue"""
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    age: int = 0
    gender: Gender = Gender.OTHER

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_complete(self) -> bool:
        return bool(self.first_name and self.email)

    def to_patient_info(self) -> dict:
        return self.model_dump(mode="json")


class BookingSession(BaseModel):
    conversation_id: str
    step: BookingStep = BookingStep.INITIAL
    offered_doctor_ids: List[str] = Field(default_factory=list)
    doctor: Optional[DoctorSnapshot] = None
    patient: Optional[PatientDraft] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None
    reason: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("appointment_time")
    @classmethod
    def validate_appointment_time(cls, v: Optional[str]) -> Optional[str]:
        return normalize_hhmm(v) if v is not None else v

    def reset(self, now: datetime) -> "BookingSession":
        """A fresh initial-step session for the same conversation"""
        return BookingSession(conversation_id=self.conversation_id, updated_at=now)

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return self.step != BookingStep.INITIAL and now - self.updated_at > ttl

    def advance(self, now: datetime, **changes) -> "BookingSession":
        """Copy with ``changes`` applied and the idle clock restarted"""
        return self.model_copy(update={**changes, "updated_at": now})
