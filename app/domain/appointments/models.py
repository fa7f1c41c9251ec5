"""
Appointments Domain Models

Implements the database model for appointment scheduling, including the
consultation, cancellation, reschedule and no-show metadata written by the
corresponding status transitions.
"""

from sqlalchemy import (
    Column, String, Date, Boolean, DateTime, ForeignKey,
    Integer, Text, Enum, Index, text
)
from sqlalchemy.sql import func
from app.infrastructure.database import Base
import uuid
import enum


def gen_uuid():
    return str(uuid.uuid4())


class AppointmentStatus(str, enum.Enum):
    """Appointment status enumeration"""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


class Appointment(Base):
    """Appointment model for patient-doctor appointments"""
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=gen_uuid)

    # Patient and doctor
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey("doctors.id"), nullable=False)

    # Scheduling
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)  # HH:MM
    duration_minutes = Column(Integer, nullable=False, default=30)

    status = Column(Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED)

    # Visit details
    reason = Column(Text, default="")
    notes = Column(Text, default="")
    ai_agent_booking = Column(Boolean, nullable=False, default=False)

    # Consultation
    consultation_notes = Column(Text)
    diagnosis = Column(Text)
    prescription = Column(Text)
    follow_up_instructions = Column(Text)
    consultation_started_at = Column(DateTime)
    completed_at = Column(DateTime)

    # Cancellation
    cancellation_reason = Column(Text)
    cancelled_at = Column(DateTime)
    notify_patient = Column(Boolean, default=False)

    # Rescheduling
    reschedule_reason = Column(Text)
    rescheduled_at = Column(DateTime)

    # No-show
    no_show_at = Column(DateTime)

    # Audit
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_appointments_doctor_date", "doctor_id", "appointment_date"),
        # At most one non-cancelled appointment per doctor/date/time
        Index(
            "uq_appointments_active_slot",
            "doctor_id", "appointment_date", "appointment_time",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )
