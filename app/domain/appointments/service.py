"""
Appointments Service Layer

Business logic for manual appointment booking and the appointment lifecycle:
cancellation, rescheduling, consultation start/completion and no-shows.
"""

from typing import Optional, List
from datetime import datetime, date
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.calendar import normalize_hhmm
from app.core.config import settings
from app.core.exceptions import (
    BusinessLogicError, ConflictError, NotFoundError, ValidationError
)
from app.domain.appointments.availability import AvailabilityResolver, SlotPolicy, grid_for
from app.domain.appointments.models import Appointment, AppointmentStatus
from app.domain.appointments.repository import AppointmentRepository
from app.domain.doctors.repository import DoctorRepository
from app.domain.patients.repository import PatientRepository

logger = logging.getLogger(__name__)


def parse_slot_time(value: str) -> str:
    try:
        return normalize_hhmm(value)
    except ValueError as e:
        raise ValidationError(
            message="Invalid appointment time, expected HH:MM",
            details={"appointment_time": value}
        ) from e


class AppointmentService:
    """Service layer for appointment management.

    Every mutating method commits on success and rolls back on failure.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.appointment_repo = AppointmentRepository(db)
        self.doctor_repo = DoctorRepository(db)
        self.patient_repo = PatientRepository(db)
        self.resolver = AvailabilityResolver(db)

    async def _commit(self, appointment: Appointment) -> Appointment:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(appointment)
        return appointment

    async def _validate_slot(
        self,
        doctor_id: str,
        appointment_date: date,
        appointment_time: str,
        policy: Optional[SlotPolicy],
        exclude_id: Optional[str] = None
    ) -> None:
        if appointment_date < date.today():
            raise ValidationError(
                message="Cannot book appointments for past dates",
                details={"appointment_date": str(appointment_date)}
            )

        if policy is not None and appointment_time not in grid_for(policy).times():
            raise ValidationError(
                message=f"Time is not on the {SlotPolicy(policy).value} booking grid",
                details={"appointment_time": appointment_time}
            )

        if await self.appointment_repo.has_conflict(
            doctor_id, appointment_date, appointment_time, exclude_id=exclude_id
        ):
            raise ConflictError(
                message="Time slot not available",
                details={
                    "doctor_id": doctor_id,
                    "appointment_date": str(appointment_date),
                    "appointment_time": appointment_time,
                },
                error_code="SLOT_TAKEN"
            )

    async def create_appointment(
        self,
        patient_id: str,
        doctor_id: str,
        appointment_date: date,
        appointment_time: str,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        policy: Optional[SlotPolicy] = None
    ) -> Appointment:
        """Create a manual (non-agent) appointment"""
        appointment_time = parse_slot_time(appointment_time)

        doctor = await self.doctor_repo.get_by_id(doctor_id)
        if not doctor:
            raise NotFoundError(message="Doctor not found", details={"doctor_id": doctor_id})
        if not doctor.is_active:
            raise ValidationError(
                message="Doctor is not accepting appointments",
                details={"doctor_id": doctor_id}
            )

        patient = await self.patient_repo.get_by_id(patient_id)
        if not patient:
            raise NotFoundError(message="Patient not found", details={"patient_id": patient_id})

        await self._validate_slot(doctor_id, appointment_date, appointment_time, policy)

        try:
            appointment = await self.appointment_repo.create({
                "patient_id": patient_id,
                "doctor_id": doctor_id,
                "appointment_date": appointment_date,
                "appointment_time": appointment_time,
                "duration_minutes": duration_minutes or settings.MANUAL_APPOINTMENT_DURATION_MINUTES,
                "status": AppointmentStatus.SCHEDULED,
                "reason": reason or "",
                "notes": notes or "",
                "ai_agent_booking": False,
            })
        except Exception:
            await self.db.rollback()
            raise
        appointment = await self._commit(appointment)
        logger.info(
            f"Booked appointment {appointment.id} with doctor {doctor_id} "
            f"on {appointment_date} at {appointment_time}"
        )
        return appointment

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Get appointment by ID"""
        appointment = await self.appointment_repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError(
                message="Appointment not found",
                details={"appointment_id": appointment_id}
            )
        return appointment

    async def list_appointments(
        self,
        skip: int = 0,
        limit: int = 100,
        doctor_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        appointment_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
        ai_agent_booking: Optional[bool] = None
    ) -> List[Appointment]:
        """Get appointments with filtering"""
        return await self.appointment_repo.get_all(
            skip=skip,
            limit=limit,
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_date=appointment_date,
            status=status,
            ai_agent_booking=ai_agent_booking
        )

    async def get_available_slots(
        self,
        doctor_id: str,
        target_date: date,
        policy: SlotPolicy = SlotPolicy.MANUAL
    ) -> List[str]:
        """Get bookable start times for a doctor"""
        return await self.resolver.resolve_available_slots(doctor_id, target_date, policy)

    async def _transition(
        self,
        appointment_id: str,
        allowed_from: tuple,
        action: str,
        update_data: dict
    ) -> Appointment:
        appointment = await self.get_appointment(appointment_id)
        if appointment.status not in allowed_from:
            raise BusinessLogicError(
                message=f"Cannot {action} an appointment that is {appointment.status.value}",
                details={"appointment_id": appointment_id, "status": appointment.status.value},
                error_code="INVALID_TRANSITION"
            )
        try:
            appointment = await self.appointment_repo.update(appointment_id, update_data)
        except Exception:
            await self.db.rollback()
            raise
        appointment = await self._commit(appointment)
        logger.info(f"Appointment {appointment_id}: {action} -> {appointment.status.value}")
        return appointment

    async def cancel_appointment(
        self,
        appointment_id: str,
        reason: Optional[str] = None,
        notify_patient: bool = False
    ) -> Appointment:
        """Cancel an appointment; the slot becomes bookable again"""
        return await self._transition(
            appointment_id,
            (
                AppointmentStatus.SCHEDULED,
                AppointmentStatus.RESCHEDULED,
                AppointmentStatus.IN_PROGRESS,
                AppointmentStatus.NO_SHOW,
            ),
            "cancel",
            {
                "status": AppointmentStatus.CANCELLED,
                "cancellation_reason": reason or "",
                "cancelled_at": datetime.now(),
                "notify_patient": notify_patient,
            }
        )

    async def reschedule_appointment(
        self,
        appointment_id: str,
        new_date: date,
        new_time: str,
        reason: Optional[str] = None
    ) -> Appointment:
        """Move an appointment to a new slot, keeping the same record"""
        new_time = parse_slot_time(new_time)
        appointment = await self.get_appointment(appointment_id)

        if appointment.status in (
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
        ):
            raise BusinessLogicError(
                message=f"Cannot reschedule an appointment that is {appointment.status.value}",
                details={"appointment_id": appointment_id, "status": appointment.status.value},
                error_code="INVALID_TRANSITION"
            )

        await self._validate_slot(
            appointment.doctor_id, new_date, new_time, None, exclude_id=appointment_id
        )

        try:
            appointment = await self.appointment_repo.update(appointment_id, {
                "appointment_date": new_date,
                "appointment_time": new_time,
                "status": AppointmentStatus.RESCHEDULED,
                "reschedule_reason": reason or "",
                "rescheduled_at": datetime.now(),
            })
        except Exception:
            await self.db.rollback()
            raise
        appointment = await self._commit(appointment)
        logger.info(f"Rescheduled appointment {appointment_id} to {new_date} {new_time}")
        return appointment

    async def start_consultation(self, appointment_id: str) -> Appointment:
        return await self._transition(
            appointment_id,
            (AppointmentStatus.SCHEDULED, AppointmentStatus.RESCHEDULED),
            "start",
            {
                "status": AppointmentStatus.IN_PROGRESS,
                "consultation_started_at": datetime.now(),
            }
        )

    async def complete_consultation(
        self,
        appointment_id: str,
        consultation_notes: Optional[str] = None,
        diagnosis: Optional[str] = None,
        prescription: Optional[str] = None,
        follow_up_instructions: Optional[str] = None
    ) -> Appointment:
        return await self._transition(
            appointment_id,
            (
                AppointmentStatus.SCHEDULED,
                AppointmentStatus.RESCHEDULED,
                AppointmentStatus.IN_PROGRESS,
            ),
            "complete",
            {
                "status": AppointmentStatus.COMPLETED,
                "consultation_notes": consultation_notes,
                "diagnosis": diagnosis,
                "prescription": prescription,
                "follow_up_instructions": follow_up_instructions,
                "completed_at": datetime.now(),
            }
        )

    async def mark_no_show(self, appointment_id: str) -> Appointment:
        return await self._transition(
            appointment_id,
            (AppointmentStatus.SCHEDULED, AppointmentStatus.RESCHEDULED),
            "mark as no-show",
            {
                "status": AppointmentStatus.NO_SHOW,
                "no_show_at": datetime.now(),
            }
        )
