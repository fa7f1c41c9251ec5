"""
Appointments Repository Layer

Provides data access operations for appointments, including the single
slot-occupancy predicate shared by every availability and conflict check.
"""

from typing import Optional, List, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from datetime import date
import logging

from app.core.exceptions import ConflictError, handle_store_errors
from app.domain.appointments.models import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)


def occupied_slot_clause(
    doctor_id: str,
    appointment_date: date,
    appointment_time: Optional[str] = None,
):
    """SQL predicate for appointments that hold a doctor's slot.

    Same doctor, same calendar day (date equality, never a datetime range),
    optionally the same HH:MM, and any status other than cancelled.
    """
    conditions = [
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == appointment_date,
        Appointment.status != AppointmentStatus.CANCELLED,
    ]
    if appointment_time is not None:
        conditions.append(Appointment.appointment_time == appointment_time)
    return and_(*conditions)


class AppointmentRepository:
    """Repository for appointment data access operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @handle_store_errors("creating appointment")
    async def create(self, appointment_data: dict) -> Appointment:
        """Create a new appointment.

        A violation of the active-slot unique index means another booking won
        the slot between our check and this insert.
        """
        appointment = Appointment(**appointment_data)
        self.db.add(appointment)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                f"Slot {appointment_data.get('appointment_date')} {appointment_data.get('appointment_time')} "
                f"for doctor {appointment_data.get('doctor_id')} was taken at insert time"
            )
            raise ConflictError(
                message="Time slot not available",
                details={
                    "doctor_id": appointment_data.get("doctor_id"),
                    "appointment_date": str(appointment_data.get("appointment_date")),
                    "appointment_time": appointment_data.get("appointment_time"),
                },
                error_code="SLOT_TAKEN"
            ) from e
        await self.db.refresh(appointment)
        return appointment

    @handle_store_errors("fetching appointment")
    async def get_by_id(self, appointment_id: str) -> Optional[Appointment]:
        """Get appointment by ID"""
        result = await self.db.execute(select(Appointment).where(Appointment.id == appointment_id))
        return result.scalar_one_or_none()

    @handle_store_errors("fetching appointments")
    async def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        patient_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
        appointment_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
        ai_agent_booking: Optional[bool] = None
    ) -> List[Appointment]:
        """Get appointments with filtering"""
        query = select(Appointment)

        if patient_id:
            query = query.where(Appointment.patient_id == patient_id)
        if doctor_id:
            query = query.where(Appointment.doctor_id == doctor_id)
        if appointment_date:
            query = query.where(Appointment.appointment_date == appointment_date)
        if status:
            query = query.where(Appointment.status == status)
        if ai_agent_booking is not None:
            query = query.where(Appointment.ai_agent_booking == ai_agent_booking)

        query = query.order_by(
            Appointment.appointment_date.desc(),
            Appointment.appointment_time.desc()
        ).offset(skip).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    @handle_store_errors("updating appointment")
    async def update(self, appointment_id: str, update_data: dict) -> Optional[Appointment]:
        """Update appointment"""
        result = await self.db.execute(select(Appointment).where(Appointment.id == appointment_id))
        appointment = result.scalar_one_or_none()
        if appointment:
            for key, value in update_data.items():
                if hasattr(appointment, key) and value is not None:
                    setattr(appointment, key, value)
            try:
                await self.db.flush()
            except IntegrityError as e:
                await self.db.rollback()
                raise ConflictError(
                    message="Time slot not available",
                    details={"appointment_id": appointment_id},
                    error_code="SLOT_TAKEN"
                ) from e
            await self.db.refresh(appointment)
        return appointment

    @handle_store_errors("checking appointment conflict")
    async def has_conflict(
        self,
        doctor_id: str,
        appointment_date: date,
        appointment_time: str,
        exclude_id: Optional[str] = None
    ) -> bool:
        """True iff a non-cancelled appointment holds this doctor's slot"""
        query = select(Appointment.id).where(
            occupied_slot_clause(doctor_id, appointment_date, appointment_time)
        )
        if exclude_id:
            query = query.where(Appointment.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.first() is not None

    @handle_store_errors("fetching booked times")
    async def get_booked_times(self, doctor_id: str, appointment_date: date) -> Set[str]:
        """HH:MM values held by non-cancelled appointments on that day"""
        result = await self.db.execute(
            select(Appointment.appointment_time).where(
                occupied_slot_clause(doctor_id, appointment_date)
            )
        )
        return set(result.scalars().all())
