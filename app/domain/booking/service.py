"""
Booking Service Layer

Conversation orchestration around the booking state machine, plus the
structured booking and webhook operations used by external agents.
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.calendar import normalize_hhmm
from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.domain.appointments.availability import AvailabilityResolver, SlotPolicy, grid_for
from app.domain.appointments.models import Appointment, AppointmentStatus
from app.domain.appointments.repository import AppointmentRepository
from app.domain.booking.machine import BookingReply, BookingStateMachine, ReplyOutcome
from app.domain.booking.session import BookingSession, BookingStep
from app.domain.booking.store import BookingSessionStore
from app.domain.doctors.models import Doctor
from app.domain.doctors.repository import DoctorRepository
from app.domain.patients.models import Patient
from app.domain.patients.service import PatientService

logger = logging.getLogger(__name__)


class BookingConversationService:
    """Runs one dialogue step per inbound message for a conversation"""

    def __init__(
        self,
        db: AsyncSession,
        store: BookingSessionStore,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.db = db
        self.store = store
        self.clock = clock
        self.machine = BookingStateMachine(db, clock=clock)
        self.patient_service = PatientService(db)

    async def handle_message(self, conversation_id: str, message: str) -> Tuple[BookingSession, BookingReply]:
        async with self.store.lock(conversation_id):
            session = await self.store.get(conversation_id)
            if session is None:
                session = BookingSession(conversation_id=conversation_id, updated_at=self.clock())

            session, reply = await self.machine.step(session, message)

            if session.step == BookingStep.INITIAL:
                await self.store.delete(conversation_id)
            else:
                await self.store.save(session)

        if reply.outcome == ReplyOutcome.BOOKED:
            await self._log_booking(reply)
        return session, reply

    async def reset(self, conversation_id: str) -> bool:
        """Discard a conversation's booking session"""
        async with self.store.lock(conversation_id):
            return await self.store.delete(conversation_id)

    async def _log_booking(self, reply: BookingReply) -> None:
        # The appointment is already committed; a failed log entry must not undo it
        try:
            await self.patient_service.log_interaction(
                reply.patient_id,
                "ai_booking",
                notes=f"Appointment {reply.appointment_id} booked via conversational agent",
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"Could not log booking interaction for patient {reply.patient_id}: {e}")


class AgentBookingService:
    """Structured booking and webhook events for external agents"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctor_repo = DoctorRepository(db)
        self.appointment_repo = AppointmentRepository(db)
        self.patient_service = PatientService(db)
        self.resolver = AvailabilityResolver(db)

    async def book_appointment(
        self,
        patient_info: Dict[str, Any],
        doctor_id: str,
        appointment_date: date,
        appointment_time: str,
        reason: Optional[str] = None
    ) -> Tuple[Appointment, Patient, Doctor]:
        """Upsert the patient, book the slot and log an ``ai_booking`` interaction"""
        try:
            appointment_time = normalize_hhmm(appointment_time)
        except ValueError as e:
            raise ValidationError(
                message="Invalid appointment time, expected HH:MM",
                details={"appointment_time": appointment_time}
            ) from e

        try:
            patient, created = await self.patient_service.get_or_create(patient_info)

            doctor = await self.doctor_repo.get_by_id(doctor_id)
            if not doctor:
                raise NotFoundError(message="Doctor not found", details={"doctor_id": doctor_id})
            if not doctor.is_active:
                raise ValidationError(
                    message="Doctor is not accepting appointments",
                    details={"doctor_id": doctor_id}
                )

            if await self.appointment_repo.has_conflict(doctor_id, appointment_date, appointment_time):
                raise ConflictError(
                    message="Time slot not available",
                    details={
                        "doctor_id": doctor_id,
                        "appointment_date": str(appointment_date),
                        "appointment_time": appointment_time,
                    },
                    error_code="SLOT_TAKEN"
                )

            appointment = await self.appointment_repo.create({
                "patient_id": patient.id,
                "doctor_id": doctor_id,
                "appointment_date": appointment_date,
                "appointment_time": appointment_time,
                "duration_minutes": settings.MANUAL_APPOINTMENT_DURATION_MINUTES,
                "status": AppointmentStatus.SCHEDULED,
                "reason": reason or "",
                "ai_agent_booking": True,
            })
            await self.patient_service.log_interaction(
                patient.id, "ai_booking", notes="Appointment booked via AI agent"
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(appointment)
        logger.info(
            f"Agent booked appointment {appointment.id} for "
            f"{'new' if created else 'existing'} patient {patient.id} with doctor {doctor_id}"
        )
        return appointment, patient, doctor

    async def handle_webhook(self, event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        handlers = {
            "appointment_request": self._appointment_request,
            "availability_check": self._availability_check,
            "patient_inquiry": self._patient_inquiry,
        }
        handler = handlers.get(event_type)
        if handler is None:
            raise ValidationError(
                message="Unknown event type",
                details={"event_type": event_type, "supported": sorted(handlers)}
            )
        return await handler(data)

    @staticmethod
    def _require_date(data: Dict[str, Any], key: str) -> date:
        value = data.get(key)
        try:
            return value if isinstance(value, date) else date.fromisoformat(str(value))
        except ValueError as e:
            raise ValidationError(
                message=f"'{key}' must be a YYYY-MM-DD date",
                details={key: value}
            ) from e

    async def _appointment_request(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Active doctors free at the preferred date/time plus suggested grid times"""
        preferred_date = self._require_date(data, "preferred_date")
        preferred_time = data.get("preferred_time")
        if preferred_time:
            try:
                preferred_time = normalize_hhmm(preferred_time)
            except ValueError as e:
                raise ValidationError(
                    message="'preferred_time' must be HH:MM",
                    details={"preferred_time": preferred_time}
                ) from e

        available_doctors: List[Dict[str, Any]] = []
        if not data.get("preferred_doctor"):
            for doctor in await self.doctor_repo.get_all(active_only=True):
                if preferred_time and await self.appointment_repo.has_conflict(
                    doctor.id, preferred_date, preferred_time
                ):
                    continue
                available_doctors.append({
                    "id": doctor.id,
                    "name": f"Dr. {doctor.full_name}",
                    "specialization": doctor.specialization,
                })

        return {
            "success": True,
            "available_doctors": available_doctors,
            "suggested_times": grid_for(SlotPolicy.MANUAL).times(),
        }

    async def _availability_check(self, data: Dict[str, Any]) -> Dict[str, Any]:
        doctor_id = data.get("doctor_id")
        if not doctor_id:
            raise ValidationError(message="'doctor_id' is required", details={"doctor_id": doctor_id})
        target_date = self._require_date(data, "date")

        available = await self.resolver.resolve_available_slots(doctor_id, target_date, SlotPolicy.MANUAL)
        booked = await self.resolver.get_booked_times(doctor_id, target_date)
        return {
            "success": True,
            "available_times": available,
            "booked_times": booked,
        }

    async def _patient_inquiry(self, data: Dict[str, Any]) -> Dict[str, Any]:
        email = data.get("patient_email")
        patient = await self.patient_service.find_by_email(email) if email else None
        if patient:
            notes = " - ".join(
                part for part in (data.get("inquiry_type"), data.get("message")) if part
            )
            try:
                await self.patient_service.log_interaction(patient.id, "inquiry", notes=notes)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            logger.info(f"Logged inquiry for patient {patient.id}")
        return {
            "success": True,
            "message": "Inquiry logged successfully" if patient else "Inquiry received",
            "patient_found": patient is not None,
        }
