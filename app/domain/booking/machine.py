"""
Booking State Machine

Drives the scripted booking dialogue one message at a time:

    initial -> doctor_selected -> patient_info -> date_time -> confirmation

``step`` takes the caller-owned session plus the inbound message and returns
the next session with the reply. The only side effects are awaited store
calls; on confirmation the patient upsert and appointment insert are
committed together in one transaction.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.calendar import display_date, display_time
from app.core.config import settings
from app.core.exceptions import ConflictError, StoreError
from app.domain.appointments.availability import (
    AGENT_HOURS_END, AGENT_HOURS_START, AvailabilityResolver, SlotPolicy
)
from app.domain.appointments.models import AppointmentStatus
from app.domain.appointments.repository import AppointmentRepository
from app.domain.booking import parsing
from app.domain.booking.session import BookingSession, BookingStep, DoctorSnapshot
from app.domain.doctors.models import Doctor
from app.domain.doctors.repository import DoctorRepository
from app.domain.patients.service import PatientService

logger = logging.getLogger(__name__)

DEFAULT_REASON = "General consultation"
SLOT_INTERVAL_MINUTES = 15


class ReplyOutcome(str, Enum):
    PROMPT = "prompt"
    INFO = "info"
    DOCTOR_LIST = "doctor_list"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"
    CONFIRM = "confirm"
    BOOKED = "booked"
    CONFLICT = "conflict"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class BookingReply:
    message: str
    outcome: ReplyOutcome = ReplyOutcome.PROMPT
    available_slots: List[str] = field(default_factory=list)
    appointment_id: Optional[str] = None
    patient_id: Optional[str] = None
    session_expired: bool = False


class BookingStateMachine:
    """Scripted booking dialogue over the record store"""

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = datetime.now,
        session_ttl: Optional[timedelta] = None,
        doctor_list_limit: Optional[int] = None,
        max_suggested_slots: Optional[int] = None,
        duration_minutes: Optional[int] = None
    ):
        self.db = db
        self.clock = clock
        self.session_ttl = session_ttl or timedelta(minutes=settings.BOOKING_SESSION_TTL_MINUTES)
        self.doctor_list_limit = doctor_list_limit or settings.AGENT_DOCTOR_LIST_LIMIT
        self.max_suggested_slots = max_suggested_slots or settings.AGENT_MAX_SUGGESTED_SLOTS
        self.duration_minutes = duration_minutes or settings.AGENT_APPOINTMENT_DURATION_MINUTES
        self.doctor_repo = DoctorRepository(db)
        self.appointment_repo = AppointmentRepository(db)
        self.patient_service = PatientService(db)
        self.resolver = AvailabilityResolver(db)

    async def step(self, session: BookingSession, message: str) -> Tuple[BookingSession, BookingReply]:
        now = self.clock()
        expired = session.is_expired(now, self.session_ttl)
        if expired:
            logger.info(f"Booking session {session.conversation_id} expired at step {session.step.value}")
            session = session.reset(now)

        handlers = {
            BookingStep.INITIAL: self._on_initial,
            BookingStep.DOCTOR_SELECTED: self._on_doctor_selected,
            BookingStep.PATIENT_INFO: self._on_patient_info,
            BookingStep.DATE_TIME: self._on_date_time,
            BookingStep.CONFIRMATION: self._on_confirmation,
        }

        try:
            next_session, reply = await handlers[session.step](session, message.strip(), now)
        except StoreError as e:
            await self.db.rollback()
            logger.error(f"Store failure in booking session {session.conversation_id}: {e.message}")
            next_session = session.reset(now)
            reply = BookingReply(
                message=(
                    "Sorry, I'm having trouble accessing our system right now. "
                    "Please try again later."
                ),
                outcome=ReplyOutcome.ERROR,
            )

        if expired:
            reply.session_expired = True
            reply.message = (
                "Your previous booking session expired, so we're starting over.\n\n" + reply.message
            )
        if next_session.step != session.step:
            logger.info(
                f"Booking session {session.conversation_id}: {session.step.value} -> {next_session.step.value}"
            )
        return next_session, reply

    # initial

    async def _on_initial(self, session: BookingSession, message: str, now: datetime):
        if parsing.is_booking_trigger(message):
            doctors = await self.doctor_repo.get_all(active_only=True)
            if not doctors:
                return session.advance(now), BookingReply(
                    message=(
                        "I'm sorry, no doctors are accepting appointments right now. "
                        "Please try again later."
                    ),
                    outcome=ReplyOutcome.INFO,
                )
            offered = doctors[:self.doctor_list_limit]
            lines = ["I'd be happy to help you book an appointment.", "", "Available doctors:"]
            for index, doctor in enumerate(offered, start=1):
                lines.append(f"{index}. Dr. {doctor.full_name} - {doctor.specialization}")
            lines.append("")
            lines.append(
                "Which doctor would you like to see? Reply with their name or number "
                "(e.g. 'Dr. Lee' or '1')."
            )
            return session.advance(
                now,
                step=BookingStep.DOCTOR_SELECTED,
                offered_doctor_ids=[doctor.id for doctor in offered],
                reason=parsing.extract_reason(message),
            ), BookingReply(message="\n".join(lines), outcome=ReplyOutcome.DOCTOR_LIST)

        if parsing.is_directory_request(message):
            doctors = await self.doctor_repo.get_all(active_only=True)
            if not doctors:
                return session.advance(now), BookingReply(
                    message="I'm sorry, I couldn't find any available doctors right now.",
                    outcome=ReplyOutcome.INFO,
                )
            lines = ["Here are our available doctors:", ""]
            for index, doctor in enumerate(doctors[:self.doctor_list_limit], start=1):
                lines.append(f"{index}. Dr. {doctor.full_name} - {doctor.specialization}")
                lines.append(f"   Email: {doctor.email}")
                if doctor.phone:
                    lines.append(f"   Phone: {doctor.phone}")
                if doctor.hospital_affiliation:
                    lines.append(f"   Hospital: {doctor.hospital_affiliation}")
            if len(doctors) > self.doctor_list_limit:
                lines.append(f"And {len(doctors) - self.doctor_list_limit} more doctors available.")
            lines.append("")
            lines.append("Would you like to book an appointment with any of these doctors?")
            return session.advance(now), BookingReply(message="\n".join(lines), outcome=ReplyOutcome.INFO)

        if parsing.is_greeting(message):
            doctors = await self.doctor_repo.get_all(active_only=True)
            return session.advance(now), BookingReply(
                message=(
                    "Hello! I'm here to help with your medical appointments. "
                    f"We currently have {len(doctors)} doctors available.\n\n"
                    "What can I do for you today?"
                ),
                outcome=ReplyOutcome.INFO,
            )

        return session.advance(now), BookingReply(
            message=(
                "I can help you with:\n"
                "- Booking an appointment (say 'book appointment')\n"
                "- Finding doctor information (say 'doctors')\n\n"
                "What would you like to do?"
            ),
            outcome=ReplyOutcome.INFO,
        )

    # doctor_selected

    async def _offered_doctors(self, session: BookingSession) -> List[Doctor]:
        doctors = []
        for doctor_id in session.offered_doctor_ids:
            doctor = await self.doctor_repo.get_by_id(doctor_id)
            if doctor and doctor.is_active:
                doctors.append(doctor)
        return doctors

    async def _on_doctor_selected(self, session: BookingSession, message: str, now: datetime):
        offered = await self._offered_doctors(session)
        matches = parsing.match_doctors(message, offered)

        selected = None
        if len(matches) == 1:
            selected = matches[0]
        elif len(matches) > 1:
            names = ", ".join(f"Dr. {doctor.full_name}" for doctor in matches)
            return session.advance(now), BookingReply(
                message=f"More than one doctor matches ({names}). Please use the full name or number.",
                outcome=ReplyOutcome.REJECTED,
            )
        else:
            index = parsing.extract_index(message)
            if index is not None and 1 <= index <= len(session.offered_doctor_ids):
                doctor_id = session.offered_doctor_ids[index - 1]
                selected = next((doctor for doctor in offered if doctor.id == doctor_id), None)

        if selected is None:
            return session.advance(now), BookingReply(
                message=(
                    "I couldn't identify which doctor you'd like to see. "
                    "Please reply with the doctor's name or number from the list above."
                ),
                outcome=ReplyOutcome.REJECTED,
            )

        doctor = DoctorSnapshot.from_doctor(selected)
        return session.advance(now, step=BookingStep.PATIENT_INFO, doctor=doctor), BookingReply(
            message=(
                f"Great! You've selected {doctor.display_name} ({doctor.specialization}).\n\n"
                "Now I need your details to book the appointment:\n"
                "- Full name (first and last)\n"
                "- Email address\n"
                "- Phone number\n"
                "- Age (optional)\n"
                "- Gender (optional)\n\n"
                "Example: 'John Smith john@email.com 555-123-4567, 42 years'"
            ),
        )

    # patient_info

    async def _on_patient_info(self, session: BookingSession, message: str, now: datetime):
        draft = parsing.parse_patient_info(message)
        if not draft.is_complete():
            return session.advance(now), BookingReply(
                message=(
                    "I need at least your name and email address. Please provide both in one message.\n\n"
                    "Example: 'John Smith john@email.com 555-123-4567'"
                ),
                outcome=ReplyOutcome.REJECTED,
            )

        return session.advance(now, step=BookingStep.DATE_TIME, patient=draft), BookingReply(
            message=(
                "Thank you! I have your information:\n"
                f"- Name: {draft.full_name}\n"
                f"- Email: {draft.email}\n"
                f"- Phone: {draft.phone or 'Not provided'}\n\n"
                "Now, please tell me your preferred date and time, e.g. "
                "'October 26, 2026 at 2:30 PM' or '2026-10-26 14:30'.\n"
                "Appointments are available 9:00 AM - 5:00 PM in 15-minute slots."
            ),
        )

    # date_time

    def _slot_listing(self, slots: List[str], target_date: date) -> List[str]:
        if not slots:
            return [f"No slots are available on {display_date(target_date)}. Please choose a different date."]
        lines = [f"Available times on {display_date(target_date)}:"]
        lines.extend(f"- {display_time(slot)}" for slot in slots[:self.max_suggested_slots])
        if len(slots) > self.max_suggested_slots:
            lines.append(f"- And {len(slots) - self.max_suggested_slots} more slots available")
        return lines

    async def _on_date_time(self, session: BookingSession, message: str, now: datetime):
        target_date, target_time = parsing.parse_date_time(message)
        if target_date is None or target_time is None:
            return session.advance(now), BookingReply(
                message=(
                    "I couldn't understand the date and time. Please use a format like:\n"
                    "- 'October 26, 2026 at 2:30 PM'\n"
                    "- '2026-10-26 14:30'\n"
                    "- '10/26/2026 9:15 AM'"
                ),
                outcome=ReplyOutcome.REJECTED,
            )

        if target_date <= now.date():
            return session.advance(now), BookingReply(
                message="The appointment date must be in the future. Please choose a date from tomorrow onwards.",
                outcome=ReplyOutcome.REJECTED,
            )

        if not AGENT_HOURS_START <= target_time < AGENT_HOURS_END:
            return session.advance(now), BookingReply(
                message=(
                    "Appointments are only available between 9:00 AM and 5:00 PM. "
                    "Please choose a time within these hours."
                ),
                outcome=ReplyOutcome.REJECTED,
            )

        if int(target_time[3:]) % SLOT_INTERVAL_MINUTES:
            return session.advance(now), BookingReply(
                message=(
                    "Appointments are scheduled in 15-minute intervals. "
                    "Please choose a time like 9:00, 9:15, 9:30 or 9:45."
                ),
                outcome=ReplyOutcome.REJECTED,
            )

        doctor = session.doctor
        slots = await self.resolver.resolve_available_slots(doctor.id, target_date, SlotPolicy.AGENT)

        if target_time not in slots:
            if await self.appointment_repo.has_conflict(doctor.id, target_date, target_time):
                headline = (
                    f"Sorry, {display_time(target_time)} on {display_date(target_date)} is already booked."
                )
            else:
                headline = (
                    f"Sorry, {display_time(target_time)} on {display_date(target_date)} "
                    f"is outside {doctor.display_name}'s hours."
                )
            lines = [headline, ""] + self._slot_listing(slots, target_date)
            if slots:
                lines += ["", "Please choose one of these times."]
            return session.advance(now), BookingReply(
                message="\n".join(lines),
                outcome=ReplyOutcome.UNAVAILABLE,
                available_slots=slots,
            )

        patient = session.patient
        next_session = session.advance(
            now,
            step=BookingStep.CONFIRMATION,
            appointment_date=target_date,
            appointment_time=target_time,
        )
        return next_session, BookingReply(
            message=(
                "That time slot is available.\n\n"
                "Appointment summary:\n"
                f"- Doctor: {doctor.display_name}\n"
                f"- Specialization: {doctor.specialization}\n"
                f"- Patient: {patient.full_name}\n"
                f"- Date: {display_date(target_date)}\n"
                f"- Time: {display_time(target_time)}\n\n"
                "Would you like to confirm this appointment? (yes/no)"
            ),
            outcome=ReplyOutcome.CONFIRM,
        )

    # confirmation

    async def _lost_race(self, session: BookingSession, now: datetime):
        doctor = session.doctor
        target_date = session.appointment_date
        slots = await self.resolver.resolve_available_slots(doctor.id, target_date, SlotPolicy.AGENT)
        lines = [
            f"Sorry, {display_time(session.appointment_time)} on {display_date(target_date)} "
            "was just booked by someone else.",
            "",
        ] + self._slot_listing(slots, target_date)
        lines += ["", "Please choose a different date and time."]
        logger.warning(
            f"Booking session {session.conversation_id} lost slot {target_date} "
            f"{session.appointment_time} with doctor {doctor.id}"
        )
        next_session = session.advance(
            now,
            step=BookingStep.DATE_TIME,
            appointment_date=None,
            appointment_time=None,
        )
        return next_session, BookingReply(
            message="\n".join(lines),
            outcome=ReplyOutcome.CONFLICT,
            available_slots=slots,
        )

    async def _on_confirmation(self, session: BookingSession, message: str, now: datetime):
        if parsing.is_affirmative(message):
            return await self._confirm(session, now)

        if parsing.is_negative(message):
            return session.reset(now), BookingReply(
                message=(
                    "No problem, your appointment booking has been cancelled. "
                    "Say 'book appointment' whenever you'd like to start over."
                ),
                outcome=ReplyOutcome.CANCELLED,
            )

        return session.advance(now), BookingReply(
            message="Please reply 'yes' to confirm the appointment or 'no' to cancel.",
        )

    async def _confirm(self, session: BookingSession, now: datetime):
        doctor = session.doctor
        target_date = session.appointment_date
        target_time = session.appointment_time

        if await self.appointment_repo.has_conflict(doctor.id, target_date, target_time):
            return await self._lost_race(session, now)

        try:
            patient, created = await self.patient_service.get_or_create(session.patient.to_patient_info())
            appointment = await self.appointment_repo.create({
                "patient_id": patient.id,
                "doctor_id": doctor.id,
                "appointment_date": target_date,
                "appointment_time": target_time,
                "duration_minutes": self.duration_minutes,
                "status": AppointmentStatus.SCHEDULED,
                "reason": session.reason or DEFAULT_REASON,
                "ai_agent_booking": True,
            })
            await self.db.commit()
        except ConflictError:
            await self.db.rollback()
            return await self._lost_race(session, now)
        except StoreError:
            raise
        except Exception:
            await self.db.rollback()
            logger.exception(f"Booking failed for session {session.conversation_id}")
            return session.reset(now), BookingReply(
                message=(
                    "Sorry, there was an error booking your appointment. "
                    "Please try again or contact our office directly."
                ),
                outcome=ReplyOutcome.ERROR,
            )

        logger.info(
            f"Booked appointment {appointment.id} for patient {patient.id} "
            f"({'new' if created else 'existing'}) with doctor {doctor.id} on {target_date} {target_time}"
        )
        return session.reset(now), BookingReply(
            message=(
                "Your appointment is booked!\n\n"
                f"- Appointment ID: {appointment.id}\n"
                f"- Patient: {patient.full_name}\n"
                f"- Doctor: {doctor.display_name}\n"
                f"- Date: {display_date(target_date)}\n"
                f"- Time: {display_time(target_time)}\n\n"
                "Is there anything else I can help you with?"
            ),
            outcome=ReplyOutcome.BOOKED,
            appointment_id=appointment.id,
            patient_id=patient.id,
        )
