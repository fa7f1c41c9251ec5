import pytest
from datetime import date, timedelta
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import uuid4

from app.core.exceptions import ValidationError
from app.domain.appointments.availability import AvailabilityResolver, SlotPolicy, grid_for
from app.domain.appointments.models import AppointmentStatus
from app.domain.appointments.repository import AppointmentRepository
from app.domain.doctors.models import Doctor
from app.domain.doctors.repository import DoctorRepository
from app.domain.patients.models import Patient

NEXT_MONDAY = date(2026, 10, 26)
NEXT_TUESDAY = NEXT_MONDAY + timedelta(days=1)
NEXT_SATURDAY = NEXT_MONDAY + timedelta(days=5)


async def book(db: AsyncSession, doctor: Doctor, patient: Patient, hhmm: str, day=NEXT_MONDAY):
    appointment = await AppointmentRepository(db).create({
        "patient_id": patient.id,
        "doctor_id": doctor.id,
        "appointment_date": day,
        "appointment_time": hhmm,
        "status": AppointmentStatus.SCHEDULED,
    })
    await db.commit()
    return appointment


@pytest.mark.unit
class TestSlotGrids:

    def test_manual_grid_skips_lunch(self) -> None:
        times = grid_for(SlotPolicy.MANUAL).times()

        assert times == [
            "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
            "14:00", "14:30", "15:00", "15:30", "16:00", "16:30",
        ]

    def test_agent_grid_is_quarter_hourly_inside_working_hours(self) -> None:
        times = grid_for(SlotPolicy.AGENT).times()

        assert times[0] == "09:00"
        assert times[-1] == "16:45"
        assert len(times) == 32
        assert "17:00" not in times


@pytest.mark.integration
@pytest.mark.appointments
class TestAvailabilityResolver:
    """Working-hours grid minus non-cancelled bookings."""

    async def test_unknown_doctor_has_no_slots(self, db_session: AsyncSession) -> None:
        resolver = AvailabilityResolver(db_session)

        assert await resolver.resolve_available_slots(str(uuid4()), NEXT_MONDAY) == []

    async def test_inactive_doctor_has_no_slots(self, db_session: AsyncSession, doctors: List[Doctor]) -> None:
        retired = doctors[3]
        resolver = AvailabilityResolver(db_session)

        assert await resolver.resolve_available_slots(retired.id, NEXT_MONDAY) == []

    async def test_template_window_restricts_grid(self, db_session: AsyncSession, doctors: List[Doctor]) -> None:
        lee = doctors[2]
        resolver = AvailabilityResolver(db_session)

        manual = await resolver.resolve_available_slots(lee.id, NEXT_MONDAY, SlotPolicy.MANUAL)
        agent = await resolver.resolve_available_slots(lee.id, NEXT_MONDAY, SlotPolicy.AGENT)

        assert manual == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]
        # 12:00 is inside the inclusive window
        assert agent[0] == "09:00"
        assert agent[-1] == "12:00"
        assert len(agent) == 13

    async def test_unavailable_or_missing_weekday(self, db_session: AsyncSession, doctors: List[Doctor]) -> None:
        lee = doctors[2]
        resolver = AvailabilityResolver(db_session)

        assert await resolver.resolve_available_slots(lee.id, NEXT_TUESDAY) == []
        assert await resolver.resolve_available_slots(lee.id, NEXT_SATURDAY) == []

    async def test_empty_template_uses_bare_grid(self, db_session: AsyncSession, doctors: List[Doctor]) -> None:
        johnson = doctors[1]
        resolver = AvailabilityResolver(db_session)

        slots = await resolver.resolve_available_slots(johnson.id, NEXT_SATURDAY, SlotPolicy.MANUAL)

        assert slots == grid_for(SlotPolicy.MANUAL).times()

    async def test_legacy_template_keys_are_normalised(self, db_session: AsyncSession, doctors: List[Doctor]) -> None:
        chen = doctors[0]

        assert chen.availability["monday"] == {"available": True, "start_time": "09:00", "end_time": "17:00"}
        slots = await AvailabilityResolver(db_session).resolve_available_slots(chen.id, NEXT_MONDAY, SlotPolicy.AGENT)
        assert slots == grid_for(SlotPolicy.AGENT).times()

    async def test_booked_slots_are_removed(
        self,
        db_session: AsyncSession,
        doctors: List[Doctor],
        patient: Patient
    ) -> None:
        lee = doctors[2]
        await book(db_session, lee, patient, "09:00")
        resolver = AvailabilityResolver(db_session)

        slots = await resolver.resolve_available_slots(lee.id, NEXT_MONDAY, SlotPolicy.MANUAL)

        assert "09:00" not in slots
        assert "09:30" in slots
        assert slots == sorted(slots)
        # Another day is untouched
        assert "09:00" in await resolver.resolve_available_slots(lee.id, NEXT_MONDAY + timedelta(days=7))

    async def test_cancelled_appointment_frees_slot(
        self,
        db_session: AsyncSession,
        doctors: List[Doctor],
        patient: Patient
    ) -> None:
        lee = doctors[2]
        appointment = await book(db_session, lee, patient, "10:00")
        repo = AppointmentRepository(db_session)
        resolver = AvailabilityResolver(db_session)

        assert await repo.has_conflict(lee.id, NEXT_MONDAY, "10:00")
        await repo.update(appointment.id, {"status": AppointmentStatus.CANCELLED})
        await db_session.commit()

        assert not await repo.has_conflict(lee.id, NEXT_MONDAY, "10:00")
        assert "10:00" in await resolver.resolve_available_slots(lee.id, NEXT_MONDAY)

    async def test_rescheduled_status_still_holds_slot(
        self,
        db_session: AsyncSession,
        doctors: List[Doctor],
        patient: Patient
    ) -> None:
        lee = doctors[2]
        appointment = await book(db_session, lee, patient, "11:00")
        repo = AppointmentRepository(db_session)
        await repo.update(appointment.id, {"status": AppointmentStatus.RESCHEDULED})
        await db_session.commit()

        assert await repo.has_conflict(lee.id, NEXT_MONDAY, "11:00")
        assert not await repo.has_conflict(lee.id, NEXT_MONDAY, "11:00", exclude_id=appointment.id)

    async def test_resolver_is_deterministic(
        self,
        db_session: AsyncSession,
        doctors: List[Doctor],
        patient: Patient
    ) -> None:
        lee = doctors[2]
        await book(db_session, lee, patient, "09:15")
        resolver = AvailabilityResolver(db_session)

        first = await resolver.resolve_available_slots(lee.id, NEXT_MONDAY, SlotPolicy.AGENT)
        second = await resolver.resolve_available_slots(lee.id, NEXT_MONDAY, SlotPolicy.AGENT)

        assert first == second
        assert "09:15" not in first


@pytest.mark.integration
class TestAvailabilityTemplateValidation:

    async def test_unknown_weekday_is_rejected(self, db_session: AsyncSession) -> None:
        with pytest.raises(ValidationError):
            await DoctorRepository(db_session).create({
                "first_name": "Ada",
                "last_name": "Byron",
                "email": "ada@clinic.test",
                "availability": {"funday": {"available": True}},
            })

    async def test_malformed_time_is_rejected(self, db_session: AsyncSession) -> None:
        with pytest.raises(ValidationError):
            await DoctorRepository(db_session).create({
                "first_name": "Ada",
                "last_name": "Byron",
                "email": "ada@clinic.test",
                "availability": {"monday": {"available": True, "start_time": "nine", "end_time": "17:00"}},
            })


@pytest.mark.integration
@pytest.mark.appointments
class TestDoctorDeactivation:

    async def test_deactivated_doctor_leaves_directory_and_has_no_slots(
        self,
        db_session: AsyncSession,
        doctors: List[Doctor]
    ) -> None:
        lee_id = doctors[2].id
        repo = DoctorRepository(db_session)

        await repo.set_active(lee_id, False)
        await db_session.commit()

        active = await repo.get_all(active_only=True)
        assert lee_id not in [doctor.id for doctor in active]
        assert len(await repo.get_all(active_only=False)) == 4
        assert await AvailabilityResolver(db_session).resolve_available_slots(lee_id, NEXT_MONDAY) == []

    async def test_reactivated_doctor_is_bookable_again(
        self,
        db_session: AsyncSession,
        doctors: List[Doctor]
    ) -> None:
        retired_id = doctors[3].id
        repo = DoctorRepository(db_session)

        doctor = await repo.set_active(retired_id, True)
        await db_session.commit()

        assert doctor.is_active
        slots = await AvailabilityResolver(db_session).resolve_available_slots(retired_id, NEXT_MONDAY)
        assert slots == grid_for(SlotPolicy.MANUAL).times()
