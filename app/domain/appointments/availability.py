"""
Appointment Availability

Slot grids and the resolver that turns a doctor's weekly template plus the
booked appointments of a day into an ordered list of bookable start times.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import List, Tuple
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.calendar import weekday_name, to_minutes, from_minutes
from app.domain.appointments.repository import AppointmentRepository
from app.domain.doctors.repository import DoctorRepository

logger = logging.getLogger(__name__)


class SlotPolicy(str, Enum):
    """Named grid policies; one call site always uses one policy"""
    MANUAL = "manual"
    AGENT = "agent"


@dataclass(frozen=True)
class SlotGrid:
    """Start times every ``step_minutes`` within one or more ``(first, last)`` runs"""
    step_minutes: int
    runs: Tuple[Tuple[str, str], ...]

    def times(self) -> List[str]:
        slots = []
        for first, last in self.runs:
            current = to_minutes(first)
            while current <= to_minutes(last):
                slots.append(from_minutes(current))
                current += self.step_minutes
        return slots


GRIDS = {
    # Half-hour slots with the lunch gap removed
    SlotPolicy.MANUAL: SlotGrid(30, (("09:00", "11:30"), ("14:00", "16:30"))),
    # Quarter-hour slots starting inside the 09:00-17:00 window
    SlotPolicy.AGENT: SlotGrid(15, (("09:00", "16:45"),)),
}

AGENT_HOURS_START = "09:00"
AGENT_HOURS_END = "17:00"


def grid_for(policy: SlotPolicy) -> SlotGrid:
    return GRIDS[SlotPolicy(policy)]


class AvailabilityResolver:
    """Computes bookable slots for a doctor on a calendar day"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.doctor_repo = DoctorRepository(db)
        self.appointment_repo = AppointmentRepository(db)

    async def resolve_available_slots(
        self,
        doctor_id: str,
        target_date: date,
        policy: SlotPolicy = SlotPolicy.MANUAL
    ) -> List[str]:
        """Grid times inside the doctor's weekday window minus non-cancelled bookings.

        Unknown or inactive doctors, and configured templates without an
        available entry for the weekday, yield an empty list. An empty
        template falls back to the bare grid.
        """
        doctor = await self.doctor_repo.get_by_id(doctor_id)
        if not doctor or not doctor.is_active:
            return []

        grid_times = grid_for(policy).times()

        template = doctor.availability_template()
        if template.is_configured():
            day = template.for_weekday(weekday_name(target_date))
            if day is None or not day.available:
                return []
            grid_times = [t for t in grid_times if day.contains(t)]

        booked = await self.appointment_repo.get_booked_times(doctor_id, target_date)
        available = sorted(t for t in grid_times if t not in booked)
        logger.debug(
            f"Resolved {len(available)} {SlotPolicy(policy).value} slots for doctor {doctor_id} on {target_date}"
        )
        return available

    async def get_booked_times(self, doctor_id: str, target_date: date) -> List[str]:
        return sorted(await self.appointment_repo.get_booked_times(doctor_id, target_date))
