from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError, handle_store_errors
from app.domain.doctors.models import Doctor, AvailabilityTemplate


class DoctorRepository:
    """Repository for doctor data access operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _validated_availability(availability: Optional[dict]) -> dict:
        try:
            return AvailabilityTemplate.from_mapping(availability or {}).to_storage()
        except PydanticValidationError as e:
            raise ValidationError(
                message="Invalid availability template",
                details={"errors": e.errors(include_url=False, include_context=False)}
            ) from e

    @handle_store_errors("creating doctor")
    async def create(self, doctor_data: dict) -> Doctor:
        """Create a new doctor"""
        doctor_data = dict(doctor_data)
        doctor_data["availability"] = self._validated_availability(doctor_data.get("availability"))
        doctor = Doctor(**doctor_data)
        self.db.add(doctor)
        await self.db.flush()
        await self.db.refresh(doctor)
        return doctor

    @handle_store_errors("fetching doctor")
    async def get_by_id(self, doctor_id: str) -> Optional[Doctor]:
        """Get doctor by ID"""
        result = await self.db.execute(select(Doctor).where(Doctor.id == doctor_id))
        return result.scalar_one_or_none()

    @handle_store_errors("fetching doctors")
    async def get_all(self, active_only: bool = True) -> List[Doctor]:
        """Get doctors in a stable display order"""
        query = select(Doctor)
        if active_only:
            query = query.where(Doctor.is_active == True)  # noqa: E712
        query = query.order_by(Doctor.last_name, Doctor.first_name, Doctor.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    @handle_store_errors("updating doctor")
    async def update(self, doctor_id: str, update_data: dict) -> Optional[Doctor]:
        """Update doctor profile fields"""
        doctor = await self.get_by_id(doctor_id)
        if doctor:
            for key, value in update_data.items():
                if key == "availability":
                    value = self._validated_availability(value)
                if hasattr(doctor, key) and value is not None:
                    setattr(doctor, key, value)
            await self.db.flush()
            await self.db.refresh(doctor)
        return doctor

    async def set_active(self, doctor_id: str, is_active: bool) -> Optional[Doctor]:
        """Activate or deactivate a doctor"""
        return await self.update(doctor_id, {"is_active": is_active})
