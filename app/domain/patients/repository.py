from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.exceptions import handle_store_errors
from app.domain.patients.models import Patient, PatientInteraction


class PatientRepository:
    """Repository for patient data access operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @handle_store_errors("creating patient")
    async def create(self, patient_data: dict) -> Patient:
        """Create a new patient"""
        patient = Patient(**patient_data)
        self.db.add(patient)
        await self.db.flush()
        await self.db.refresh(patient)
        return patient

    @handle_store_errors("fetching patient")
    async def get_by_id(self, patient_id: str) -> Optional[Patient]:
        """Get patient by ID"""
        result = await self.db.execute(select(Patient).where(Patient.id == patient_id))
        return result.scalar_one_or_none()

    @handle_store_errors("fetching patient by email")
    async def get_by_email(self, email: str) -> Optional[Patient]:
        """Exact, case-sensitive email match; oldest record wins"""
        result = await self.db.execute(
            select(Patient)
            .where(Patient.email == email)
            .order_by(Patient.created_at, Patient.id)
            .limit(1)
        )
        return result.scalar_one_or_none()


class PatientInteractionRepository:
    """Repository for patient interaction log entries"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @handle_store_errors("creating patient interaction")
    async def create(self, interaction_data: dict) -> PatientInteraction:
        interaction = PatientInteraction(**interaction_data)
        self.db.add(interaction)
        await self.db.flush()
        await self.db.refresh(interaction)
        return interaction

    @handle_store_errors("fetching patient interactions")
    async def get_by_patient_id(self, patient_id: str) -> List[PatientInteraction]:
        result = await self.db.execute(
            select(PatientInteraction)
            .where(PatientInteraction.patient_id == patient_id)
            .order_by(PatientInteraction.interaction_date.desc())
        )
        return list(result.scalars().all())
