from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.domain.patients.models import Patient, PatientInteraction, Gender
from app.domain.patients.repository import PatientRepository, PatientInteractionRepository

logger = logging.getLogger(__name__)


class PatientService:
    """Service layer for patient lookup, upsert and interaction logging.

    Methods here only flush; the caller owns the transaction and commits
    once the whole booking unit of work has succeeded.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.patient_repo = PatientRepository(db)
        self.interaction_repo = PatientInteractionRepository(db)

    async def get_or_create(self, patient_info: Dict[str, Any]) -> Tuple[Patient, bool]:
        """Find a patient by email or create one.

        Returns ``(patient, created)``. Without an email there is nothing to
        deduplicate on, so a new record is always created.
        """
        email = patient_info.get("email") or None
        if email:
            existing = await self.patient_repo.get_by_email(email)
            if existing:
                return existing, False

        gender = patient_info.get("gender") or Gender.OTHER
        patient = await self.patient_repo.create({
            "first_name": patient_info.get("first_name") or "",
            "last_name": patient_info.get("last_name") or "",
            "email": email,
            "phone": patient_info.get("phone") or None,
            "gender": Gender(gender),
            "age": patient_info.get("age") or 0,
            "weight": patient_info.get("weight"),
            "date_of_birth": patient_info.get("date_of_birth"),
        })
        logger.info(f"Created patient {patient.id} for {email or 'anonymous booking'}")
        return patient, True

    async def log_interaction(
        self,
        patient_id: str,
        interaction_type: str,
        notes: str = "",
        follow_up_required: bool = False,
    ) -> PatientInteraction:
        return await self.interaction_repo.create({
            "patient_id": patient_id,
            "interaction_type": interaction_type,
            "notes": notes,
            "follow_up_required": follow_up_required,
        })

    async def get_interactions(self, patient_id: str) -> List[PatientInteraction]:
        return await self.interaction_repo.get_by_patient_id(patient_id)

    async def find_by_email(self, email: str) -> Optional[Patient]:
        return await self.patient_repo.get_by_email(email)
