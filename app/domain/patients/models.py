from sqlalchemy import Column, String, Date, Boolean, DateTime, ForeignKey, Float, Text, Integer, Enum
from sqlalchemy.sql import func
import uuid
import enum

from app.infrastructure.database import Base


def gen_uuid():
    return str(uuid.uuid4())


class Gender(str, enum.Enum):
    """Gender enumeration"""
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class Patient(Base):
    """Patient record; email, when present, is the deduplication key"""
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=gen_uuid)

    # Identity
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")

    # Contact
    email = Column(String(255), index=True)
    phone = Column(String(50))

    # Demographics
    gender = Column(Enum(Gender), nullable=False, default=Gender.OTHER)
    age = Column(Integer, nullable=False, default=0)
    weight = Column(Float)
    date_of_birth = Column(Date)

    address = Column(Text, default="")
    medical_history = Column(Text, default="")

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PatientInteraction(Base):
    """Log entry for contact with a patient (agent bookings, inquiries)"""
    __tablename__ = "patient_interactions"

    id = Column(String(36), primary_key=True, default=gen_uuid)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)

    interaction_type = Column(String(50), nullable=False)
    interaction_date = Column(DateTime, default=func.now())
    notes = Column(Text, default="")
    follow_up_required = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(DateTime)
