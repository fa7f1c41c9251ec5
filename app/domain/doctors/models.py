"""
Doctors Domain Models

Doctor profiles and their recurring weekly working-hours template.
"""

from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from app.core.calendar import WEEKDAYS, normalize_hhmm
from app.infrastructure.database import Base
import uuid


def gen_uuid():
    return str(uuid.uuid4())


class Doctor(Base):
    """Doctor profile offered for booking"""
    __tablename__ = "doctors"

    id = Column(String(36), primary_key=True, default=gen_uuid)

    # Identity
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, index=True)
    specialization = Column(String(200), nullable=False, default="")
    license_number = Column(String(100), nullable=False, default="")
    hospital_affiliation = Column(String(200), nullable=False, default="")
    profile_image = Column(String(500))

    # Contact
    email = Column(String(255), nullable=False)
    phone = Column(String(50))

    # Weekday name -> {"available", "start_time", "end_time"}
    availability = Column(JSON, nullable=False, default=dict)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def availability_template(self) -> "AvailabilityTemplate":
        return AvailabilityTemplate.from_mapping(self.availability or {})


class DayAvailability(BaseModel):
    """Working window for one weekday"""
    model_config = ConfigDict(populate_by_name=True)

    available: bool = False
    start_time: str = Field("09:00", alias="startTime")
    end_time: str = Field("17:00", alias="endTime")

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        return normalize_hhmm(v)

    @model_validator(mode="after")
    def validate_time_order(self) -> "DayAvailability":
        if self.available and self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self

    def contains(self, hhmm: str) -> bool:
        """Inclusive bounds; fixed-width HH:MM compares lexicographically."""
        return self.available and self.start_time <= hhmm <= self.end_time


class AvailabilityTemplate(BaseModel):
    """A doctor's recurring weekly availability keyed by weekday name"""
    days: Dict[str, DayAvailability] = Field(default_factory=dict)

    @field_validator("days", mode="before")
    @classmethod
    def normalize_weekdays(cls, v):
        normalized = {}
        for key, value in (v or {}).items():
            day = str(key).strip().lower()
            if day not in WEEKDAYS:
                raise ValueError(f"Unknown weekday {key!r}")
            normalized[day] = value
        return normalized

    @classmethod
    def from_mapping(cls, mapping: dict) -> "AvailabilityTemplate":
        return cls(days=mapping)

    def is_configured(self) -> bool:
        return bool(self.days)

    def for_weekday(self, day: str) -> Optional[DayAvailability]:
        return self.days.get(day)

    def to_storage(self) -> dict:
        return {day: value.model_dump() for day, value in self.days.items()}
