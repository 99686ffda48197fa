"""
ABC Cours CRM - Modèle Professeur
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from config import is_valid_email_format


class ProfessorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    SUSPENDED = "suspended"


VALID_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class TimeSlot(BaseModel):
    start: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v, info):
        start = info.data.get("start")
        if start and v <= start:
            raise ValueError("L'heure de fin doit être après l'heure de début")
        return v


class DayAvailability(BaseModel):
    day: str
    time_slots: List[TimeSlot] = []

    @field_validator("day")
    @classmethod
    def validate_day(cls, v):
        v = v.lower()
        if v not in VALID_DAYS:
            raise ValueError(f"Jour invalide: {v}")
        return v


class ProfessorCreate(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str
    phone: Optional[str] = ""
    postal_code: Optional[str] = ""
    subjects: List[str] = []
    availability: List[DayAvailability] = []
    hourly_rate: float = Field(0, ge=0)
    status: ProfessorStatus = ProfessorStatus.PENDING
    user_id: Optional[str] = None
    notes: Optional[str] = ""

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.lower().strip()
        if not is_valid_email_format(v):
            raise ValueError(f"Format email invalide: {v}")
        return v


class ProfessorUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    postal_code: Optional[str] = None
    subjects: Optional[List[str]] = None
    availability: Optional[List[DayAvailability]] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    user_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return v
        v = v.lower().strip()
        if not is_valid_email_format(v):
            raise ValueError(f"Format email invalide: {v}")
        return v


class ProfessorStatusUpdate(BaseModel):
    status: ProfessorStatus
