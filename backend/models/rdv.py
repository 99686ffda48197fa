"""
ABC Cours CRM - Modèle Rendez-vous (RDV)
Un RDV admin-famille ou admin-professeur.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from config import to_iso

TIME_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"


class RdvEntityType(str, Enum):
    ADMIN_FAMILY = "admin-family"
    ADMIN_PROFESSOR = "admin-professor"


class RdvType(str, Enum):
    PHYSIQUE = "physique"
    VISIO = "visio"


class RdvStatus(str, Enum):
    PLANNED = "planned"
    DONE = "done"


def _normalize_time(v: Optional[str]) -> Optional[str]:
    # "9:05" -> "09:05" pour que le tri sur la chaîne suive l'heure
    if v is None:
        return v
    hours, minutes = v.split(":")
    return f"{int(hours):02d}:{minutes}"


class RdvCreate(BaseModel):
    """La date est un jour calendaire, l'heure est portée par `time`."""
    entity_type: RdvEntityType = RdvEntityType.ADMIN_FAMILY
    family_id: Optional[str] = None
    professor_id: Optional[str] = None
    assigned_admin_id: Optional[str] = None
    date: str
    time: str = Field(..., pattern=TIME_PATTERN)
    type: RdvType
    notes: Optional[str] = Field("", max_length=1000)
    status: RdvStatus = RdvStatus.PLANNED

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        v = to_iso(v.strip()[:10])
        if v is None:
            raise ValueError("Date du rendez-vous requise")
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return _normalize_time(v)

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v):
        return (v or "").strip()


class RdvUpdate(BaseModel):
    """Champs modifiables. Le contexte (famille / professeur) est figé."""
    assigned_admin_id: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    type: Optional[RdvType] = None
    notes: Optional[str] = Field(None, max_length=1000)
    status: Optional[RdvStatus] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        if v is None:
            return v
        v = to_iso(v.strip()[:10])
        if v is None:
            raise ValueError("Date du rendez-vous requise")
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return _normalize_time(v)

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v):
        return v.strip() if v is not None else v
