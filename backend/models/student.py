"""
ABC Cours CRM - Modèle Élève
Un élève est toujours rattaché à une famille.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from config import to_iso


class SchoolLevel(str, Enum):
    PRIMAIRE = "primaire"
    COLLEGE = "college"
    LYCEE = "lycee"
    SUPERIEUR = "superieur"


SCHOOL_LEVEL_LABELS = {
    "primaire": "Primaire",
    "college": "Collège",
    "lycee": "Lycée",
    "superieur": "Supérieur",
}


class StudentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    GRADUATED = "graduated"


class CourseLocationType(str, Enum):
    DOMICILE = "domicile"
    PROFESSEUR = "professeur"
    AUTRE = "autre"


class School(BaseModel):
    name: Optional[str] = ""
    level: Optional[SchoolLevel] = None
    grade: Optional[str] = ""


class StudentContact(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None


class CourseLocationAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


class CourseLocation(BaseModel):
    type: CourseLocationType = CourseLocationType.DOMICILE
    address: Optional[CourseLocationAddress] = None
    other_details: Optional[str] = None


class StudentCreate(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    date_of_birth: str
    family_id: str
    school: Optional[School] = None
    contact: Optional[StudentContact] = None
    course_location: Optional[CourseLocation] = None
    availability: Optional[str] = ""
    comments: Optional[str] = ""
    medical_info: Optional[str] = ""
    status: StudentStatus = StudentStatus.ACTIVE
    notes: Optional[str] = ""

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, v):
        v = to_iso(v)
        if v is None:
            raise ValueError("Date de naissance requise")
        return v


class StudentUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    school: Optional[School] = None
    contact: Optional[StudentContact] = None
    course_location: Optional[CourseLocation] = None
    availability: Optional[str] = None
    comments: Optional[str] = None
    medical_info: Optional[str] = None
    status: Optional[StudentStatus] = None
    notes: Optional[str] = None

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, v):
        return to_iso(v)
