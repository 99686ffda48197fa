"""
ABC Cours CRM - Modèle Matière
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator


SUBJECT_CATEGORIES = ["Scientifique", "Littéraire", "Langues", "Arts", "Sport", "Autre"]


def _check_category(v):
    if v is not None and v not in SUBJECT_CATEGORIES:
        raise ValueError(f"Catégorie invalide: {v}. Valides: {SUBJECT_CATEGORIES}")
    return v


class SubjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field("", max_length=500)
    category: str
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Le nom de la matière est requis")
        return v

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        return _check_category(v)


class SubjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        return _check_category(v)
