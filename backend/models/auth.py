"""
ABC Cours CRM - Modeles Auth & Utilisateurs
Role + Permission hybrid model.
Roles are presets. Permissions are the real authority.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict

from config import is_valid_email_format


VALID_ROLES = ["admin", "professor"]


class UserLogin(BaseModel):
    email: str
    password: str


class UserCreate(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: Optional[str] = ""
    role: str = "professor"
    permissions: Optional[Dict[str, bool]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.lower().strip()
        if not is_valid_email_format(v):
            raise ValueError(f"Format email invalide: {v}")
        return v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in VALID_ROLES:
            raise ValueError(f"Role invalide: {v}. Valides: {VALID_ROLES}")
        return v


class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    permissions: Optional[Dict[str, bool]] = None
    is_active: Optional[bool] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in VALID_ROLES:
            raise ValueError(f"Role invalide: {v}")
        return v


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
