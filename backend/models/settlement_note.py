"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Modèle Note de Règlement (NDR)                              ║
║                                                                              ║
║  Les champs financiers (totaux, salaire, charges, marge) sont TOUJOURS       ║
║  calculés côté serveur, jamais acceptés depuis la requête.                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from config import to_iso


class PaymentMethod(str, Enum):
    CARD = "card"
    CESU = "CESU"
    CHECK = "check"
    TRANSFER = "transfer"
    CASH = "cash"
    PRLV = "PRLV"


class PaymentType(str, Enum):
    AVANCE = "avance"
    CREDIT = "credit"


class SettlementNoteStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


SORT_FIELDS = ["client_name", "due_date", "created_at", "margin_amount", "status"]


class SubjectLine(BaseModel):
    subject_id: str
    hourly_rate: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    professor_salary: float = Field(..., ge=0)


class PaymentSchedule(BaseModel):
    number_of_installments: int = Field(..., ge=1)
    day_of_month: int = Field(..., ge=1, le=31)


class SettlementNoteCreate(BaseModel):
    family_id: str
    student_ids: List[str] = []
    client_name: str = Field(..., min_length=1)
    department: Optional[str] = None
    payment_method: PaymentMethod
    payment_type: PaymentType
    payment_schedule: Optional[PaymentSchedule] = None
    subjects: List[SubjectLine] = Field(..., min_length=1)
    charges: float = Field(0, ge=0)
    due_date: Optional[str] = None
    notes: Optional[str] = ""

    @field_validator("client_name")
    @classmethod
    def strip_client_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Nom du client requis")
        return v

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, v):
        return to_iso(v)


class SettlementNoteReplace(SettlementNoteCreate):
    """Mise à jour complète (PUT): mêmes règles que la création, famille figée."""
    status: Optional[SettlementNoteStatus] = None


class SettlementNotePatch(BaseModel):
    """Mise à jour partielle: champs non financiers uniquement."""
    client_name: Optional[str] = Field(None, min_length=1)
    department: Optional[str] = None
    status: Optional[SettlementNoteStatus] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None

    @field_validator("client_name")
    @classmethod
    def strip_client_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Nom du client requis")
        return v
