"""
ABC Cours CRM - Modèles Séries de coupons & Coupons
Un coupon = une heure de cours prépayée, consommée par un professeur.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from config import to_iso


class CouponSeriesStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"


class CouponStatus(str, Enum):
    AVAILABLE = "available"
    USED = "used"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SessionLocation(str, Enum):
    HOME = "home"
    PROFESSOR = "professor"
    ONLINE = "online"


class CouponSeriesCreate(BaseModel):
    """Création manuelle d'une série (hors NDR)"""
    family_id: str
    student_id: str
    subject_id: str
    professor_id: Optional[str] = None
    total_coupons: int = Field(..., ge=1, le=100)
    hourly_rate: float = Field(..., ge=0)
    professor_salary: float = Field(0, ge=0)
    expiration_months: int = Field(12, ge=1, le=24)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    notes: Optional[str] = Field("", max_length=1000)


class CouponSeriesStatusUpdate(BaseModel):
    status: CouponSeriesStatus
    reason: Optional[str] = Field(None, max_length=500)


class CouponUse(BaseModel):
    session_date: str
    session_duration: int = Field(60, ge=30, le=180)
    session_location: SessionLocation = SessionLocation.HOME
    notes: Optional[str] = Field("", max_length=1000)

    @field_validator("session_date")
    @classmethod
    def validate_session_date(cls, v):
        v = to_iso(v)
        if v is None:
            raise ValueError("Date de séance requise")
        return v


class CouponCancelUsage(BaseModel):
    reason: str = Field(..., max_length=500)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        v = v.strip()
        if len(v) < 5:
            raise ValueError("Le motif doit contenir au moins 5 caractères")
        return v


class CouponRating(BaseModel):
    rating_type: str
    score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field("", max_length=500)

    @field_validator("rating_type")
    @classmethod
    def validate_rating_type(cls, v):
        if v not in ("student", "professor"):
            raise ValueError("Type de note invalide: student ou professor")
        return v
