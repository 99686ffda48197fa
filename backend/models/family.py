"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Modèle Famille (prospect / client)                          ║
║                                                                              ║
║  RÈGLES DE STATUT:                                                           ║
║  - Une famille est créée en "prospect"                                       ║
║  - Elle passe "client" dès qu'une note de règlement existe                   ║
║  - Elle redevient "prospect" quand sa dernière note est supprimée            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from config import is_valid_email_format, to_iso


class FamilyStatus(str, Enum):
    PROSPECT = "prospect"
    CLIENT = "client"


class ProspectStatus(str, Enum):
    EN_REFLEXION = "en_reflexion"
    INTERESSE_PROF_A_TROUVER = "interesse_prof_a_trouver"
    INJOIGNABLE = "injoignable"
    NDR_EDITEE = "ndr_editee"
    PREMIER_COURS_EFFECTUE = "premier_cours_effectue"
    RDV_PROSPECT = "rdv_prospect"
    NE_VA_PAS_CONVERTIR = "ne_va_pas_convertir"


DEFAULT_REMINDER_SUBJECT = "Actions à définir"

REMINDER_SUBJECTS = [
    "Actions à définir",
    "Présenter nos cours",
    "Envoyer le devis",
    "Relancer après devis",
    "Planifier rendez-vous",
    "Editer la NDR",
    "Négocier les tarifs",
    "Organiser cours d'essai",
    "Confirmer les disponibilités",
    "Suivre satisfaction parent",
]

VALID_GENDERS = ["M.", "Mme"]


def _check_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.lower().strip()
    if not is_valid_email_format(v):
        raise ValueError(f"Format email invalide: {v}")
    return v


class Address(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=2)


class PrimaryContact(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    primary_phone: str = Field(..., min_length=1)
    secondary_phone: Optional[str] = None
    email: str
    date_of_birth: Optional[str] = None
    relationship: str = "Contact principal"
    gender: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)

    @field_validator("gender")
    @classmethod
    def validate_gender(cls, v):
        if v not in VALID_GENDERS:
            raise ValueError(f"Civilité invalide: {v}. Valides: {VALID_GENDERS}")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, v):
        return to_iso(v)


class SecondaryContact(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    relationship: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v) if v else None


class BillingAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


class CompanyInfo(BaseModel):
    urssaf_number: Optional[str] = None
    siret_number: Optional[str] = None
    ce_number: Optional[str] = None


class FamilyCreate(BaseModel):
    """Création d'une famille (toujours en prospect)"""
    address: Address
    primary_contact: PrimaryContact
    secondary_contact: Optional[SecondaryContact] = None
    billing_address: Optional[BillingAddress] = None
    company_info: Optional[CompanyInfo] = None
    prospect_status: Optional[ProspectStatus] = None
    next_action_reminder_subject: str = DEFAULT_REMINDER_SUBJECT
    next_action_date: Optional[str] = None
    source: Optional[str] = ""
    notes: Optional[str] = ""

    @field_validator("next_action_reminder_subject")
    @classmethod
    def validate_reminder(cls, v):
        if v not in REMINDER_SUBJECTS:
            raise ValueError(f"Objet de rappel invalide: {v}")
        return v

    @field_validator("next_action_date")
    @classmethod
    def validate_next_action_date(cls, v):
        return to_iso(v)


class FamilyUpdate(BaseModel):
    """Mise à jour descriptive (le statut n'est pas modifiable ici)"""
    address: Optional[Address] = None
    primary_contact: Optional[PrimaryContact] = None
    secondary_contact: Optional[SecondaryContact] = None
    billing_address: Optional[BillingAddress] = None
    company_info: Optional[CompanyInfo] = None
    source: Optional[str] = None
    notes: Optional[str] = None


class FamilyStatusUpdate(BaseModel):
    status: FamilyStatus


class ProspectStatusUpdate(BaseModel):
    prospect_status: Optional[ProspectStatus] = None


class ReminderSubjectUpdate(BaseModel):
    next_action_reminder_subject: Optional[str] = None

    @field_validator("next_action_reminder_subject")
    @classmethod
    def validate_reminder(cls, v):
        if v is not None and v not in REMINDER_SUBJECTS:
            raise ValueError(f"Objet de rappel invalide: {v}")
        return v


class NextActionDateUpdate(BaseModel):
    next_action_date: Optional[str] = None

    @field_validator("next_action_date")
    @classmethod
    def validate_next_action_date(cls, v):
        return to_iso(v)
