"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Models Package                                              ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import FamilyCreate, SettlementNoteCreate, CouponUse, etc.      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import (
    VALID_ROLES,
    UserLogin,
    UserCreate,
    UserUpdate,
    PasswordChange,
)

# Famille (prospect / client)
from .family import (
    FamilyStatus,
    ProspectStatus,
    DEFAULT_REMINDER_SUBJECT,
    REMINDER_SUBJECTS,
    FamilyCreate,
    FamilyUpdate,
    FamilyStatusUpdate,
    ProspectStatusUpdate,
    ReminderSubjectUpdate,
    NextActionDateUpdate,
)

# Élève
from .student import (
    SchoolLevel,
    SCHOOL_LEVEL_LABELS,
    StudentStatus,
    StudentCreate,
    StudentUpdate,
)

# Matière
from .subject import (
    SUBJECT_CATEGORIES,
    SubjectCreate,
    SubjectUpdate,
)

# Professeur
from .professor import (
    ProfessorStatus,
    ProfessorCreate,
    ProfessorUpdate,
    ProfessorStatusUpdate,
)

# Note de règlement
from .settlement_note import (
    PaymentMethod,
    PaymentType,
    SettlementNoteStatus,
    SORT_FIELDS,
    SubjectLine,
    SettlementNoteCreate,
    SettlementNoteReplace,
    SettlementNotePatch,
)

# Coupons
from .coupon import (
    CouponSeriesStatus,
    PaymentStatus,
    CouponStatus,
    SessionLocation,
    CouponSeriesCreate,
    CouponSeriesStatusUpdate,
    CouponUse,
    CouponCancelUsage,
    CouponRating,
)

# Rendez-vous
from .rdv import (
    RdvEntityType,
    RdvType,
    RdvStatus,
    RdvCreate,
    RdvUpdate,
)

__all__ = [
    # Auth
    "VALID_ROLES",
    "UserLogin",
    "UserCreate",
    "UserUpdate",
    "PasswordChange",
    # Famille
    "FamilyStatus",
    "ProspectStatus",
    "DEFAULT_REMINDER_SUBJECT",
    "REMINDER_SUBJECTS",
    "FamilyCreate",
    "FamilyUpdate",
    "FamilyStatusUpdate",
    "ProspectStatusUpdate",
    "ReminderSubjectUpdate",
    "NextActionDateUpdate",
    # Élève
    "SchoolLevel",
    "SCHOOL_LEVEL_LABELS",
    "StudentStatus",
    "StudentCreate",
    "StudentUpdate",
    # Matière
    "SUBJECT_CATEGORIES",
    "SubjectCreate",
    "SubjectUpdate",
    # Professeur
    "ProfessorStatus",
    "ProfessorCreate",
    "ProfessorUpdate",
    "ProfessorStatusUpdate",
    # Note de règlement
    "PaymentMethod",
    "PaymentType",
    "SettlementNoteStatus",
    "SORT_FIELDS",
    "SubjectLine",
    "SettlementNoteCreate",
    "SettlementNoteReplace",
    "SettlementNotePatch",
    # Coupons
    "CouponSeriesStatus",
    "PaymentStatus",
    "CouponStatus",
    "SessionLocation",
    "CouponSeriesCreate",
    "CouponSeriesStatusUpdate",
    "CouponUse",
    "CouponCancelUsage",
    "CouponRating",
    # Rendez-vous
    "RdvEntityType",
    "RdvType",
    "RdvStatus",
    "RdvCreate",
    "RdvUpdate",
]
