"""
Configuration et utilitaires partagés
"""

import os
import re
import calendar
import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional, Union
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'abc_cours_crm')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# Sessions / API
SESSION_TTL_DAYS = int(os.environ.get('SESSION_TTL_DAYS', '7'))
CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]

# Tâches planifiées
SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() in ('1', 'true', 'yes')

# Séries de coupons
COUPON_SERIES_EXPIRATION_MONTHS = int(os.environ.get('COUPON_SERIES_EXPIRATION_MONTHS', '12'))


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: Union[str, datetime]) -> datetime:
    """
    Convertit une date ISO (ou un datetime) en datetime UTC.
    Accepte "2024-09-30", "2024-09-30T10:00:00Z", "2024-09-30T10:00:00+02:00".
    Lève ValueError si le format est invalide.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: Optional[Union[str, datetime]]) -> Optional[str]:
    """Normalise une date en ISO UTC (format de stockage). None reste None."""
    if value is None or value == "":
        return None
    return parse_iso(value).isoformat()


def add_months(dt: datetime, months: int) -> datetime:
    """Ajoute N mois à une date (jour borné à la fin du mois cible)."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def is_valid_email_format(email: str) -> bool:
    """Vérifie le format email basique"""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def get_department_from_postal_code(postal_code: Optional[str]) -> str:
    """
    Extrait le code département depuis un code postal français.

    "75001" -> "75" (métropole, 2 chiffres)
    "97110" -> "971" (DOM, 3 chiffres)
    "98800" -> "988" (COM, 3 chiffres)
    "" / invalide -> ""
    """
    if not postal_code:
        return ""

    code = postal_code.strip()
    if len(code) < 2 or not code[:2].isdigit():
        return ""

    if code.startswith(("97", "98")) and len(code) >= 3:
        return code[:3]

    return code[:2]
