"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Génération des séries de coupons                            ║
║                                                                              ║
║  CODE COUPON: <6 premiers caractères de la série>-<numéro encodé>            ║
║  ex: "3F9A1C-00A"                                                            ║
║                                                                              ║
║  L'alphabet exclut I et O (confusion avec 1 et 0).                           ║
║  Le numéro est paddé à 3 caractères minimum.                                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

from config import db, now_iso, add_months, COUPON_SERIES_EXPIRATION_MONTHS

logger = logging.getLogger("coupon_generation")

BASE32_CHARS = "0123456789ABCDEFGHJKLMNPQRSTUVWXYZ"
BASE32_LENGTH = len(BASE32_CHARS)

CODE_MIN_LENGTH = 3
MAX_CODE_ATTEMPTS = 10


class CouponCodeError(ValueError):
    """Raised when a coupon code cannot be decoded"""
    pass


# ════════════════════════════════════════════════════════════════════════════
# CODES
# ════════════════════════════════════════════════════════════════════════════

def decimal_to_base32(decimal: int, min_length: int = 1) -> str:
    """Encode un entier positif avec l'alphabet coupon, paddé à gauche par des 0."""
    if decimal < 0:
        raise ValueError("Le numéro de coupon doit être positif")

    result = ""
    num = decimal
    while num > 0:
        result = BASE32_CHARS[num % BASE32_LENGTH] + result
        num //= BASE32_LENGTH

    return (result or "0").rjust(min_length, "0")


def base32_to_decimal(value: str) -> int:
    result = 0
    for char in value:
        index = BASE32_CHARS.find(char)
        if index == -1:
            raise CouponCodeError(f"Caractère invalide dans le code: {char}")
        result = result * BASE32_LENGTH + index
    return result


def generate_coupon_code(series_id: str, coupon_number: int) -> str:
    prefix = series_id[:6].upper()
    return f"{prefix}-{decimal_to_base32(coupon_number, CODE_MIN_LENGTH)}"


def decode_coupon_code(code: str) -> int:
    """
    Retourne le numéro encodé dans un code coupon.
    Accepte aussi les codes avec suffixe d'unicité ("PREFIX-NUM-SUFFIX").
    """
    parts = (code or "").strip().upper().split("-")
    if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
        raise CouponCodeError("Format de code invalide")
    return base32_to_decimal(parts[1])


def _base36(value: int) -> str:
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while value > 0:
        out = alphabet[value % 36] + out
        value //= 36
    return out or "0"


async def generate_unique_coupon_code(
    series_id: str,
    coupon_number: int,
    reserved: Optional[Set[str]] = None
) -> str:
    """
    Cherche un code libre en décalant le numéro (10 tentatives max),
    puis ajoute un suffixe horodaté.
    """
    reserved = reserved if reserved is not None else set()

    for attempt in range(MAX_CODE_ATTEMPTS):
        code = generate_coupon_code(series_id, coupon_number + attempt)
        if code in reserved:
            continue
        existing = await db.coupons.find_one({"code": code}, {"_id": 1})
        if not existing:
            return code
        logger.info(f"[COUPON_CODE] {code} existe déjà, tentative {attempt + 2}")

    base = generate_coupon_code(series_id, coupon_number)
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    while True:
        code = f"{base}-{_base36(millis)[-4:].upper()}"
        if code not in reserved and not await db.coupons.find_one({"code": code}, {"_id": 1}):
            logger.warning(f"[COUPON_CODE] numéros épuisés, code suffixé {code}")
            return code
        millis += 1


# ════════════════════════════════════════════════════════════════════════════
# SÉRIES
# ════════════════════════════════════════════════════════════════════════════

def coupon_count_for_note(note: dict) -> int:
    """Σ ceil(quantité) × nombre de bénéficiaires (au moins 1: la famille)."""
    beneficiaries = max(1, len(note.get("student_ids") or []))
    hours = sum(math.ceil(float(s.get("quantity", 0))) for s in note.get("subjects", []))
    return hours * beneficiaries


async def create_coupons(series: dict, count: int) -> List[dict]:
    """Crée `count` coupons disponibles pour la série (numérotés à partir de 1)."""
    coupons = []
    reserved: Set[str] = set()
    for number in range(1, count + 1):
        code = await generate_unique_coupon_code(series["id"], number, reserved)
        reserved.add(code)
        coupon = {
            "id": str(uuid.uuid4()),
            "coupon_series_id": series["id"],
            "family_id": series["family_id"],
            "number": number,
            "code": code,
            "status": "available",
            "used_date": None,
            "session_date": None,
            "session_duration": None,
            "session_location": None,
            "used_by": None,
            "rating": {},
            "notes": "",
            "created_at": now_iso(),
            "updated_at": now_iso(),
        }
        await db.coupons.insert_one(coupon)
        coupon.pop("_id", None)
        coupons.append(coupon)
    return coupons


def build_series(
    family_id: str,
    student_ids: List[str],
    subject_id: str,
    total_coupons: int,
    hourly_rate: float,
    professor_salary: float = 0,
    professor_id: Optional[str] = None,
    settlement_note_id: Optional[str] = None,
    expiration_months: int = COUPON_SERIES_EXPIRATION_MONTHS,
    payment_status: str = "pending",
    notes: str = "",
    created_by: Optional[str] = None,
) -> dict:
    purchase = datetime.now(timezone.utc)
    return {
        "id": str(uuid.uuid4()),
        "settlement_note_id": settlement_note_id,
        "family_id": family_id,
        "student_ids": list(student_ids),
        "subject_id": subject_id,
        "professor_id": professor_id,
        "total_coupons": total_coupons,
        "used_coupons": 0,
        "hourly_rate": hourly_rate,
        "professor_salary": professor_salary,
        "total_amount": round(total_coupons * hourly_rate, 2),
        "purchase_date": purchase.isoformat(),
        "expiration_date": add_months(purchase, expiration_months).isoformat(),
        "status": "active",
        "payment_status": payment_status,
        "notes": notes or "",
        "created_by": created_by,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }


async def generate_series_for_note(note: dict, created_by: Optional[str]) -> Tuple[dict, List[dict]]:
    """Génère la série de coupons d'une note de règlement et ses coupons."""
    if not note.get("subjects"):
        raise ValueError("Au moins une matière requise pour générer les coupons")

    first = note["subjects"][0]
    series = build_series(
        family_id=note["family_id"],
        student_ids=note.get("student_ids") or [],
        subject_id=first["subject_id"],
        total_coupons=coupon_count_for_note(note),
        hourly_rate=float(first["hourly_rate"]),
        professor_salary=float(first["professor_salary"]),
        settlement_note_id=note["id"],
        created_by=created_by,
    )
    series["subjects"] = note["subjects"]

    await db.coupon_series.insert_one(series)
    series.pop("_id", None)

    coupons = await create_coupons(series, series["total_coupons"])

    logger.info(
        f"[COUPON_SERIES] {series['total_coupons']} coupons générés "
        f"pour la NDR {note['id']} (série {series['id']})"
    )
    return series, coupons
