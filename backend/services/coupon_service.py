"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Consommation des coupons                                    ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - Un coupon "available" ne peut être utilisé que si sa série est "active"   ║
║    et non expirée                                                            ║
║  - Seul le professeur assigné à la série ou un admin valide un coupon        ║
║  - used_coupons suit exactement le nombre de coupons "used" de la série      ║
║  - Série "completed" dès que used_coupons >= total_coupons                   ║
║  - Annulation d'usage: retour "available", série "completed" -> "active"     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from config import db, now_iso, parse_iso
from services.event_logger import log_event
from services.permissions import is_admin

logger = logging.getLogger("coupon_service")


class CouponError(Exception):
    """Business rule violation on a coupon or a series"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ════════════════════════════════════════════════════════════════════════════
# SÉRIES: CHAMPS DÉRIVÉS
# ════════════════════════════════════════════════════════════════════════════

def is_series_expired(series: dict, now: Optional[datetime] = None) -> bool:
    expiration = series.get("expiration_date")
    if not expiration:
        return False
    now = now or datetime.now(timezone.utc)
    return parse_iso(expiration) < now


def with_derived_fields(series: dict) -> dict:
    """Ajoute remaining_coupons, usage_percentage, is_expired, is_completed."""
    total = int(series.get("total_coupons") or 0)
    used = int(series.get("used_coupons") or 0)
    series["remaining_coupons"] = max(0, total - used)
    series["usage_percentage"] = round(used / total * 100, 1) if total > 0 else 0
    series["is_expired"] = is_series_expired(series)
    series["is_completed"] = used >= total
    return series


async def professor_for_user(user: dict) -> Optional[dict]:
    """Fiche professeur liée à un compte utilisateur (rôle professor)."""
    return await db.professors.find_one({"user_id": user.get("id")}, {"_id": 0})


async def is_assigned_professor(user: dict, series: dict) -> bool:
    if user.get("role") != "professor" or not series.get("professor_id"):
        return False
    professor = await professor_for_user(user)
    return bool(professor) and professor.get("id") == series.get("professor_id")


# ════════════════════════════════════════════════════════════════════════════
# CONSOMMATION
# ════════════════════════════════════════════════════════════════════════════

async def _load(coupon_id: str) -> Tuple[dict, dict]:
    coupon = await db.coupons.find_one({"id": coupon_id}, {"_id": 0})
    if not coupon:
        raise CouponError("Coupon non trouvé", 404)
    series = await db.coupon_series.find_one({"id": coupon["coupon_series_id"]}, {"_id": 0})
    if not series:
        raise CouponError("Série de coupons non trouvée", 404)
    return coupon, series


async def use_coupon(
    coupon_id: str,
    user: dict,
    session_date: str,
    session_duration: int = 60,
    session_location: str = "home",
    notes: str = ""
) -> Tuple[dict, dict]:
    """Marque un coupon comme utilisé et incrémente la série."""
    coupon, series = await _load(coupon_id)

    if coupon["status"] != "available":
        raise CouponError("Ce coupon n'est pas disponible")
    if series["status"] != "active":
        raise CouponError("La série de coupons n'est pas active")
    if is_series_expired(series):
        raise CouponError("La série de coupons a expiré")
    if int(series.get("used_coupons", 0)) >= int(series.get("total_coupons", 0)):
        raise CouponError("Plus aucun coupon restant dans cette série")

    if not is_admin(user) and not await is_assigned_professor(user, series):
        raise CouponError(
            "Seul le professeur assigné ou un admin peut valider ce coupon", 403
        )

    now = now_iso()
    result = await db.coupons.update_one(
        {"id": coupon_id, "status": "available"},
        {"$set": {
            "status": "used",
            "used_date": now,
            "session_date": session_date,
            "session_duration": session_duration,
            "session_location": session_location,
            "used_by": user.get("id"),
            "notes": notes or coupon.get("notes", ""),
            "updated_at": now,
        }}
    )
    if result.modified_count == 0:
        raise CouponError("Ce coupon n'est pas disponible")

    await db.coupon_series.update_one(
        {"id": series["id"]},
        {"$inc": {"used_coupons": 1}, "$set": {"updated_at": now}}
    )
    series = await db.coupon_series.find_one({"id": series["id"]}, {"_id": 0})
    if series["used_coupons"] >= series["total_coupons"] and series["status"] == "active":
        await db.coupon_series.update_one(
            {"id": series["id"]},
            {"$set": {"status": "completed", "updated_at": now}}
        )
        series["status"] = "completed"

    await log_event(
        action="coupon_use",
        entity_type="coupon",
        entity_id=coupon_id,
        user=user.get("email", "system"),
        details={"code": coupon["code"], "session_duration": session_duration},
        related={"coupon_series_id": series["id"], "family_id": coupon.get("family_id")}
    )
    logger.info(f"[COUPON_USE] {coupon['code']} par {user.get('email')}")

    updated = await db.coupons.find_one({"id": coupon_id}, {"_id": 0})
    return updated, with_derived_fields(series)


async def cancel_coupon_usage(coupon_id: str, user: dict, reason: str) -> Tuple[dict, dict]:
    """Annule l'utilisation d'un coupon et rembourse la série."""
    coupon, series = await _load(coupon_id)

    if coupon["status"] != "used":
        raise CouponError("Ce coupon n'est pas marqué comme utilisé")

    previous = {
        "used_date": coupon.get("used_date"),
        "session_date": coupon.get("session_date"),
        "session_duration": coupon.get("session_duration"),
        "session_location": coupon.get("session_location"),
        "used_by": coupon.get("used_by"),
    }
    now = now_iso()
    author = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p) or user.get("email")
    cancellation = f"[{now}] Utilisation annulée par {author}. Motif: {reason}"
    notes = f"{coupon['notes']}\n\n{cancellation}" if coupon.get("notes") else cancellation

    result = await db.coupons.update_one(
        {"id": coupon_id, "status": "used"},
        {"$set": {
            "status": "available",
            "used_date": None,
            "session_date": None,
            "session_duration": None,
            "session_location": None,
            "used_by": None,
            "notes": notes,
            "updated_at": now,
        }}
    )
    if result.modified_count == 0:
        raise CouponError("Ce coupon n'est pas marqué comme utilisé")

    await db.coupon_series.update_one(
        {"id": series["id"], "used_coupons": {"$gt": 0}},
        {"$inc": {"used_coupons": -1}, "$set": {"updated_at": now}}
    )
    series = await db.coupon_series.find_one({"id": series["id"]}, {"_id": 0})
    if series["status"] == "completed":
        await db.coupon_series.update_one(
            {"id": series["id"]},
            {"$set": {"status": "active", "updated_at": now}}
        )
        series["status"] = "active"

    await log_event(
        action="coupon_cancel_usage",
        entity_type="coupon",
        entity_id=coupon_id,
        user=user.get("email", "system"),
        details={"code": coupon["code"], "reason": reason, "previous_usage": previous},
        related={"coupon_series_id": series["id"], "family_id": coupon.get("family_id")}
    )

    updated = await db.coupons.find_one({"id": coupon_id}, {"_id": 0})
    return updated, with_derived_fields(series)


async def rate_coupon(
    coupon_id: str,
    user: dict,
    rating_type: str,
    score: int,
    comment: str = ""
) -> dict:
    coupon, series = await _load(coupon_id)

    if coupon["status"] != "used":
        raise CouponError("Seuls les coupons utilisés peuvent être évalués")

    if rating_type == "professor" and not is_admin(user) and not await is_assigned_professor(user, series):
        raise CouponError("Seul le professeur assigné peut donner cette évaluation", 403)

    await db.coupons.update_one(
        {"id": coupon_id},
        {"$set": {
            f"rating.{rating_type}": {
                "score": score,
                "comment": comment or "",
                "rated_by": user.get("id"),
                "rated_at": now_iso(),
            },
            "updated_at": now_iso(),
        }}
    )
    return await db.coupons.find_one({"id": coupon_id}, {"_id": 0})


# ════════════════════════════════════════════════════════════════════════════
# TÂCHE PLANIFIÉE
# ════════════════════════════════════════════════════════════════════════════

async def expire_coupon_series() -> int:
    """Passe en "expired" les séries actives dont la date d'expiration est dépassée."""
    result = await db.coupon_series.update_many(
        {"status": "active", "expiration_date": {"$lt": now_iso()}},
        {"$set": {"status": "expired", "updated_at": now_iso()}}
    )
    if result.modified_count:
        logger.info(f"[COUPON_SERIES] {result.modified_count} série(s) expirée(s)")
    return result.modified_count
