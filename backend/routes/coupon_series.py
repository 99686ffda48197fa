"""
ABC Cours CRM - Routes Séries de coupons
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from config import db, now_iso
from models import CouponSeriesStatus, PaymentStatus, CouponSeriesCreate, CouponSeriesStatusUpdate
from services.permissions import require_permission
from services.pagination import page_window, pagination_meta
from services.coupon_generation import build_series, create_coupons
from services.coupon_service import with_derived_fields
from services.event_logger import log_event

logger = logging.getLogger("coupon_series")

router = APIRouter(prefix="/coupon-series", tags=["CouponSeries"])

SERIES_SORT_FIELDS = ["created_at", "expiration_date", "total_coupons", "used_coupons", "status"]


async def _enrich(series: dict) -> dict:
    family = await db.families.find_one(
        {"id": series.get("family_id")}, {"_id": 0, "primary_contact": 1}
    )
    contact = (family or {}).get("primary_contact") or {}
    series["family_name"] = f"{contact.get('first_name', '')} {contact.get('last_name', '')}".strip()
    subject = await db.subjects.find_one({"id": series.get("subject_id")}, {"_id": 0, "name": 1})
    series["subject_name"] = (subject or {}).get("name", "")
    if series.get("professor_id"):
        professor = await db.professors.find_one(
            {"id": series["professor_id"]}, {"_id": 0, "first_name": 1, "last_name": 1}
        )
        series["professor_name"] = (
            f"{professor.get('first_name', '')} {professor.get('last_name', '')}".strip()
            if professor else ""
        )
    return with_derived_fields(series)


@router.get("")
async def list_coupon_series(
    family_id: Optional[str] = None,
    student_id: Optional[str] = None,
    professor_id: Optional[str] = None,
    subject_id: Optional[str] = None,
    status: Optional[CouponSeriesStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(require_permission("coupons.view"))
):
    if sort_by not in SERIES_SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Tri invalide. Valides: {SERIES_SORT_FIELDS}")
    if sort_order not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail="Ordre de tri invalide: asc ou desc")

    query = {}
    if family_id:
        query["family_id"] = family_id
    if student_id:
        query["student_ids"] = student_id
    if professor_id:
        query["professor_id"] = professor_id
    if subject_id:
        query["subject_id"] = subject_id
    if status:
        query["status"] = status.value
    if payment_status:
        query["payment_status"] = payment_status.value

    skip, limit = page_window(page, limit)
    series_list = await db.coupon_series.find(query, {"_id": 0}) \
        .sort(sort_by, 1 if sort_order == "asc" else -1).skip(skip).limit(limit).to_list(limit)
    total = await db.coupon_series.count_documents(query)

    return {
        "coupon_series": [await _enrich(s) for s in series_list],
        "pagination": pagination_meta(page, limit, total)
    }


@router.get("/stats/overview")
async def coupon_series_overview(user: dict = Depends(require_permission("coupons.view"))):
    series_list = await db.coupon_series.find(
        {}, {"_id": 0, "status": 1, "total_coupons": 1, "used_coupons": 1, "total_amount": 1}
    ).to_list(None)

    total_coupons = sum(s.get("total_coupons", 0) for s in series_list)
    used_coupons = sum(s.get("used_coupons", 0) for s in series_list)
    by_status = {s.value: 0 for s in CouponSeriesStatus}
    for s in series_list:
        by_status[s.get("status", "active")] = by_status.get(s.get("status", "active"), 0) + 1

    return {
        "total_series": len(series_list),
        "by_status": by_status,
        "total_coupons": total_coupons,
        "used_coupons": used_coupons,
        "remaining_coupons": total_coupons - used_coupons,
        "usage_rate": round(used_coupons / total_coupons * 100, 1) if total_coupons else 0,
        "total_amount": round(sum(s.get("total_amount", 0) for s in series_list), 2),
    }


@router.get("/{series_id}")
async def get_coupon_series(series_id: str, user: dict = Depends(require_permission("coupons.view"))):
    series = await db.coupon_series.find_one({"id": series_id}, {"_id": 0})
    if not series:
        raise HTTPException(status_code=404, detail="Série de coupons non trouvée")

    coupons = await db.coupons.find({"coupon_series_id": series_id}, {"_id": 0}).sort("number", 1).to_list(None)
    used = [c for c in coupons if c["status"] == "used"]
    return {
        "coupon_series": await _enrich(series),
        "coupons": coupons,
        "stats": {
            "total": len(coupons),
            "available": sum(1 for c in coupons if c["status"] == "available"),
            "used": len(used),
            "expired": sum(1 for c in coupons if c["status"] == "expired"),
            "total_hours": round(sum(c.get("session_duration") or 0 for c in used) / 60, 2),
        },
    }


@router.post("", status_code=201)
async def create_coupon_series(
    data: CouponSeriesCreate,
    user: dict = Depends(require_permission("coupons.manage"))
):
    """Création manuelle d'une série (hors note de règlement)."""
    if not await db.families.find_one({"id": data.family_id}, {"_id": 1}):
        raise HTTPException(status_code=400, detail="Famille introuvable")

    student = await db.students.find_one({"id": data.student_id}, {"_id": 0, "family_id": 1})
    if not student:
        raise HTTPException(status_code=400, detail="Élève introuvable")
    if student.get("family_id") != data.family_id:
        raise HTTPException(status_code=400, detail="L'élève n'appartient pas à cette famille")

    if not await db.subjects.find_one({"id": data.subject_id}, {"_id": 1}):
        raise HTTPException(status_code=400, detail="Matière introuvable")

    professor_id = data.professor_id
    if professor_id:
        professor = await db.professors.find_one({"id": professor_id}, {"_id": 0, "subjects": 1})
        if not professor:
            raise HTTPException(status_code=400, detail="Professeur introuvable")
        if data.subject_id not in professor.get("subjects", []):
            raise HTTPException(status_code=400, detail="Ce professeur n'enseigne pas cette matière")
    else:
        professor = await db.professors.find_one(
            {"subjects": data.subject_id, "status": "active"}, {"_id": 0, "id": 1}
        )
        if not professor:
            raise HTTPException(status_code=400, detail="Aucun professeur actif pour cette matière")
        professor_id = professor["id"]

    series = build_series(
        family_id=data.family_id,
        student_ids=[data.student_id],
        subject_id=data.subject_id,
        total_coupons=data.total_coupons,
        hourly_rate=data.hourly_rate,
        professor_salary=data.professor_salary,
        professor_id=professor_id,
        expiration_months=data.expiration_months,
        payment_status=data.payment_status.value,
        notes=data.notes,
        created_by=user.get("id"),
    )
    await db.coupon_series.insert_one(series)
    series.pop("_id", None)
    coupons = await create_coupons(series, series["total_coupons"])

    await log_event(
        action="coupon_series_create",
        entity_type="coupon_series",
        entity_id=series["id"],
        user=user.get("email", "system"),
        details={"total_coupons": series["total_coupons"]},
        related={"family_id": data.family_id, "student_id": data.student_id}
    )
    return {"success": True, "coupon_series": await _enrich(series), "coupons_created": len(coupons)}


@router.patch("/{series_id}/status")
async def update_series_status(
    series_id: str,
    data: CouponSeriesStatusUpdate,
    user: dict = Depends(require_permission("coupons.manage"))
):
    series = await db.coupon_series.find_one({"id": series_id}, {"_id": 0})
    if not series:
        raise HTTPException(status_code=404, detail="Série de coupons non trouvée")

    now = now_iso()
    update = {"status": data.status.value, "updated_at": now}
    if data.reason:
        entry = f"[{now}] Statut changé en {data.status.value}: {data.reason}"
        update["notes"] = f"{series['notes']}\n{entry}" if series.get("notes") else entry
    await db.coupon_series.update_one({"id": series_id}, {"$set": update})

    expired = 0
    if data.status == CouponSeriesStatus.SUSPENDED:
        expired = (await db.coupons.update_many(
            {"coupon_series_id": series_id, "status": "available"},
            {"$set": {"status": "expired", "updated_at": now}}
        )).modified_count

    await log_event(
        action="coupon_series_status_change",
        entity_type="coupon_series",
        entity_id=series_id,
        user=user.get("email", "system"),
        details={"old_value": series["status"], "new_value": data.status.value,
                 "reason": data.reason, "expired_coupons": expired}
    )
    updated = await db.coupon_series.find_one({"id": series_id}, {"_id": 0})
    return {"success": True, "coupon_series": with_derived_fields(updated), "expired_coupons": expired}


@router.delete("/{series_id}")
async def delete_coupon_series(series_id: str, user: dict = Depends(require_permission("coupons.manage"))):
    series = await db.coupon_series.find_one({"id": series_id}, {"_id": 0})
    if not series:
        raise HTTPException(status_code=404, detail="Série de coupons non trouvée")

    used = await db.coupons.count_documents({"coupon_series_id": series_id, "status": "used"})
    if series.get("used_coupons", 0) > 0 or used > 0:
        raise HTTPException(
            status_code=400,
            detail="Impossible de supprimer une série dont des coupons ont été utilisés"
        )

    deleted = (await db.coupons.delete_many({"coupon_series_id": series_id})).deleted_count
    await db.coupon_series.delete_one({"id": series_id})
    if series.get("settlement_note_id"):
        await db.settlement_notes.update_one(
            {"id": series["settlement_note_id"]}, {"$set": {"coupon_series_id": None}}
        )

    await log_event(
        action="coupon_series_delete",
        entity_type="coupon_series",
        entity_id=series_id,
        user=user.get("email", "system"),
        details={"deleted_coupons": deleted}
    )
    return {"success": True, "deleted_coupons": deleted}
