"""
ABC Cours CRM - Routes Coupons
Consultation, validation d'une séance, annulation, évaluation.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from config import db, to_iso
from models import CouponStatus, CouponUse, CouponCancelUsage, CouponRating
from services.permissions import require_permission, is_admin
from services.pagination import page_window, pagination_meta
from services.coupon_generation import CouponCodeError, decode_coupon_code
from services.coupon_service import (
    CouponError,
    use_coupon,
    cancel_coupon_usage,
    rate_coupon,
    is_series_expired,
    with_derived_fields,
)

router = APIRouter(prefix="/coupons", tags=["Coupons"])


def _raise(error: CouponError):
    raise HTTPException(status_code=error.status_code, detail=error.message)


@router.get("")
async def list_coupons(
    series_id: Optional[str] = None,
    family_id: Optional[str] = None,
    status: Optional[CouponStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(require_permission("coupons.view"))
):
    query = {}
    if series_id:
        query["coupon_series_id"] = series_id
    if family_id:
        query["family_id"] = family_id
    if status:
        query["status"] = status.value

    skip, limit = page_window(page, limit)
    coupons = await db.coupons.find(query, {"_id": 0}) \
        .sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    total = await db.coupons.count_documents(query)
    return {"coupons": coupons, "pagination": pagination_meta(page, limit, total)}


@router.get("/search/{code}")
async def search_by_code(code: str, user: dict = Depends(require_permission("coupons.view"))):
    """Recherche exacte par code (insensible à la casse)."""
    try:
        number = decode_coupon_code(code)
    except CouponCodeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    coupon = await db.coupons.find_one({"code": code.strip().upper()}, {"_id": 0})
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon non trouvé")

    series = await db.coupon_series.find_one({"id": coupon["coupon_series_id"]}, {"_id": 0})
    return {
        "coupon": coupon,
        "decoded_number": number,
        "coupon_series": with_derived_fields(series) if series else None,
    }


@router.get("/available/by-series/{series_id}")
async def available_by_series(series_id: str, user: dict = Depends(require_permission("coupons.view"))):
    series = await db.coupon_series.find_one({"id": series_id}, {"_id": 0})
    if not series:
        raise HTTPException(status_code=404, detail="Série de coupons non trouvée")
    if series["status"] != "active" or is_series_expired(series):
        raise HTTPException(status_code=400, detail="La série de coupons n'est pas active")

    coupons = await db.coupons.find(
        {"coupon_series_id": series_id, "status": "available"}, {"_id": 0}
    ).sort("number", 1).to_list(None)
    return {"coupon_series": with_derived_fields(series), "coupons": coupons, "count": len(coupons)}


@router.get("/usage-history/{user_id}")
async def usage_history(
    user_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(require_permission("coupons.view"))
):
    """Séances validées par un utilisateur. Un professeur ne voit que les siennes."""
    if not is_admin(user) and user.get("id") != user_id:
        raise HTTPException(status_code=403, detail="Accès refusé")

    query = {"used_by": user_id, "status": "used"}
    try:
        if start_date or end_date:
            query["session_date"] = {}
            if start_date:
                query["session_date"]["$gte"] = to_iso(start_date)
            if end_date:
                query["session_date"]["$lte"] = to_iso(end_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Format de date invalide")

    all_used = await db.coupons.find(query, {"_id": 0, "session_duration": 1, "coupon_series_id": 1}).to_list(None)
    skip, limit = page_window(page, limit)
    coupons = await db.coupons.find(query, {"_id": 0}) \
        .sort("session_date", -1).skip(skip).limit(limit).to_list(limit)

    total_minutes = sum(c.get("session_duration") or 0 for c in all_used)
    return {
        "coupons": coupons,
        "pagination": pagination_meta(page, limit, len(all_used)),
        "stats": {
            "total_sessions": len(all_used),
            "total_hours": round(total_minutes / 60, 2),
            "average_session_duration": round(total_minutes / len(all_used), 1) if all_used else 0,
            "series_count": len({c["coupon_series_id"] for c in all_used}),
        },
    }


@router.get("/{coupon_id}")
async def get_coupon(coupon_id: str, user: dict = Depends(require_permission("coupons.view"))):
    coupon = await db.coupons.find_one({"id": coupon_id}, {"_id": 0})
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon non trouvé")
    series = await db.coupon_series.find_one({"id": coupon["coupon_series_id"]}, {"_id": 0})
    coupon["coupon_series"] = with_derived_fields(series) if series else None
    return {"coupon": coupon}


@router.post("/{coupon_id}/use")
async def use(coupon_id: str, data: CouponUse, user: dict = Depends(require_permission("coupons.use"))):
    try:
        coupon, series = await use_coupon(
            coupon_id,
            user,
            session_date=data.session_date,
            session_duration=data.session_duration,
            session_location=data.session_location.value,
            notes=data.notes,
        )
    except CouponError as e:
        _raise(e)
    return {"message": "Coupon utilisé avec succès", "coupon": coupon, "coupon_series": series}


@router.post("/{coupon_id}/cancel-usage")
async def cancel_usage(
    coupon_id: str,
    data: CouponCancelUsage,
    user: dict = Depends(require_permission("coupons.manage"))
):
    try:
        coupon, series = await cancel_coupon_usage(coupon_id, user, data.reason.strip())
    except CouponError as e:
        _raise(e)
    return {"message": "Utilisation du coupon annulée", "coupon": coupon, "coupon_series": series}


@router.patch("/{coupon_id}/rating")
async def rate(coupon_id: str, data: CouponRating, user: dict = Depends(require_permission("coupons.use"))):
    try:
        coupon = await rate_coupon(coupon_id, user, data.rating_type, data.score, data.comment)
    except CouponError as e:
        _raise(e)
    return {"message": "Évaluation enregistrée", "coupon": coupon}
