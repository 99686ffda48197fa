"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Routes Notes de Règlement (NDR)                             ║
║                                                                              ║
║  Création / suppression pilotent le statut prospect/client de la famille     ║
║  et la série de coupons associée (services/settlement_service.py).           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import re
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from config import db, now_iso
from models import (
    PaymentMethod,
    SettlementNoteStatus,
    SORT_FIELDS,
    SettlementNoteCreate,
    SettlementNoteReplace,
    SettlementNotePatch,
)
from services.permissions import require_permission
from services.pagination import page_window, pagination_meta
from services.coupon_service import with_derived_fields
from services.event_logger import log_event
from services.settlement_service import (
    SettlementNoteError,
    create_settlement_note,
    replace_settlement_note,
    deletion_preview,
    delete_settlement_note,
    is_overdue,
    mark_overdue_notes,
)

logger = logging.getLogger("settlement_notes")

router = APIRouter(prefix="/settlement-notes", tags=["SettlementNotes"])


def _raise(error: SettlementNoteError):
    raise HTTPException(status_code=error.status_code, detail=error.message)


async def get_note_or_404(note_id: str) -> dict:
    note = await db.settlement_notes.find_one({"id": note_id}, {"_id": 0})
    if not note:
        raise HTTPException(status_code=404, detail="Note de règlement non trouvée")
    return note


@router.get("")
async def list_settlement_notes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    client_name: Optional[str] = None,
    department: Optional[str] = None,
    status: Optional[SettlementNoteStatus] = None,
    payment_method: Optional[PaymentMethod] = None,
    family_id: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    user: dict = Depends(require_permission("settlement_notes.view"))
):
    if sort_by not in SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Tri invalide. Valides: {SORT_FIELDS}")
    if sort_order not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail="Ordre de tri invalide: asc ou desc")

    query = {}
    if client_name:
        query["client_name"] = {"$regex": re.escape(client_name.strip()), "$options": "i"}
    if department:
        query["department"] = {"$regex": re.escape(department.strip()), "$options": "i"}
    if status:
        query["status"] = status.value
    if payment_method:
        query["payment_method"] = payment_method.value
    if family_id:
        query["family_id"] = family_id

    skip, limit = page_window(page, limit)
    notes = await db.settlement_notes.find(query, {"_id": 0}) \
        .sort(sort_by, 1 if sort_order == "asc" else -1).skip(skip).limit(limit).to_list(limit)
    total = await db.settlement_notes.count_documents(query)

    return {"notes": notes, "pagination": pagination_meta(page, limit, total)}


@router.get("/stats")
async def settlement_note_stats(user: dict = Depends(require_permission("settlement_notes.view"))):
    """Compteurs et montants par statut."""
    notes = await db.settlement_notes.find(
        {}, {"_id": 0, "status": 1, "total_revenue": 1, "margin_amount": 1}
    ).to_list(None)

    def _sum(status=None, field="total_revenue"):
        return round(sum(
            n.get(field) or 0 for n in notes if status is None or n.get("status") == status
        ), 2)

    return {
        "total": len(notes),
        "pending": sum(1 for n in notes if n.get("status") == "pending"),
        "paid": sum(1 for n in notes if n.get("status") == "paid"),
        "overdue": sum(1 for n in notes if n.get("status") == "overdue"),
        "total_amount": _sum(),
        "total_paid": _sum("paid"),
        "total_pending": _sum("pending"),
        "total_overdue": _sum("overdue"),
        "total_margin": _sum(field="margin_amount"),
    }


@router.post("/update-overdue")
async def update_overdue(user: dict = Depends(require_permission("settlement_notes.edit"))):
    updated = await mark_overdue_notes()
    return {"success": True, "updated": updated}


@router.get("/{note_id}")
async def get_settlement_note(note_id: str, user: dict = Depends(require_permission("settlement_notes.view"))):
    note = await get_note_or_404(note_id)

    subject_ids = [s["subject_id"] for s in note.get("subjects", [])]
    subjects = {
        s["id"]: s for s in await db.subjects.find(
            {"id": {"$in": subject_ids}}, {"_id": 0, "id": 1, "name": 1, "category": 1}
        ).to_list(None)
    }
    for line in note.get("subjects", []):
        line["subject"] = subjects.get(line["subject_id"])

    note["students"] = await db.students.find(
        {"id": {"$in": note.get("student_ids", [])}},
        {"_id": 0, "id": 1, "first_name": 1, "last_name": 1}
    ).to_list(None)

    series = await db.coupon_series.find_one({"settlement_note_id": note_id}, {"_id": 0})
    note["coupon_series"] = with_derived_fields(series) if series else None
    note["is_overdue"] = is_overdue(note)
    return {"settlement_note": note}


@router.post("", status_code=201)
async def create_note(
    data: SettlementNoteCreate,
    user: dict = Depends(require_permission("settlement_notes.create"))
):
    try:
        note, series = await create_settlement_note(data, user)
    except SettlementNoteError as e:
        _raise(e)
    return {
        "message": "Note de règlement créée avec succès",
        "settlement_note": note,
        "coupon_series": with_derived_fields(series),
    }


@router.put("/{note_id}")
async def replace_note(
    note_id: str,
    data: SettlementNoteReplace,
    user: dict = Depends(require_permission("settlement_notes.edit"))
):
    try:
        note = await replace_settlement_note(note_id, data, user)
    except SettlementNoteError as e:
        _raise(e)
    return {"success": True, "settlement_note": note}


@router.patch("/{note_id}")
async def patch_note(
    note_id: str,
    data: SettlementNotePatch,
    user: dict = Depends(require_permission("settlement_notes.edit"))
):
    note = await get_note_or_404(note_id)

    update_data = data.model_dump(mode="json", exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="Aucune donnée à mettre à jour")
    if update_data.get("status") == "paid" and not note.get("paid_at"):
        update_data["paid_at"] = now_iso()
    update_data["updated_at"] = now_iso()

    await db.settlement_notes.update_one({"id": note_id}, {"$set": update_data})
    return {"success": True, "settlement_note": await get_note_or_404(note_id)}


@router.patch("/{note_id}/mark-paid")
async def mark_paid(note_id: str, user: dict = Depends(require_permission("settlement_notes.edit"))):
    await get_note_or_404(note_id)
    now = now_iso()
    await db.settlement_notes.update_one(
        {"id": note_id},
        {"$set": {"status": "paid", "paid_at": now, "updated_at": now}}
    )
    await log_event(
        action="settlement_note_paid",
        entity_type="settlement_note",
        entity_id=note_id,
        user=user.get("email", "system")
    )
    return {"success": True, "settlement_note": await get_note_or_404(note_id)}


@router.get("/{note_id}/deletion-preview")
async def get_deletion_preview(
    note_id: str,
    user: dict = Depends(require_permission("settlement_notes.delete"))
):
    try:
        return await deletion_preview(note_id)
    except SettlementNoteError as e:
        _raise(e)


@router.delete("/{note_id}")
async def delete_note(note_id: str, user: dict = Depends(require_permission("settlement_notes.delete"))):
    try:
        result = await delete_settlement_note(note_id, user)
    except SettlementNoteError as e:
        _raise(e)
    logger.info(f"[NDR_DELETE] {note_id} par {user.get('email')} {result}")
    return {"message": "Note de règlement supprimée avec succès", **result}


@router.get("/{note_id}/coupons")
async def get_note_coupons(note_id: str, user: dict = Depends(require_permission("coupons.view"))):
    await get_note_or_404(note_id)

    series = await db.coupon_series.find_one({"settlement_note_id": note_id}, {"_id": 0})
    if not series:
        raise HTTPException(status_code=404, detail="Aucune série de coupons pour cette note")

    coupons = await db.coupons.find(
        {"coupon_series_id": series["id"]}, {"_id": 0}
    ).sort("number", 1).to_list(None)

    return {
        "coupon_series": with_derived_fields(series),
        "coupons": coupons,
        "stats": {
            "total": len(coupons),
            "available": sum(1 for c in coupons if c["status"] == "available"),
            "used": sum(1 for c in coupons if c["status"] == "used"),
            "expired": sum(1 for c in coupons if c["status"] == "expired"),
            "cancelled": sum(1 for c in coupons if c["status"] == "cancelled"),
        },
    }
