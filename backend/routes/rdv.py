"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Routes Rendez-vous (RDV)                                    ║
║                                                                              ║
║  admin-family    : RDV avec une famille (family_id requis)                   ║
║  admin-professor : RDV avec un professeur (professor_id requis)              ║
║  Un RDV "planned" ne peut pas être posé sur un jour passé.                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from config import db, now_iso, to_iso
from models import RdvCreate, RdvUpdate, RdvEntityType, RdvType, RdvStatus
from models.rdv import TIME_PATTERN
from services.permissions import require_permission
from services.event_logger import log_event
from services.pagination import page_window, pagination_meta

logger = logging.getLogger("rdv")

router = APIRouter(prefix="/rdv", tags=["RDV"])


# ==================== HELPERS ====================

def _check_not_in_past(date: str, status: str):
    if status == RdvStatus.PLANNED.value and date[:10] < now_iso()[:10]:
        raise HTTPException(status_code=400, detail="Impossible de planifier un rendez-vous dans le passé")


async def _check_admin(admin_id: str):
    admin = await db.users.find_one({"id": admin_id, "role": "admin", "is_active": {"$ne": False}}, {"_id": 0, "id": 1})
    if not admin:
        raise HTTPException(status_code=404, detail="Administrateur non trouvé ou rôle invalide")


async def _context_ids(data: RdvCreate) -> dict:
    """Garde uniquement l'identifiant correspondant au type de RDV."""
    if data.entity_type == RdvEntityType.ADMIN_FAMILY:
        if not data.family_id:
            raise HTTPException(status_code=400, detail="family_id est requis pour un RDV de type admin-family")
        if not await db.families.find_one({"id": data.family_id}, {"_id": 1}):
            raise HTTPException(status_code=404, detail="Famille non trouvée")
        return {"family_id": data.family_id, "professor_id": None}

    if not data.professor_id:
        raise HTTPException(status_code=400, detail="professor_id est requis pour un RDV de type admin-professor")
    if not await db.professors.find_one({"id": data.professor_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Professeur non trouvé")
    return {"family_id": None, "professor_id": data.professor_id}


async def _enrich(rdvs: List[dict]) -> List[dict]:
    """Ajoute family_name / professor_name / admin_name."""
    family_ids = list({r["family_id"] for r in rdvs if r.get("family_id")})
    professor_ids = list({r["professor_id"] for r in rdvs if r.get("professor_id")})
    admin_ids = list({r["assigned_admin_id"] for r in rdvs if r.get("assigned_admin_id")})

    families = {
        f["id"]: f for f in await db.families.find(
            {"id": {"$in": family_ids}}, {"_id": 0, "id": 1, "primary_contact": 1}
        ).to_list(None)
    }
    professors = {
        p["id"]: p for p in await db.professors.find(
            {"id": {"$in": professor_ids}}, {"_id": 0, "id": 1, "first_name": 1, "last_name": 1}
        ).to_list(None)
    }
    admins = {
        u["id"]: u for u in await db.users.find(
            {"id": {"$in": admin_ids}}, {"_id": 0, "id": 1, "first_name": 1, "last_name": 1}
        ).to_list(None)
    }

    def _name(doc: Optional[dict]) -> Optional[str]:
        if not doc:
            return None
        return f"{doc.get('first_name', '')} {doc.get('last_name', '')}".strip()

    for rdv in rdvs:
        family = families.get(rdv.get("family_id"))
        rdv["family_name"] = _name((family or {}).get("primary_contact"))
        rdv["professor_name"] = _name(professors.get(rdv.get("professor_id")))
        rdv["admin_name"] = _name(admins.get(rdv.get("assigned_admin_id")))
    return rdvs


async def get_rdv_or_404(rdv_id: str) -> dict:
    rdv = await db.rdvs.find_one({"id": rdv_id}, {"_id": 0})
    if not rdv:
        raise HTTPException(status_code=404, detail="Rendez-vous non trouvé")
    return rdv


def _related(rdv: dict) -> dict:
    return {k: rdv[k] for k in ("family_id", "professor_id") if rdv.get(k)}


# ==================== LECTURE ====================

@router.get("")
async def list_rdvs(
    family_id: Optional[str] = None,
    professor_id: Optional[str] = None,
    assigned_admin_id: Optional[str] = None,
    entity_type: Optional[RdvEntityType] = None,
    status: Optional[RdvStatus] = None,
    type: Optional[RdvType] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: dict = Depends(require_permission("rdv.view"))
):
    query = {}
    if family_id:
        query["family_id"] = family_id
    if professor_id:
        query["professor_id"] = professor_id
    if assigned_admin_id:
        query["assigned_admin_id"] = assigned_admin_id
    if entity_type:
        query["entity_type"] = entity_type.value
    if status:
        query["status"] = status.value
    if type:
        query["type"] = type.value

    try:
        if date_from or date_to:
            query["date"] = {}
            if date_from:
                query["date"]["$gte"] = to_iso(date_from[:10])
            if date_to:
                query["date"]["$lte"] = to_iso(date_to[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail="Date de filtre invalide")

    skip, limit = page_window(page, limit)
    rdvs = await db.rdvs.find(query, {"_id": 0}) \
        .sort([("date", 1), ("time", 1)]).skip(skip).limit(limit).to_list(limit)
    total = await db.rdvs.count_documents(query)
    return {"rdvs": await _enrich(rdvs), "pagination": pagination_meta(page, limit, total)}


@router.get("/stats/summary")
async def rdv_summary(user: dict = Depends(require_permission("rdv.view"))):
    """Total, répartition par statut, RDV de la semaine et du jour."""
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today - timedelta(days=today.weekday())
    week_end = week_start + timedelta(days=6)

    by_status = {}
    for status in RdvStatus:
        by_status[status.value] = await db.rdvs.count_documents({"status": status.value})

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "week_count": await db.rdvs.count_documents(
            {"date": {"$gte": week_start.isoformat(), "$lte": week_end.isoformat()}}
        ),
        "today_count": await db.rdvs.count_documents({"date": today.isoformat()}),
    }


@router.get("/availability/{admin_id}")
async def admin_availability(
    admin_id: str,
    date: str,
    time: str = Query(..., pattern=TIME_PATTERN),
    user: dict = Depends(require_permission("rdv.view"))
):
    """Un admin est indisponible s'il a déjà un RDV planifié au même jour et à la même heure."""
    try:
        day = to_iso(date[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail="Date invalide")
    hours, minutes = time.split(":")

    conflict = await db.rdvs.find_one({
        "assigned_admin_id": admin_id,
        "date": day,
        "time": f"{int(hours):02d}:{minutes}",
        "status": RdvStatus.PLANNED.value,
    }, {"_id": 0, "id": 1, "family_id": 1, "professor_id": 1, "status": 1})

    return {"available": conflict is None, "conflict": conflict}


@router.get("/{rdv_id}")
async def get_rdv(rdv_id: str, user: dict = Depends(require_permission("rdv.view"))):
    rdv = await get_rdv_or_404(rdv_id)
    return {"rdv": (await _enrich([rdv]))[0]}


# ==================== ÉCRITURE ====================

@router.post("", status_code=201)
async def create_rdv(data: RdvCreate, user: dict = Depends(require_permission("rdv.manage"))):
    context = await _context_ids(data)
    admin_id = data.assigned_admin_id or user.get("id")
    await _check_admin(admin_id)
    _check_not_in_past(data.date, data.status.value)

    now = now_iso()
    rdv = {
        "id": str(uuid.uuid4()),
        "entity_type": data.entity_type.value,
        **context,
        "assigned_admin_id": admin_id,
        "date": data.date,
        "time": data.time,
        "type": data.type.value,
        "notes": data.notes,
        "status": data.status.value,
        "created_by": user.get("id"),
        "created_at": now,
        "updated_at": now,
    }
    await db.rdvs.insert_one(rdv)
    rdv.pop("_id", None)

    await log_event(
        action="rdv_create",
        entity_type="rdv",
        entity_id=rdv["id"],
        user=user.get("email", "system"),
        details={"entity_type": rdv["entity_type"], "date": rdv["date"], "time": rdv["time"], "type": rdv["type"]},
        related=_related(rdv)
    )
    logger.info(f"[RDV_CREATE] {rdv['id']} {rdv['entity_type']} {rdv['date'][:10]} {rdv['time']}")

    return {
        "message": "Rendez-vous créé avec succès",
        "rdv": (await _enrich([rdv]))[0],
    }


@router.put("/{rdv_id}")
async def update_rdv(rdv_id: str, data: RdvUpdate, user: dict = Depends(require_permission("rdv.manage"))):
    rdv = await get_rdv_or_404(rdv_id)

    update_data = data.model_dump(mode="json", exclude_none=True)
    if data.assigned_admin_id:
        await _check_admin(data.assigned_admin_id)
    if data.date:
        _check_not_in_past(data.date, update_data.get("status", rdv["status"]))

    changes = {k: {"old_value": rdv.get(k), "new_value": v} for k, v in update_data.items() if rdv.get(k) != v}
    update_data["updated_at"] = now_iso()
    await db.rdvs.update_one({"id": rdv_id}, {"$set": update_data})

    if changes:
        await log_event(
            action="rdv_update",
            entity_type="rdv",
            entity_id=rdv_id,
            user=user.get("email", "system"),
            details=changes,
            related=_related(rdv)
        )

    updated = await get_rdv_or_404(rdv_id)
    return {
        "message": "Rendez-vous mis à jour avec succès",
        "rdv": (await _enrich([updated]))[0],
    }


@router.delete("/{rdv_id}")
async def delete_rdv(rdv_id: str, user: dict = Depends(require_permission("rdv.manage"))):
    rdv = await get_rdv_or_404(rdv_id)
    await db.rdvs.delete_one({"id": rdv_id})

    await log_event(
        action="rdv_delete",
        entity_type="rdv",
        entity_id=rdv_id,
        user=user.get("email", "system"),
        details={"date": rdv["date"], "time": rdv["time"], "status": rdv["status"]},
        related=_related(rdv)
    )
    return {"message": "Rendez-vous supprimé avec succès", "action": "deleted"}
