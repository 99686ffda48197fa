"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Routes Familles                                             ║
║                                                                              ║
║  CRUD prospects / clients                                                    ║
║  Le statut prospect/client suit les notes de règlement (voir                 ║
║  services/family_status.py); PATCH /status reste un forçage manuel admin.    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from config import db, now_iso, get_department_from_postal_code
from models import (
    FamilyStatus,
    DEFAULT_REMINDER_SUBJECT,
    FamilyCreate,
    FamilyUpdate,
    FamilyStatusUpdate,
    ProspectStatusUpdate,
    ReminderSubjectUpdate,
    NextActionDateUpdate,
)
from services.permissions import require_permission
from services.event_logger import log_event
from services.pagination import page_window, pagination_meta, regex_filter

logger = logging.getLogger("families")

router = APIRouter(prefix="/families", tags=["Families"])

SEARCH_FIELDS = [
    "primary_contact.first_name",
    "primary_contact.last_name",
    "primary_contact.email",
    "primary_contact.primary_phone",
    "address.city",
]


def enrich_family(family: dict) -> dict:
    contact = family.get("primary_contact") or {}
    family["name"] = f"{contact.get('first_name', '')} {contact.get('last_name', '')}".strip()
    family["department"] = get_department_from_postal_code(
        (family.get("address") or {}).get("postal_code")
    )
    return family


async def get_family_or_404(family_id: str) -> dict:
    family = await db.families.find_one({"id": family_id}, {"_id": 0})
    if not family:
        raise HTTPException(status_code=404, detail="Famille non trouvée")
    return family


@router.get("")
async def list_families(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[FamilyStatus] = None,
    user: dict = Depends(require_permission("families.view"))
):
    """Liste paginée des familles, plus récentes d'abord."""
    query = {}
    if status:
        query["status"] = status.value
    if search and search.strip():
        query.update(regex_filter(SEARCH_FIELDS, search))

    skip, limit = page_window(page, limit)
    families = await db.families.find(query, {"_id": 0}) \
        .sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    total = await db.families.count_documents(query)

    return {
        "families": [enrich_family(f) for f in families],
        "pagination": pagination_meta(page, limit, total)
    }


@router.get("/stats")
async def family_stats(user: dict = Depends(require_permission("families.view"))):
    total = await db.families.count_documents({})
    prospects = await db.families.count_documents({"status": "prospect"})
    clients = await db.families.count_documents({"status": "client"})
    return {"total": total, "prospects": prospects, "clients": clients}


@router.get("/{family_id}")
async def get_family(family_id: str, user: dict = Depends(require_permission("families.view"))):
    """Famille + ses élèves et ses RDV."""
    family = await get_family_or_404(family_id)
    family["students"] = await db.students.find(
        {"family_id": family_id}, {"_id": 0}
    ).sort("first_name", 1).to_list(None)
    family["rdvs"] = await db.rdvs.find(
        {"family_id": family_id}, {"_id": 0}
    ).sort([("date", 1), ("time", 1)]).to_list(None)
    return {"family": enrich_family(family)}


@router.post("", status_code=201)
async def create_family(data: FamilyCreate, user: dict = Depends(require_permission("families.create"))):
    """Création d'une famille. Toujours en prospect."""
    now = now_iso()
    family = {
        "id": str(uuid.uuid4()),
        **data.model_dump(mode="json"),
        "status": FamilyStatus.PROSPECT.value,
        "settlement_notes": [],
        "students": [],
        "created_by": user.get("id"),
        "created_at": now,
        "updated_at": now,
    }
    await db.families.insert_one(family)
    family.pop("_id", None)

    await log_event(
        action="family_create",
        entity_type="family",
        entity_id=family["id"],
        user=user.get("email", "system"),
        details={"email": family["primary_contact"]["email"]}
    )
    logger.info(f"[FAMILY_CREATE] {family['id']} par {user.get('email')}")
    return {"success": True, "family": enrich_family(family)}


@router.put("/{family_id}")
async def update_family(
    family_id: str,
    data: FamilyUpdate,
    user: dict = Depends(require_permission("families.edit"))
):
    """Mise à jour descriptive (le statut n'est pas modifiable ici)."""
    await get_family_or_404(family_id)

    update_data = data.model_dump(mode="json", exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="Aucune donnée à mettre à jour")
    update_data["updated_at"] = now_iso()

    await db.families.update_one({"id": family_id}, {"$set": update_data})
    family = await db.families.find_one({"id": family_id}, {"_id": 0})
    return {"success": True, "family": enrich_family(family)}


async def _patch_field(family_id: str, field: str, value, user: dict) -> dict:
    family = await get_family_or_404(family_id)
    if family.get(field) != value:
        await db.families.update_one(
            {"id": family_id},
            {"$set": {field: value, "updated_at": now_iso()}}
        )
        await log_event(
            action=f"family_{field}_change",
            entity_type="family",
            entity_id=family_id,
            user=user.get("email", "system"),
            details={"old_value": family.get(field), "new_value": value}
        )
    updated = await db.families.find_one({"id": family_id}, {"_id": 0})
    return {"success": True, "family": enrich_family(updated)}


@router.patch("/{family_id}/status")
async def update_family_status(
    family_id: str,
    data: FamilyStatusUpdate,
    user: dict = Depends(require_permission("families.edit"))
):
    """Forçage manuel prospect/client."""
    return await _patch_field(family_id, "status", data.status.value, user)


@router.patch("/{family_id}/prospect-status")
async def update_prospect_status(
    family_id: str,
    data: ProspectStatusUpdate,
    user: dict = Depends(require_permission("families.edit"))
):
    value = data.prospect_status.value if data.prospect_status else None
    return await _patch_field(family_id, "prospect_status", value, user)


@router.patch("/{family_id}/reminder-subject")
async def update_reminder_subject(
    family_id: str,
    data: ReminderSubjectUpdate,
    user: dict = Depends(require_permission("families.edit"))
):
    value = data.next_action_reminder_subject or DEFAULT_REMINDER_SUBJECT
    return await _patch_field(family_id, "next_action_reminder_subject", value, user)


@router.patch("/{family_id}/next-action-date")
async def update_next_action_date(
    family_id: str,
    data: NextActionDateUpdate,
    user: dict = Depends(require_permission("families.edit"))
):
    return await _patch_field(family_id, "next_action_date", data.next_action_date, user)


@router.delete("/{family_id}")
async def delete_family(family_id: str, user: dict = Depends(require_permission("families.delete"))):
    """Suppression en cascade: élèves, NDR, séries, coupons et RDV."""
    family = await get_family_or_404(family_id)

    deleted = {
        "students": (await db.students.delete_many({"family_id": family_id})).deleted_count,
        "settlement_notes": (await db.settlement_notes.delete_many({"family_id": family_id})).deleted_count,
        "coupons": (await db.coupons.delete_many({"family_id": family_id})).deleted_count,
        "coupon_series": (await db.coupon_series.delete_many({"family_id": family_id})).deleted_count,
        "rdvs": (await db.rdvs.delete_many({"family_id": family_id})).deleted_count,
    }
    await db.families.delete_one({"id": family_id})

    await log_event(
        action="family_delete",
        entity_type="family",
        entity_id=family_id,
        user=user.get("email", "system"),
        details={"name": enrich_family(family)["name"], "deleted": deleted}
    )
    logger.info(f"[FAMILY_DELETE] {family_id} cascade={deleted}")
    return {"success": True, "deleted": deleted}
