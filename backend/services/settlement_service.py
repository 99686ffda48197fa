"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ABC Cours CRM - Cycle de vie des notes de règlement (NDR)                   ║
║                                                                              ║
║  CRÉATION:                                                                   ║
║  - famille, élèves (de la famille) et matières doivent exister               ║
║  - calcul des totaux / marge                                                 ║
║  - liaison famille + élèves, génération de la série de coupons               ║
║  - la famille passe "client"                                                 ║
║                                                                              ║
║  SUPPRESSION:                                                                ║
║  - cascade série(s) + coupons, déliaison famille + élèves                    ║
║  - la famille redevient "prospect" si plus aucune NDR                        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from typing import List, Optional, Tuple

from config import db, now_iso, get_department_from_postal_code
from services.settlement_calculator import compute_totals, total_amount
from services.coupon_generation import generate_series_for_note
from services.family_status import sync_family_status, expected_status
from services.event_logger import log_event

logger = logging.getLogger("settlement_service")

NO_NOTE_LEFT_REASON = "Plus aucune note de règlement après suppression"


class SettlementNoteError(Exception):
    """Business rule violation on a settlement note"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# ════════════════════════════════════════════════════════════════════════════
# VALIDATION DES RÉFÉRENCES
# ════════════════════════════════════════════════════════════════════════════

async def _check_references(family_id: str, student_ids: List[str], subject_ids: List[str]) -> dict:
    family = await db.families.find_one({"id": family_id}, {"_id": 0})
    if not family:
        raise SettlementNoteError("Famille introuvable")

    if student_ids:
        students = await db.students.find(
            {"id": {"$in": student_ids}}, {"_id": 0, "id": 1, "family_id": 1}
        ).to_list(None)
        if len(students) != len(set(student_ids)):
            raise SettlementNoteError("Un ou plusieurs élèves introuvables")
        if any(s.get("family_id") != family_id for s in students):
            raise SettlementNoteError("Les élèves doivent appartenir à la famille")

    unique_subjects = set(subject_ids)
    found = await db.subjects.count_documents({"id": {"$in": list(unique_subjects)}})
    if found != len(unique_subjects):
        raise SettlementNoteError("Une ou plusieurs matières introuvables")

    return family


def _note_fields(data, family: dict) -> dict:
    """Champs saisis + champs calculés, prêts pour MongoDB."""
    subjects = [s.model_dump() for s in data.subjects]
    department = data.department
    if not department:
        department = get_department_from_postal_code(
            (family.get("address") or {}).get("postal_code")
        )
    fields = {
        "student_ids": list(dict.fromkeys(data.student_ids)),
        "client_name": data.client_name,
        "department": department,
        "payment_method": data.payment_method.value,
        "payment_type": data.payment_type.value,
        "payment_schedule": data.payment_schedule.model_dump() if data.payment_schedule else None,
        "subjects": subjects,
        "charges": data.charges,
        "due_date": data.due_date,
        "notes": data.notes or "",
    }
    fields.update(compute_totals(subjects, data.charges))
    return fields


# ════════════════════════════════════════════════════════════════════════════
# CRÉATION / MISE À JOUR
# ════════════════════════════════════════════════════════════════════════════

async def create_settlement_note(data, user: dict) -> Tuple[dict, dict]:
    """Crée une NDR + sa série de coupons. Retourne (note, series)."""
    family = await _check_references(
        data.family_id, data.student_ids, [s.subject_id for s in data.subjects]
    )

    now = now_iso()
    note = {
        "id": str(uuid.uuid4()),
        "family_id": data.family_id,
        **_note_fields(data, family),
        "status": "pending",
        "paid_at": None,
        "coupon_series_id": None,
        "created_by": user.get("id"),
        "created_at": now,
        "updated_at": now,
    }
    await db.settlement_notes.insert_one(note)
    note.pop("_id", None)

    await db.families.update_one(
        {"id": data.family_id},
        {"$addToSet": {"settlement_notes": note["id"]}}
    )
    if note["student_ids"]:
        await db.students.update_many(
            {"id": {"$in": note["student_ids"]}},
            {"$addToSet": {"settlement_note_ids": note["id"]}}
        )

    series, _ = await generate_series_for_note(note, user.get("id"))
    note["coupon_series_id"] = series["id"]
    await db.settlement_notes.update_one(
        {"id": note["id"]}, {"$set": {"coupon_series_id": series["id"]}}
    )

    await sync_family_status(
        data.family_id, user.get("email", "system"), reason="Note de règlement créée"
    )

    await log_event(
        action="settlement_note_create",
        entity_type="settlement_note",
        entity_id=note["id"],
        user=user.get("email", "system"),
        details={"client_name": note["client_name"], "total_revenue": note["total_revenue"],
                 "margin_amount": note["margin_amount"]},
        related={"family_id": note["family_id"], "coupon_series_id": series["id"]}
    )
    logger.info(
        f"[NDR_CREATE] {note['id']} famille={note['family_id']} "
        f"CA={note['total_revenue']} marge={note['margin_amount']}"
    )
    return note, series


async def replace_settlement_note(note_id: str, data, user: dict) -> dict:
    """Mise à jour complète avec recalcul. La famille d'une NDR ne change pas."""
    existing = await db.settlement_notes.find_one({"id": note_id}, {"_id": 0})
    if not existing:
        raise SettlementNoteError("Note de règlement non trouvée", 404)
    if data.family_id != existing["family_id"]:
        raise SettlementNoteError("La famille d'une note de règlement ne peut pas être modifiée")

    family = await _check_references(
        data.family_id, data.student_ids, [s.subject_id for s in data.subjects]
    )
    fields = _note_fields(data, family)
    if data.status is not None:
        fields["status"] = data.status.value
        if data.status.value == "paid" and not existing.get("paid_at"):
            fields["paid_at"] = now_iso()
    fields["updated_at"] = now_iso()

    await db.settlement_notes.update_one({"id": note_id}, {"$set": fields})

    removed = set(existing.get("student_ids", [])) - set(fields["student_ids"])
    if removed:
        await db.students.update_many(
            {"id": {"$in": list(removed)}}, {"$pull": {"settlement_note_ids": note_id}}
        )
    if fields["student_ids"]:
        await db.students.update_many(
            {"id": {"$in": fields["student_ids"]}},
            {"$addToSet": {"settlement_note_ids": note_id}}
        )

    await log_event(
        action="settlement_note_update",
        entity_type="settlement_note",
        entity_id=note_id,
        user=user.get("email", "system"),
        details={"margin_amount": fields["margin_amount"]},
        related={"family_id": existing["family_id"]}
    )
    return await db.settlement_notes.find_one({"id": note_id}, {"_id": 0})


# ════════════════════════════════════════════════════════════════════════════
# SUPPRESSION
# ════════════════════════════════════════════════════════════════════════════

async def deletion_preview(note_id: str) -> dict:
    """Ce que la suppression d'une NDR emporterait avec elle."""
    note = await db.settlement_notes.find_one({"id": note_id}, {"_id": 0})
    if not note:
        raise SettlementNoteError("Note de règlement non trouvée", 404)

    series_list = await db.coupon_series.find(
        {"settlement_note_id": note_id}, {"_id": 0}
    ).to_list(None)

    details = []
    coupon_count = available_count = used_count = 0
    for series in series_list:
        used = await db.coupons.count_documents({"coupon_series_id": series["id"], "status": "used"})
        available = await db.coupons.count_documents({"coupon_series_id": series["id"], "status": "available"})
        total = await db.coupons.count_documents({"coupon_series_id": series["id"]})
        details.append({
            "id": series["id"],
            "total_coupons": series.get("total_coupons", 0),
            "used_coupons": used,
            "remaining_coupons": available,
            "hourly_rate": series.get("hourly_rate", 0),
            "status": series.get("status"),
        })
        coupon_count += total
        available_count += available
        used_count += used

    remaining_notes = await db.settlement_notes.count_documents(
        {"family_id": note["family_id"], "id": {"$ne": note_id}}
    )
    family = await db.families.find_one({"id": note["family_id"]}, {"_id": 0, "status": 1})
    current_status = (family or {}).get("status", "prospect")
    next_status = expected_status(remaining_notes)

    family_status_change = None
    if family and current_status != next_status:
        family_status_change = {
            "from": current_status,
            "to": next_status,
            "reason": NO_NOTE_LEFT_REASON,
        }

    cascade_operations = []
    if series_list:
        cascade_operations.append(f"Suppression de {len(series_list)} série(s) de coupons")
    if coupon_count:
        cascade_operations.append(f"Suppression de {coupon_count} coupon(s)")
    if note.get("student_ids"):
        cascade_operations.append(f"Retrait de la note pour {len(note['student_ids'])} élève(s)")

    return {
        "settlement_note": {
            "id": note["id"],
            "client_name": note.get("client_name"),
            "department": note.get("department"),
            "total_amount": total_amount(note),
            "status": note.get("status"),
            "created_at": note.get("created_at"),
        },
        "items_to_delete": {
            "coupon_series": {"count": len(series_list), "details": details},
            "coupons": {
                "count": coupon_count,
                "available_count": available_count,
                "used_count": used_count,
            },
        },
        "total_items": len(series_list) + coupon_count,
        "impacts": {
            "family_status_change": family_status_change,
            "cascade_operations": cascade_operations,
        },
    }


async def delete_settlement_note(note_id: str, user: dict) -> dict:
    note = await db.settlement_notes.find_one({"id": note_id}, {"_id": 0})
    if not note:
        raise SettlementNoteError("Note de règlement non trouvée", 404)

    series_ids = [
        s["id"] for s in await db.coupon_series.find(
            {"settlement_note_id": note_id}, {"_id": 0, "id": 1}
        ).to_list(None)
    ]
    deleted_coupons = 0
    if series_ids:
        deleted_coupons = (await db.coupons.delete_many(
            {"coupon_series_id": {"$in": series_ids}}
        )).deleted_count
        await db.coupon_series.delete_many({"id": {"$in": series_ids}})

    await db.settlement_notes.delete_one({"id": note_id})
    await db.students.update_many(
        {"settlement_note_ids": note_id}, {"$pull": {"settlement_note_ids": note_id}}
    )
    await db.families.update_one(
        {"id": note["family_id"]}, {"$pull": {"settlement_notes": note_id}}
    )

    status = await sync_family_status(
        note["family_id"], user.get("email", "system"), reason=NO_NOTE_LEFT_REASON
    )

    await log_event(
        action="settlement_note_delete",
        entity_type="settlement_note",
        entity_id=note_id,
        user=user.get("email", "system"),
        details={"client_name": note.get("client_name"), "deleted_coupons": deleted_coupons,
                 "deleted_series": len(series_ids)},
        related={"family_id": note["family_id"]}
    )

    return {
        "deleted_coupons": deleted_coupons,
        "deleted_series": len(series_ids),
        "status_changed": bool(status.get("changed")),
        "family_status": status.get("to"),
    }


# ════════════════════════════════════════════════════════════════════════════
# ÉCHÉANCES
# ════════════════════════════════════════════════════════════════════════════

def is_overdue(note: dict, now: Optional[str] = None) -> bool:
    """En retard: déjà marquée "overdue", ou "pending" avec une échéance passée."""
    if note.get("status") == "overdue":
        return True
    now = now or now_iso()
    due = note.get("due_date")
    return note.get("status") == "pending" and bool(due) and due < now


async def mark_overdue_notes() -> int:
    """Passe en "overdue" les NDR "pending" dont l'échéance est dépassée."""
    result = await db.settlement_notes.update_many(
        {"status": "pending", "due_date": {"$ne": None, "$lt": now_iso()}},
        {"$set": {"status": "overdue", "updated_at": now_iso()}}
    )
    if result.modified_count:
        logger.info(f"[NDR_OVERDUE] {result.modified_count} note(s) passée(s) en retard")
    return result.modified_count
