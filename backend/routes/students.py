"""
ABC Cours CRM - Routes Élèves
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from config import db, now_iso, parse_iso
from models import StudentCreate, StudentUpdate, StudentStatus, SCHOOL_LEVEL_LABELS
from services.permissions import require_permission
from services.pagination import page_window, pagination_meta, regex_filter

router = APIRouter(prefix="/students", tags=["Students"])


def compute_age(date_of_birth: Optional[str], today=None) -> Optional[int]:
    if not date_of_birth:
        return None
    born = parse_iso(date_of_birth).date()
    today = today or datetime.now(timezone.utc).date()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def enrich_student(student: dict) -> dict:
    student["full_name"] = f"{student.get('first_name', '')} {student.get('last_name', '')}".strip()
    student["age"] = compute_age(student.get("date_of_birth"))
    level = (student.get("school") or {}).get("level")
    student["school_level_label"] = SCHOOL_LEVEL_LABELS.get(level, "")
    return student


@router.get("")
async def list_students(
    family_id: Optional[str] = None,
    status: Optional[StudentStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(require_permission("students.view"))
):
    query = {}
    if family_id:
        query["family_id"] = family_id
    if status:
        query["status"] = status.value
    if search and search.strip():
        query.update(regex_filter(["first_name", "last_name", "school.name"], search))

    skip, limit = page_window(page, limit)
    students = await db.students.find(query, {"_id": 0}) \
        .sort([("last_name", 1), ("first_name", 1)]).skip(skip).limit(limit).to_list(limit)
    total = await db.students.count_documents(query)
    return {
        "students": [enrich_student(s) for s in students],
        "pagination": pagination_meta(page, limit, total)
    }


@router.get("/{student_id}")
async def get_student(student_id: str, user: dict = Depends(require_permission("students.view"))):
    student = await db.students.find_one({"id": student_id}, {"_id": 0})
    if not student:
        raise HTTPException(status_code=404, detail="Élève non trouvé")
    return {"student": enrich_student(student)}


@router.post("", status_code=201)
async def create_student(data: StudentCreate, user: dict = Depends(require_permission("students.create"))):
    family = await db.families.find_one({"id": data.family_id}, {"_id": 0, "id": 1})
    if not family:
        raise HTTPException(status_code=400, detail="Famille introuvable")

    now = now_iso()
    student = {
        "id": str(uuid.uuid4()),
        **data.model_dump(mode="json"),
        "settlement_note_ids": [],
        "created_at": now,
        "updated_at": now,
    }
    await db.students.insert_one(student)
    student.pop("_id", None)

    await db.families.update_one(
        {"id": data.family_id},
        {"$addToSet": {"students": student["id"]}, "$set": {"updated_at": now}}
    )
    return {"success": True, "student": enrich_student(student)}


@router.put("/{student_id}")
async def update_student(
    student_id: str,
    data: StudentUpdate,
    user: dict = Depends(require_permission("students.edit"))
):
    student = await db.students.find_one({"id": student_id}, {"_id": 0, "id": 1})
    if not student:
        raise HTTPException(status_code=404, detail="Élève non trouvé")

    update_data = data.model_dump(mode="json", exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="Aucune donnée à mettre à jour")
    update_data["updated_at"] = now_iso()

    await db.students.update_one({"id": student_id}, {"$set": update_data})
    updated = await db.students.find_one({"id": student_id}, {"_id": 0})
    return {"success": True, "student": enrich_student(updated)}


@router.delete("/{student_id}")
async def delete_student(student_id: str, user: dict = Depends(require_permission("students.delete"))):
    student = await db.students.find_one({"id": student_id}, {"_id": 0})
    if not student:
        raise HTTPException(status_code=404, detail="Élève non trouvé")

    if await db.settlement_notes.count_documents({"student_ids": student_id}):
        raise HTTPException(
            status_code=400,
            detail="Impossible de supprimer un élève lié à une note de règlement"
        )

    await db.students.delete_one({"id": student_id})
    await db.families.update_one(
        {"id": student["family_id"]},
        {"$pull": {"students": student_id}, "$set": {"updated_at": now_iso()}}
    )
    return {"success": True}
