"""
ABC Cours CRM - Routes Professeurs
"""

import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from config import db, now_iso
from models import ProfessorCreate, ProfessorUpdate, ProfessorStatusUpdate, ProfessorStatus
from services.permissions import require_permission
from services.pagination import page_window, pagination_meta, regex_filter

router = APIRouter(prefix="/professors", tags=["Professors"])


async def _check_subjects(subject_ids: List[str]):
    unique = set(subject_ids)
    if unique and await db.subjects.count_documents({"id": {"$in": list(unique)}}) != len(unique):
        raise HTTPException(status_code=400, detail="Une ou plusieurs matières introuvables")


async def _check_email(email: str, exclude_id: Optional[str] = None):
    query = {"email": email}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    if await db.professors.count_documents(query):
        raise HTTPException(status_code=400, detail="Un professeur avec cet email existe déjà")


@router.get("")
async def list_professors(
    status: Optional[ProfessorStatus] = None,
    subject_id: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(require_permission("professors.view"))
):
    query = {}
    if status:
        query["status"] = status.value
    if subject_id:
        query["subjects"] = subject_id
    if search and search.strip():
        query.update(regex_filter(["first_name", "last_name", "email"], search))

    skip, limit = page_window(page, limit)
    professors = await db.professors.find(query, {"_id": 0}) \
        .sort([("last_name", 1), ("first_name", 1)]).skip(skip).limit(limit).to_list(limit)
    total = await db.professors.count_documents(query)
    return {"professors": professors, "pagination": pagination_meta(page, limit, total)}


@router.get("/subject/{subject_id}")
async def professors_by_subject(subject_id: str, user: dict = Depends(require_permission("professors.view"))):
    """Professeurs actifs enseignant une matière."""
    professors = await db.professors.find(
        {"subjects": subject_id, "status": "active"}, {"_id": 0}
    ).sort("last_name", 1).to_list(200)
    return {"professors": professors, "count": len(professors)}


@router.get("/{professor_id}")
async def get_professor(professor_id: str, user: dict = Depends(require_permission("professors.view"))):
    professor = await db.professors.find_one({"id": professor_id}, {"_id": 0})
    if not professor:
        raise HTTPException(status_code=404, detail="Professeur non trouvé")
    professor["subject_details"] = await db.subjects.find(
        {"id": {"$in": professor.get("subjects", [])}}, {"_id": 0, "id": 1, "name": 1, "category": 1}
    ).to_list(None)
    return {"professor": professor}


@router.post("", status_code=201)
async def create_professor(data: ProfessorCreate, user: dict = Depends(require_permission("professors.manage"))):
    await _check_email(data.email)
    await _check_subjects(data.subjects)

    now = now_iso()
    professor = {"id": str(uuid.uuid4()), **data.model_dump(mode="json"), "created_at": now, "updated_at": now}
    await db.professors.insert_one(professor)
    professor.pop("_id", None)
    return {"success": True, "professor": professor}


@router.put("/{professor_id}")
async def update_professor(
    professor_id: str,
    data: ProfessorUpdate,
    user: dict = Depends(require_permission("professors.manage"))
):
    if not await db.professors.find_one({"id": professor_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Professeur non trouvé")
    if data.email:
        await _check_email(data.email, exclude_id=professor_id)
    if data.subjects is not None:
        await _check_subjects(data.subjects)

    update_data = data.model_dump(mode="json", exclude_none=True)
    update_data["updated_at"] = now_iso()
    await db.professors.update_one({"id": professor_id}, {"$set": update_data})
    return {"success": True, "professor": await db.professors.find_one({"id": professor_id}, {"_id": 0})}


@router.patch("/{professor_id}/status")
async def update_professor_status(
    professor_id: str,
    data: ProfessorStatusUpdate,
    user: dict = Depends(require_permission("professors.manage"))
):
    result = await db.professors.update_one(
        {"id": professor_id},
        {"$set": {"status": data.status.value, "updated_at": now_iso()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Professeur non trouvé")
    return {"success": True, "professor": await db.professors.find_one({"id": professor_id}, {"_id": 0})}
