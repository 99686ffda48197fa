"""
ABC Cours CRM - Routes Matières
"""

import re
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from config import db, now_iso
from models import SubjectCreate, SubjectUpdate, SUBJECT_CATEGORIES
from services.permissions import require_permission
from services.pagination import regex_filter

router = APIRouter(prefix="/subjects", tags=["Subjects"])


async def _name_taken(name: str, exclude_id: Optional[str] = None) -> bool:
    query = {"name": {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    return await db.subjects.count_documents(query) > 0


@router.get("")
async def list_subjects(
    search: Optional[str] = None,
    category: Optional[str] = None,
    include_inactive: bool = False,
    user: dict = Depends(require_permission("subjects.view"))
):
    """Matières actives (par défaut), triées par nom."""
    query = {}
    if not include_inactive:
        query["is_active"] = True
    if category:
        query["category"] = category
    if search and search.strip():
        query.update(regex_filter(["name", "description"], search))

    subjects = await db.subjects.find(query, {"_id": 0}).sort("name", 1).to_list(500)
    return {"subjects": subjects, "count": len(subjects)}


@router.get("/categories")
async def list_categories(user: dict = Depends(require_permission("subjects.view"))):
    return {"categories": SUBJECT_CATEGORIES}


@router.get("/{subject_id}")
async def get_subject(subject_id: str, user: dict = Depends(require_permission("subjects.view"))):
    subject = await db.subjects.find_one({"id": subject_id}, {"_id": 0})
    if not subject:
        raise HTTPException(status_code=404, detail="Matière non trouvée")
    return {"subject": subject}


@router.post("", status_code=201)
async def create_subject(data: SubjectCreate, user: dict = Depends(require_permission("subjects.manage"))):
    if await _name_taken(data.name):
        raise HTTPException(status_code=400, detail="Une matière avec ce nom existe déjà")

    now = now_iso()
    subject = {"id": str(uuid.uuid4()), **data.model_dump(), "created_at": now, "updated_at": now}
    await db.subjects.insert_one(subject)
    subject.pop("_id", None)
    return {"success": True, "subject": subject}


@router.put("/{subject_id}")
async def update_subject(
    subject_id: str,
    data: SubjectUpdate,
    user: dict = Depends(require_permission("subjects.manage"))
):
    if not await db.subjects.find_one({"id": subject_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Matière non trouvée")
    if data.name and await _name_taken(data.name, exclude_id=subject_id):
        raise HTTPException(status_code=400, detail="Une matière avec ce nom existe déjà")

    update_data = data.model_dump(exclude_none=True)
    update_data["updated_at"] = now_iso()
    await db.subjects.update_one({"id": subject_id}, {"$set": update_data})
    return {"success": True, "subject": await db.subjects.find_one({"id": subject_id}, {"_id": 0})}


@router.delete("/{subject_id}")
async def delete_subject(subject_id: str, user: dict = Depends(require_permission("subjects.manage"))):
    if not await db.subjects.find_one({"id": subject_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Matière non trouvée")

    if await db.settlement_notes.count_documents({"subjects.subject_id": subject_id}):
        raise HTTPException(
            status_code=400,
            detail="Impossible de supprimer une matière utilisée dans une note de règlement"
        )

    await db.subjects.delete_one({"id": subject_id})
    await db.professors.update_many({"subjects": subject_id}, {"$pull": {"subjects": subject_id}})
    return {"success": True}
