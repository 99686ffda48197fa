"""
ABC Cours CRM - Routes Event Log (audit trail)
"""

import re
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from config import db
from services.permissions import require_permission
from services.pagination import regex_filter

router = APIRouter(prefix="/event-log", tags=["EventLog"])


@router.get("")
async def list_events(
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    user: Optional[str] = Query(None, alias="user_filter"),
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    current_user: dict = Depends(require_permission("activity.view"))
):
    """Liste les events avec filtres"""
    query = {}
    if action:
        query["action"] = action
    if entity_type:
        query["entity_type"] = entity_type
    if entity_id:
        query["$or"] = [
            {"entity_id": entity_id},
            {"related.family_id": entity_id},
            {"related.settlement_note_id": entity_id},
            {"related.coupon_series_id": entity_id},
            {"related.professor_id": entity_id},
        ]
    if user:
        query["user"] = {"$regex": re.escape(user), "$options": "i"}
    if search and search.strip():
        search_filter = regex_filter(["action", "details.reason", "details.client_name", "user"], search)
        if "$or" in query:
            query = {"$and": [query, search_filter]}
        else:
            query.update(search_filter)

    events = await db.event_log.find(
        query, {"_id": 0}
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)

    total = await db.event_log.count_documents(query)

    return {"events": events, "count": len(events), "total": total}


@router.get("/actions")
async def list_action_types(
    current_user: dict = Depends(require_permission("activity.view"))
):
    """Liste les types d'actions distincts dans le log"""
    actions = await db.event_log.distinct("action")
    return {"actions": sorted(actions)}


@router.get("/{event_id}")
async def get_event(
    event_id: str,
    current_user: dict = Depends(require_permission("activity.view"))
):
    """Détail d'un event"""
    event = await db.event_log.find_one({"id": event_id}, {"_id": 0})
    if not event:
        raise HTTPException(status_code=404, detail="Event non trouvé")
    return event
