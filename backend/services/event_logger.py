"""
ABC Cours CRM - Event Logger

Audit trail of domain events (status flips, NDR lifecycle, coupon usage).
Single function to call from any route/service.
"""

import uuid
from config import db, now_iso


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    details: dict = None,
    related: dict = None
):
    """
    Write a single event to the event_log collection.

    Args:
        action: e.g. family_status_change, settlement_note_create, coupon_use
        entity_type: family | settlement_note | coupon_series | coupon | rdv
        entity_id: ID of the primary entity
        user: email of user performing action
        details: free-form dict (reason, old_value, new_value, etc.)
        related: linked entity IDs (family_id, settlement_note_id, coupon_series_id, etc.)
    """
    await db.event_log.insert_one({
        "id": str(uuid.uuid4()),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "user": user,
        "details": details or {},
        "related": related or {},
        "created_at": now_iso()
    })
