"""
ABC Cours CRM - Prospect / Client status

A family is "client" as soon as at least one settlement note references it,
"prospect" otherwise. Every flip is written to the event log.
"""

import logging
from config import db, now_iso
from services.event_logger import log_event

logger = logging.getLogger("family_status")


def expected_status(settlement_note_count: int) -> str:
    return "client" if settlement_note_count > 0 else "prospect"


async def sync_family_status(family_id: str, user_email: str = "system", reason: str = "") -> dict:
    """
    Recompute the family status from its settlement notes.

    Returns:
        {"from": old_status, "to": new_status, "changed": bool}
        or {} when the family does not exist.
    """
    family = await db.families.find_one({"id": family_id}, {"_id": 0, "status": 1})
    if not family:
        return {}

    note_ids = [
        n["id"] for n in await db.settlement_notes.find(
            {"family_id": family_id}, {"_id": 0, "id": 1}
        ).to_list(None)
    ]
    old_status = family.get("status", "prospect")
    new_status = expected_status(len(note_ids))

    update = {"settlement_notes": note_ids, "updated_at": now_iso()}
    if new_status != old_status:
        update["status"] = new_status
    await db.families.update_one({"id": family_id}, {"$set": update})

    if new_status != old_status:
        await log_event(
            action="family_status_change",
            entity_type="family",
            entity_id=family_id,
            user=user_email,
            details={"old_value": old_status, "new_value": new_status, "reason": reason}
        )
        logger.info(f"[FAMILY_STATUS] {family_id}: {old_status} -> {new_status} ({reason})")

    return {"from": old_status, "to": new_status, "changed": new_status != old_status}
