"""
ABC Cours CRM - Permission System
Granular permission keys + role presets + FastAPI dependencies.
Permissions are the source of truth. Roles are presets only.
"""

import logging
from typing import Dict
from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "families.view",
    "families.create",
    "families.edit",
    "families.delete",

    "students.view",
    "students.create",
    "students.edit",
    "students.delete",

    "subjects.view",
    "subjects.manage",

    "professors.view",
    "professors.manage",

    "settlement_notes.view",
    "settlement_notes.create",
    "settlement_notes.edit",
    "settlement_notes.delete",

    "coupons.view",
    "coupons.use",
    "coupons.manage",

    "rdv.view",
    "rdv.manage",

    "activity.view",

    "users.manage",
]

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS (defaults when creating a user with a role)
# ════════════════════════════════════════════════════════════════════════

ROLE_PRESETS: Dict[str, Dict[str, bool]] = {
    "admin": {k: True for k in ALL_PERMISSION_KEYS},

    "professor": {
        "families.view": True, "families.create": False, "families.edit": False, "families.delete": False,
        "students.view": True, "students.create": False, "students.edit": False, "students.delete": False,
        "subjects.view": True, "subjects.manage": False,
        "professors.view": True, "professors.manage": False,
        "settlement_notes.view": False, "settlement_notes.create": False,
        "settlement_notes.edit": False, "settlement_notes.delete": False,
        "coupons.view": True, "coupons.use": True, "coupons.manage": False,
        "rdv.view": True, "rdv.manage": False,
        "activity.view": False,
        "users.manage": False,
    },
}

VALID_ROLES = list(ROLE_PRESETS.keys())


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Returns the default permissions for a role."""
    return dict(ROLE_PRESETS.get(role, ROLE_PRESETS["professor"]))


# ════════════════════════════════════════════════════════════════════════
# PERMISSION CHECK HELPERS
# ════════════════════════════════════════════════════════════════════════

def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


def user_has_permission(user: dict, key: str) -> bool:
    """Check if user has a specific permission."""
    if is_admin(user):
        return True
    perms = user.get("permissions", {})
    return perms.get(key, False) is True


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: user: dict = Depends(require_permission("families.view"))
    """
    from routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('email')} "
                f"key={permission_key} role={user.get('role')}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission requise: {permission_key}"
            )
        return user

    return _check
