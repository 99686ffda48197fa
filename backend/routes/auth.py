"""
ABC Cours CRM - Routes Auth
Login / Logout / Session / User CRUD with granular permissions.
"""

from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta
import uuid

from models.auth import UserLogin, UserCreate, UserUpdate, PasswordChange
from config import db, hash_password, generate_token, now_iso, SESSION_TTL_DAYS
from services.activity_logger import log_activity
from services.permissions import (
    get_preset_permissions,
    VALID_ROLES,
    ALL_PERMISSION_KEYS,
    ROLE_PRESETS,
    require_permission,
)

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


# ==================== HELPERS ====================

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Token d'accès requis")

    token = credentials.credentials
    session = await db.sessions.find_one({
        "token": token,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Session expirée ou token invalide")

    user = await db.users.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="Utilisateur non trouvé")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    if not user.get("permissions"):
        user["permissions"] = get_preset_permissions(user.get("role", "professor"))

    return user


def public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "email": user["email"],
        "first_name": user.get("first_name", ""),
        "last_name": user.get("last_name", ""),
        "role": user.get("role", "professor"),
        "permissions": user.get("permissions") or get_preset_permissions(user.get("role", "professor")),
    }


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin, request: Request):
    """Connexion utilisateur."""
    user = await db.users.find_one(
        {"email": data.email.lower().strip()},
        {"_id": 0}
    )

    if not user or user.get("password") != hash_password(data.password):
        raise HTTPException(status_code=401, detail="Email ou mot de passe incorrect")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    token = generate_token()
    expires_at = (datetime.now(timezone.utc) + timedelta(days=SESSION_TTL_DAYS)).isoformat()

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })
    await db.users.update_one({"id": user["id"]}, {"$set": {"last_login": now_iso()}})

    await log_activity(
        user=user,
        action="login",
        entity_type="user",
        entity_id=user["id"],
        ip_address=request.client.host if request.client else None
    )

    return {"token": token, "user": public_user(user)}


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    await log_activity(user=user, action="logout", entity_type="user", entity_id=user["id"])
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Retourne user + permissions."""
    return user


@router.put("/password")
async def change_password(data: PasswordChange, user: dict = Depends(get_current_user)):
    """Changement de son propre mot de passe."""
    stored = await db.users.find_one({"id": user["id"]}, {"_id": 0, "password": 1})
    if not stored or stored.get("password") != hash_password(data.current_password):
        raise HTTPException(status_code=400, detail="Mot de passe actuel incorrect")

    await db.users.update_one(
        {"id": user["id"]},
        {"$set": {"password": hash_password(data.new_password), "updated_at": now_iso()}}
    )
    await log_activity(user=user, action="change_password", entity_type="user", entity_id=user["id"])
    return {"success": True}


# ==================== USER CRUD (users.manage) ====================

@router.get("/users")
async def list_users(user: dict = Depends(require_permission("users.manage"))):
    """Liste utilisateurs."""
    users = await db.users.find({}, {"_id": 0, "password": 0}).to_list(200)
    return {"users": users, "count": len(users)}


@router.post("/users", status_code=201)
async def create_user(data: UserCreate, user: dict = Depends(require_permission("users.manage"))):
    """Créer un utilisateur."""
    existing = await db.users.find_one({"email": data.email})
    if existing:
        raise HTTPException(status_code=400, detail="Cet email existe déjà")

    new_user = {
        "id": str(uuid.uuid4()),
        "email": data.email,
        "password": hash_password(data.password),
        "first_name": data.first_name.strip(),
        "last_name": data.last_name.strip(),
        "phone": data.phone or "",
        "role": data.role,
        "permissions": data.permissions or get_preset_permissions(data.role),
        "is_active": True,
        "last_login": None,
        "created_at": now_iso(),
        "updated_at": now_iso(),
        "created_by": user.get("id")
    }

    await db.users.insert_one(new_user)

    await log_activity(
        user=user,
        action="create_user",
        entity_type="user",
        entity_id=new_user["id"],
        entity_name=new_user["email"],
        details={"role": data.role}
    )

    new_user.pop("password", None)
    new_user.pop("_id", None)
    return {"success": True, "user": new_user}


@router.put("/users/{user_id}")
async def update_user(user_id: str, data: UserUpdate, user: dict = Depends(require_permission("users.manage"))):
    """Mettre à jour un utilisateur."""
    target = await db.users.find_one({"id": user_id})
    if not target:
        raise HTTPException(status_code=404, detail="Utilisateur non trouvé")

    if user_id == user.get("id"):
        if data.is_active is False:
            raise HTTPException(status_code=400, detail="Impossible de désactiver votre propre compte")
        if data.role is not None and data.role != target.get("role"):
            raise HTTPException(status_code=400, detail="Impossible de modifier votre propre rôle")

    update_data = data.model_dump(exclude_none=True)
    if data.role is not None and data.permissions is None:
        update_data["permissions"] = get_preset_permissions(data.role)
    update_data["updated_at"] = now_iso()

    await db.users.update_one({"id": user_id}, {"$set": update_data})
    if data.is_active is False:
        await db.sessions.delete_many({"user_id": user_id})

    await log_activity(
        user=user,
        action="update_user",
        entity_type="user",
        entity_id=user_id,
        entity_name=target.get("email"),
        details={k: v for k, v in update_data.items() if k != "updated_at"}
    )

    updated = await db.users.find_one({"id": user_id}, {"_id": 0, "password": 0})
    return {"success": True, "user": updated}


@router.delete("/users/{user_id}")
async def deactivate_user(user_id: str, user: dict = Depends(require_permission("users.manage"))):
    """Désactiver un utilisateur."""
    target = await db.users.find_one({"id": user_id})
    if not target:
        raise HTTPException(status_code=404, detail="Utilisateur non trouvé")

    if user_id == user.get("id"):
        raise HTTPException(status_code=400, detail="Impossible de désactiver votre propre compte")

    await db.users.update_one(
        {"id": user_id},
        {"$set": {"is_active": False, "deactivated_at": now_iso()}}
    )
    await db.sessions.delete_many({"user_id": user_id})

    await log_activity(
        user=user,
        action="deactivate_user",
        entity_type="user",
        entity_id=user_id,
        entity_name=target.get("email")
    )

    return {"success": True}


# ==================== PERMISSION INTROSPECTION ====================

@router.get("/permission-keys")
async def list_permission_keys(user: dict = Depends(require_permission("users.manage"))):
    """Returns all permission keys and role presets (for user management UI)."""
    return {
        "keys": ALL_PERMISSION_KEYS,
        "presets": ROLE_PRESETS,
        "roles": VALID_ROLES
    }


# ==================== ACTIVITY LOG ====================

@router.get("/activity-logs")
async def get_activity_logs(
    user_id: str = None,
    entity_type: str = None,
    action: str = None,
    limit: int = 100,
    skip: int = 0,
    user: dict = Depends(require_permission("activity.view"))
):
    from services.activity_logger import get_activity_logs as get_logs
    return await get_logs(user_id, entity_type, action, limit, skip)
