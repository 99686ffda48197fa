"""
ABC Cours CRM - API Backend
Familles, élèves, professeurs, notes de règlement et coupons.

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import logging

from config import db, CORS_ORIGINS, SCHEDULER_ENABLED

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("abc_cours")

API_VERSION = "1.0.0"

# Créer l'app
app = FastAPI(
    title="ABC Cours CRM",
    description="CRM de gestion des cours particuliers",
    version=API_VERSION
)


# ==================== ERREURS ====================

class CatchAllExceptionMiddleware(BaseHTTPMiddleware):
    """Toute exception non gérée devient une 500 JSON, avec trace dans les logs."""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                f"{type(exc).__name__} on {request.method} {request.url.path} (500): {exc}",
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": type(exc).__name__}
            )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "path": ".".join(str(p) for p in err.get("loc", []) if p != "body"),
            "msg": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    logger.info(f"[VALIDATION] {request.method} {request.url.path}: {len(details)} erreur(s)")
    return JSONResponse(status_code=400, content={"error": "Validation failed", "details": details})


app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_middleware(CatchAllExceptionMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import (
    auth,
    families,
    students,
    subjects,
    professors,
    settlement_notes,
    coupon_series,
    coupons,
    rdv,
    event_log,
)

# Routes avec préfixe /api
app.include_router(auth.router, prefix="/api")
app.include_router(families.router, prefix="/api")
app.include_router(students.router, prefix="/api")
app.include_router(subjects.router, prefix="/api")
app.include_router(professors.router, prefix="/api")
app.include_router(settlement_notes.router, prefix="/api")
app.include_router(coupon_series.router, prefix="/api")
app.include_router(coupons.router, prefix="/api")
app.include_router(rdv.router, prefix="/api")
app.include_router(event_log.router, prefix="/api")

# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "ABC Cours CRM API",
        "version": API_VERSION,
        "status": "running",
        "docs": "/docs"
    }


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": API_VERSION}


# ==================== STARTUP / SHUTDOWN ====================

async def create_indexes():
    await db.users.create_index("email", unique=True)
    await db.users.create_index("id", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")
    await db.families.create_index("id", unique=True)
    await db.families.create_index("status")
    await db.families.create_index("created_at")
    await db.students.create_index("id", unique=True)
    await db.students.create_index("family_id")
    await db.subjects.create_index("id", unique=True)
    await db.professors.create_index("id", unique=True)
    await db.professors.create_index("email", unique=True)
    await db.professors.create_index("subjects")
    await db.settlement_notes.create_index("id", unique=True)
    await db.settlement_notes.create_index("family_id")
    await db.settlement_notes.create_index([("status", 1), ("due_date", 1)])
    await db.coupon_series.create_index("id", unique=True)
    await db.coupon_series.create_index("settlement_note_id")
    await db.coupon_series.create_index("family_id")
    await db.coupons.create_index("id", unique=True)
    await db.coupons.create_index("code", unique=True)
    await db.coupons.create_index("coupon_series_id")
    await db.rdvs.create_index("id", unique=True)
    await db.rdvs.create_index([("family_id", 1), ("date", 1)])
    await db.rdvs.create_index([("professor_id", 1), ("date", 1)])
    await db.rdvs.create_index([("assigned_admin_id", 1), ("date", 1)])
    await db.event_log.create_index("created_at")
    await db.activity_logs.create_index("created_at")


@app.on_event("startup")
async def startup():
    logger.info(f"ABC Cours CRM v{API_VERSION} démarré")

    await create_indexes()
    logger.info("Index MongoDB créés")

    if SCHEDULER_ENABLED:
        from scheduler_service import task_scheduler
        task_scheduler.start()


@app.on_event("shutdown")
async def shutdown():
    if SCHEDULER_ENABLED:
        from scheduler_service import task_scheduler
        task_scheduler.stop()
    logger.info("ABC Cours CRM arrêté")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
