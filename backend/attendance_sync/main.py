"""
Point d'entrée de l'API locale du poste hors-ligne.
Démarrage : uvicorn attendance_sync.main:app --reload (depuis backend/)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from attendance_sync.config import settings
from attendance_sync.database import SessionLocal, init_db
from attendance_sync.routers import attendance, levels, offices, session, students, sync
from attendance_sync.scheduler import start_scheduler, stop_scheduler
from attendance_sync.services.identity_gate import IdentityGate
from attendance_sync.services.remote_client import RemoteServiceClient
from attendance_sync.services.sync_service import SyncEngine

logging.getLogger("attendance_sync").setLevel(settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Cycle de vie : crée la base locale, le client distant, la passerelle d'identité
    et le moteur (un seul de chaque par processus), puis démarre le planificateur.
    """
    init_db()
    remote = RemoteServiceClient()
    gate = IdentityGate(remote)
    engine = SyncEngine(SessionLocal, remote, gate)
    app.state.remote = remote
    app.state.identity_gate = gate
    app.state.sync_engine = engine

    if settings.AUTO_SYNC_ENABLED:
        start_scheduler(engine)
    yield
    stop_scheduler()
    await remote.aclose()


app = FastAPI(
    title="Attendance Sync API",
    description="API locale de saisie des présences hors-ligne et de synchronisation avec le serveur",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : le front-end local tourne sur localhost (port variable).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(offices.router)
app.include_router(levels.router)
app.include_router(students.router)
app.include_router(attendance.router)
app.include_router(sync.router)
app.include_router(session.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte les exceptions non gérées pour que la réponse 500 passe par
    CORSMiddleware (sinon le navigateur ne voit qu'un « Failed to fetch »).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
async def health_check():
    """Vérifie que l'API locale est opérationnelle."""
    return {"status": "ok", "service": "Attendance Sync API", "version": "0.1.0"}
