"""
Dépendances FastAPI partagées par les routers.

Le moteur et la passerelle d'identité sont créés une fois dans le lifespan
et rangés dans app.state : les routers les reçoivent par injection.
"""

from fastapi import HTTPException, Request

from attendance_sync.exceptions import (
    ConnectivityError,
    DuplicateError,
    NotFoundError,
    SyncError,
    ValidationError,
)
from attendance_sync.services.identity_gate import IdentityGate
from attendance_sync.services.sync_service import SyncEngine


def get_sync_engine(request: Request) -> SyncEngine:
    return request.app.state.sync_engine


def get_identity_gate(request: Request) -> IdentityGate:
    return request.app.state.identity_gate


def http_error(exc: SyncError) -> HTTPException:
    """Traduit une erreur du noyau en réponse HTTP."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, DuplicateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConnectivityError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
