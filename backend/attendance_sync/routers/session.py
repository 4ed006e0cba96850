"""
Router pour la session : connexion, déconnexion et état réseau.
"""

from fastapi import APIRouter, Depends, HTTPException

from attendance_sync.dependencies import get_identity_gate, get_sync_engine, http_error
from attendance_sync.exceptions import ConnectivityError, SyncError
from attendance_sync.schemas.session import SessionLogin, SessionState
from attendance_sync.services.identity_gate import IdentityGate
from attendance_sync.services.sync_service import SyncEngine

router = APIRouter(prefix="/api/session", tags=["Session"])


@router.get("", response_model=SessionState, summary="État de la session")
async def get_session(gate: IdentityGate = Depends(get_identity_gate)):
    return SessionState(
        authenticated=gate.is_authenticated(),
        online=await gate.is_online(),
        identity=gate.current_identity(),
    )


@router.post("", response_model=SessionState, summary="Se connecter")
async def sign_in(
    data: SessionLogin,
    gate: IdentityGate = Depends(get_identity_gate),
    engine: SyncEngine = Depends(get_sync_engine),
):
    """
    Connexion en ligne (503 hors-ligne, 401 si refusée).
    Une synchronisation automatique suit immédiatement la connexion.
    """
    try:
        identity = await gate.sign_in(data.email, data.password)
    except ConnectivityError as e:
        raise http_error(e)
    except SyncError as e:
        raise HTTPException(status_code=401, detail=str(e))
    await engine.auto_sync()
    return SessionState(authenticated=True, online=True, identity=identity)


@router.delete("", status_code=204, summary="Se déconnecter")
async def sign_out(gate: IdentityGate = Depends(get_identity_gate)):
    await gate.sign_out()
