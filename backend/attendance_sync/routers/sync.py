"""
Router pour la synchronisation locale ↔ serveur.
Déclenche un cycle à la demande et expose l'arriéré de la file.
"""

from fastapi import APIRouter, Depends, HTTPException

from attendance_sync.dependencies import get_sync_engine
from attendance_sync.models.enums import EntityKind
from attendance_sync.schemas.sync import PendingCounts, SyncResult
from attendance_sync.services.sync_service import SyncEngine

router = APIRouter(prefix="/api/sync", tags=["Synchronisation"])


@router.post("", response_model=SyncResult, summary="Synchroniser toutes les entités")
async def sync_all(engine: SyncEngine = Depends(get_sync_engine)):
    """
    Push de la file puis pull de tous les types d'entités.

    Le champ `outcome` du rapport vaut :
    - completed : cycle terminé (des entrées peuvent rester en file après échec)
    - error : réseau perdu pendant le cycle ou pull en échec
    - busy : un cycle est déjà en cours (aucun nouveau cycle lancé)
    - offline / unauthenticated : aucun cycle lancé
    """
    return await engine.sync_all()


@router.get("/status", response_model=PendingCounts, summary="Arriéré de la file")
async def sync_status(engine: SyncEngine = Depends(get_sync_engine)):
    return engine.pending_counts()


@router.post("/{kind}", response_model=SyncResult, summary="Synchroniser un type d'entité")
async def sync_entity(kind: EntityKind, engine: SyncEngine = Depends(get_sync_engine)):
    try:
        return await engine.sync_entity(kind)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
