"""
Router pour les centres.
Toutes les écritures sont locales et mises en file : elles réussissent hors-ligne.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_sync.database import get_db
from attendance_sync.dependencies import http_error
from attendance_sync.exceptions import SyncError
from attendance_sync.schemas.reference import NamedEntityCreate, NamedEntityResponse, NamedEntityUpdate
from attendance_sync.services import reference_service

router = APIRouter(prefix="/api/v1/offices", tags=["Centres"])


@router.post("", response_model=NamedEntityResponse, status_code=201, summary="Créer un centre")
async def create_office(data: NamedEntityCreate, db: Session = Depends(get_db)):
    """Crée un centre avec un nom unique (insensible à la casse)."""
    try:
        return reference_service.create_office(db, data)
    except SyncError as e:
        raise http_error(e)


@router.get("", response_model=List[NamedEntityResponse], summary="Lister les centres")
async def list_offices(db: Session = Depends(get_db)):
    return reference_service.get_offices(db)


@router.put("/{office_uuid}", response_model=NamedEntityResponse, summary="Renommer un centre")
async def update_office(office_uuid: str, data: NamedEntityUpdate, db: Session = Depends(get_db)):
    try:
        return reference_service.update_office(db, office_uuid, data)
    except SyncError as e:
        raise http_error(e)


@router.delete("/{office_uuid}", status_code=204, summary="Supprimer un centre")
async def delete_office(office_uuid: str, db: Session = Depends(get_db)):
    """Suppression logique : propagée au serveur au prochain cycle."""
    try:
        reference_service.delete_office(db, office_uuid)
    except SyncError as e:
        raise http_error(e)
