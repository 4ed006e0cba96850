"""
Router pour les niveaux.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_sync.database import get_db
from attendance_sync.dependencies import http_error
from attendance_sync.exceptions import SyncError
from attendance_sync.schemas.reference import NamedEntityCreate, NamedEntityResponse, NamedEntityUpdate
from attendance_sync.services import reference_service

router = APIRouter(prefix="/api/v1/levels", tags=["Niveaux"])


@router.post("", response_model=NamedEntityResponse, status_code=201, summary="Créer un niveau")
async def create_level(data: NamedEntityCreate, db: Session = Depends(get_db)):
    try:
        return reference_service.create_level(db, data)
    except SyncError as e:
        raise http_error(e)


@router.get("", response_model=List[NamedEntityResponse], summary="Lister les niveaux")
async def list_levels(db: Session = Depends(get_db)):
    return reference_service.get_levels(db)


@router.put("/{level_uuid}", response_model=NamedEntityResponse, summary="Renommer un niveau")
async def update_level(level_uuid: str, data: NamedEntityUpdate, db: Session = Depends(get_db)):
    try:
        return reference_service.update_level(db, level_uuid, data)
    except SyncError as e:
        raise http_error(e)


@router.delete("/{level_uuid}", status_code=204, summary="Supprimer un niveau")
async def delete_level(level_uuid: str, db: Session = Depends(get_db)):
    try:
        reference_service.delete_level(db, level_uuid)
    except SyncError as e:
        raise http_error(e)
