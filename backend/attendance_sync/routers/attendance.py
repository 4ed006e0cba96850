"""
Router pour les feuilles d'appel.
Une sauvegarde remplace toujours l'ensemble des statuts de la feuille.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_sync.database import get_db
from attendance_sync.dependencies import http_error
from attendance_sync.exceptions import SyncError
from attendance_sync.schemas.attendance import AttendanceRecordResponse, AttendanceSave
from attendance_sync.services import attendance_service

router = APIRouter(prefix="/api/v1/attendance", tags=["Présences"])


@router.post("", response_model=AttendanceRecordResponse, status_code=201, summary="Créer une feuille d'appel")
async def create_attendance(data: AttendanceSave, db: Session = Depends(get_db)):
    """
    Crée la feuille du jour pour un centre et un niveau.
    409 si une feuille existe déjà pour cette date, ce centre et ce niveau.
    """
    try:
        record = attendance_service.save_attendance(db, data)
        return attendance_service.get_attendance_record(db, record.uuid)
    except SyncError as e:
        raise http_error(e)


@router.get("", response_model=List[AttendanceRecordResponse], summary="Lister les feuilles d'appel")
async def list_attendance(db: Session = Depends(get_db)):
    return attendance_service.get_attendance_records(db)


@router.get("/{record_uuid}", response_model=AttendanceRecordResponse, summary="Détail d'une feuille")
async def get_attendance(record_uuid: str, db: Session = Depends(get_db)):
    try:
        return attendance_service.get_attendance_record(db, record_uuid)
    except SyncError as e:
        raise http_error(e)


@router.put("/{record_uuid}", response_model=AttendanceRecordResponse, summary="Remplacer une feuille d'appel")
async def replace_attendance(record_uuid: str, data: AttendanceSave, db: Session = Depends(get_db)):
    try:
        attendance_service.save_attendance(db, data, record_uuid=record_uuid)
        return attendance_service.get_attendance_record(db, record_uuid)
    except SyncError as e:
        raise http_error(e)


@router.delete("/{record_uuid}", status_code=204, summary="Supprimer une feuille d'appel")
async def delete_attendance(record_uuid: str, db: Session = Depends(get_db)):
    try:
        attendance_service.delete_attendance_record(db, record_uuid)
    except SyncError as e:
        raise http_error(e)
