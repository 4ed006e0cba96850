"""
Router pour les élèves.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_sync.database import get_db
from attendance_sync.dependencies import http_error
from attendance_sync.exceptions import SyncError
from attendance_sync.schemas.student import StudentCreate, StudentResponse, StudentUpdate
from attendance_sync.services import student_service

router = APIRouter(prefix="/api/v1/students", tags=["Élèves"])


@router.post("", response_model=StudentResponse, status_code=201, summary="Créer un élève")
async def create_student(data: StudentCreate, db: Session = Depends(get_db)):
    """Crée un élève rattaché à un centre et un niveau existants (422 sinon)."""
    try:
        return student_service.create_student(db, data)
    except SyncError as e:
        raise http_error(e)


@router.get("", response_model=List[StudentResponse], summary="Lister les élèves")
async def list_students(
    office_uuid: Optional[str] = None,
    level_uuid: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Élèves actifs, filtrables par centre et par niveau."""
    return student_service.get_students(db, office_uuid=office_uuid, level_uuid=level_uuid)


@router.put("/{student_uuid}", response_model=StudentResponse, summary="Modifier un élève")
async def update_student(student_uuid: str, data: StudentUpdate, db: Session = Depends(get_db)):
    try:
        return student_service.update_student(db, student_uuid, data)
    except SyncError as e:
        raise http_error(e)


@router.delete("/{student_uuid}", status_code=204, summary="Supprimer un élève")
async def delete_student(student_uuid: str, db: Session = Depends(get_db)):
    try:
        student_service.delete_student(db, student_uuid)
    except SyncError as e:
        raise http_error(e)
