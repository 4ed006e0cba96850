"""
Schémas Pydantic pour les feuilles d'appel.
Une sauvegarde re-soumet toujours l'ensemble des statuts de la feuille.

Note : datetime est importé en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import datetime as dt
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from attendance_sync.models.enums import AttendanceStatus


class StudentStatusItem(BaseModel):
    student_uuid: str
    status: AttendanceStatus


class AttendanceSave(BaseModel):
    """Corps de requête pour créer ou remplacer une feuille d'appel."""
    date: dt.date
    office_uuid: str
    level_uuid: str
    statuses: List[StudentStatusItem] = []

    @field_validator("statuses")
    @classmethod
    def unique_students(cls, v: List[StudentStatusItem]) -> List[StudentStatusItem]:
        seen = set()
        for item in v:
            if item.student_uuid in seen:
                raise ValueError(f"Élève présent deux fois dans la feuille : {item.student_uuid}")
            seen.add(item.student_uuid)
        return v


class StudentAttendanceResponse(BaseModel):
    student_uuid: str
    status: str

    model_config = {"from_attributes": True}


class AttendanceRecordResponse(BaseModel):
    uuid: str
    date: str
    office_uuid: str
    level_uuid: str
    office_name: Optional[str] = None
    level_name: Optional[str] = None
    is_synced: bool
    operation_type: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]
    statuses: List[StudentAttendanceResponse] = []
