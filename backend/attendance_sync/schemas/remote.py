"""
Schémas Pydantic des lignes renvoyées par le serveur (lecture seule).
Les champs inconnus sont ignorés : le serveur peut exposer plus de colonnes.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class RemoteRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    uuid: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def last_change(self) -> datetime:
        return self.updated_at or self.created_at


class RemoteNamedRow(RemoteRow):
    name: str
    deleted_at: Optional[datetime] = None


class RemoteUuidRef(BaseModel):
    """Ressource embarquée PostgREST, ex. office:offices(uuid)."""
    model_config = ConfigDict(extra="ignore")

    uuid: str


class RemoteStudentRow(RemoteRow):
    name: str
    birth_date: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    office_id: Optional[int] = None
    level_id: Optional[int] = None
    office: Optional[RemoteUuidRef] = None
    level: Optional[RemoteUuidRef] = None
    deleted_at: Optional[datetime] = None


class RemoteStudentAttendanceRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    student_uuid: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RemoteAttendanceRecordRow(RemoteRow):
    date: str
    office_uuid: str
    level_uuid: str
    student_attendances: List[RemoteStudentAttendanceRow] = []
