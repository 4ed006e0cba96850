"""
Schémas Pydantic pour les élèves.
"""

import datetime as dt
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class StudentCreate(BaseModel):
    """Schéma de création d'un élève. Centre et niveau sont obligatoires."""
    name: str
    office_uuid: str
    level_uuid: str
    birth_date: Optional[dt.date] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom de l'élève ne peut pas être vide.")
        return v.strip()


class StudentUpdate(BaseModel):
    """Schéma de mise à jour. Les champs absents ne sont pas modifiés."""
    name: Optional[str] = None
    office_uuid: Optional[str] = None
    level_uuid: Optional[str] = None
    birth_date: Optional[dt.date] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Le nom de l'élève ne peut pas être vide.")
        return v.strip() if v else v


class StudentResponse(BaseModel):
    uuid: str
    name: str
    birth_date: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    office_uuid: str
    level_uuid: str
    is_synced: bool
    operation_type: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}
