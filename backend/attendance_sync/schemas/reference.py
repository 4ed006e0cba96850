"""
Schémas Pydantic pour les centres et les niveaux (même forme : un nom).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class NamedEntityCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom ne peut pas être vide.")
        return v.strip()


class NamedEntityUpdate(NamedEntityCreate):
    pass


class NamedEntityResponse(BaseModel):
    uuid: str
    name: str
    remote_id: Optional[int]
    is_synced: bool
    operation_type: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}
