"""
Schémas Pydantic pour la synchronisation hors-ligne ↔ serveur.

Les instantanés stockés dans la file sont une union étiquetée par `entity_kind` :
le push sait exactement quels champs il manipule, sans JSON opaque.
"""

import enum
from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from attendance_sync.models.enums import AttendanceStatus


# ============================================================
# Instantanés de la file (un type par entité)
# ============================================================

class _PayloadBase(BaseModel):
    uuid: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OfficePayload(_PayloadBase):
    entity_kind: Literal["offices"] = "offices"
    name: Optional[str] = None
    deleted_at: Optional[datetime] = None


class LevelPayload(_PayloadBase):
    entity_kind: Literal["levels"] = "levels"
    name: Optional[str] = None
    deleted_at: Optional[datetime] = None


class StudentPayload(_PayloadBase):
    entity_kind: Literal["students"] = "students"
    name: Optional[str] = None
    birth_date: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    office_uuid: Optional[str] = None
    level_uuid: Optional[str] = None
    deleted_at: Optional[datetime] = None


class StatusSnapshot(BaseModel):
    student_uuid: str
    status: AttendanceStatus


class AttendanceRecordPayload(_PayloadBase):
    entity_kind: Literal["attendance_records"] = "attendance_records"
    date: Optional[str] = None
    office_uuid: Optional[str] = None
    level_uuid: Optional[str] = None
    statuses: List[StatusSnapshot] = []


SyncPayload = Annotated[
    Union[OfficePayload, LevelPayload, StudentPayload, AttendanceRecordPayload],
    Field(discriminator="entity_kind"),
]

sync_payload_adapter = TypeAdapter(SyncPayload)


# ============================================================
# Statut diffusé et rapport de cycle
# ============================================================

class SyncStatus(str, enum.Enum):
    """Seuls états diffusés aux abonnés."""

    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"


class SyncOutcome(str, enum.Enum):
    COMPLETED = "completed"
    ERROR = "error"
    BUSY = "busy"
    OFFLINE = "offline"
    UNAUTHENTICATED = "unauthenticated"


class SyncResult(BaseModel):
    """Rapport d'un cycle de réconciliation."""

    success: bool
    outcome: SyncOutcome
    message: str
    pushed: int = 0          # Entrées confirmées par le serveur
    failed: int = 0          # Entrées laissées dans la file (réessayées au prochain cycle)
    reconciled: int = 0      # Entrées abandonnées : le serveur possède déjà la version définitive
    inserted: int = 0        # Lignes distantes ajoutées localement
    updated: int = 0         # Lignes locales remplacées par une version distante plus récente
    purged: int = 0          # Lignes supprimées localement après suppression distante
    errors: List[str] = []


class PendingCounts(BaseModel):
    """Arriéré de la file, par type d'entité (GET /api/sync/status)."""

    total: int
    by_kind: Dict[str, int]
    sync_in_progress: bool
