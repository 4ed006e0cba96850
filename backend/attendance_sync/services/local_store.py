"""
Stockage local : accès génériques aux entités synchronisables.

Chaque mutation marque la ligne (operation_type, is_synced=False) et ajoute
une entrée dans la file, dans la même transaction que l'écriture elle-même.
Les fonctions préfixées par _ n'ouvrent pas de transaction : elles servent aux
services qui enchaînent plusieurs écritures atomiques (feuilles d'appel).
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from attendance_sync.database import transaction
from attendance_sync.exceptions import NotFoundError
from attendance_sync.models import ENTITY_MODELS
from attendance_sync.models.attendance import StudentAttendance
from attendance_sync.models.enums import SOFT_DELETE_KINDS, EntityKind, Operation
from attendance_sync.models.mixins import new_uuid
from attendance_sync.schemas.sync import (
    AttendanceRecordPayload,
    LevelPayload,
    OfficePayload,
    StatusSnapshot,
    StudentPayload,
    SyncPayload,
)
from attendance_sync.services import sync_queue_service
from attendance_sync.timestamps import next_updated_at, utc_now

logger = logging.getLogger(__name__)

# Colonnes gérées par le moteur : jamais modifiables via `fields`
_SYNC_COLUMNS = {
    "local_id", "uuid", "remote_id", "is_synced", "operation_type",
    "created_at", "updated_at", "deleted_at",
}


def model_for(kind: EntityKind):
    return ENTITY_MODELS[EntityKind(kind)]


def get_by_uuid(db: Session, kind: EntityKind, uuid: str, include_deleted: bool = False):
    """Retourne la ligne portant cet UUID, ou None."""
    kind = EntityKind(kind)
    model = model_for(kind)
    stmt = select(model).where(model.uuid == uuid)
    if kind in SOFT_DELETE_KINDS and not include_deleted:
        stmt = stmt.where(model.deleted_at.is_(None))
    return db.execute(stmt).scalar()


def query(
    db: Session,
    kind: EntityKind,
    *criteria,
    include_deleted: bool = False,
    order_by=None,
) -> List[Any]:
    """Projection en lecture seule. Les lignes supprimées logiquement sont exclues par défaut."""
    kind = EntityKind(kind)
    model = model_for(kind)
    stmt = select(model).where(*criteria)
    if kind in SOFT_DELETE_KINDS and not include_deleted:
        stmt = stmt.where(model.deleted_at.is_(None))
    stmt = stmt.order_by(order_by if order_by is not None else model.local_id)
    return list(db.execute(stmt).scalars().all())


def upsert_entity(db: Session, kind: EntityKind, fields: Dict[str, Any], uuid: Optional[str] = None):
    """Crée (uuid=None) ou modifie une ligne et enregistre le changement dans la file."""
    with transaction(db):
        row = _upsert(db, kind, fields, uuid)
    db.refresh(row)
    return row


def soft_delete(db: Session, kind: EntityKind, uuid: str):
    """Pose deleted_at sur une ligne active et enregistre un DELETE dans la file."""
    with transaction(db):
        row = _soft_delete(db, kind, uuid)
    return row


def hard_delete(db: Session, kind: EntityKind, uuid: str) -> None:
    """Supprime physiquement une ligne (feuilles d'appel) et enregistre un DELETE dans la file."""
    with transaction(db):
        _hard_delete(db, kind, uuid)


def _upsert(
    db: Session,
    kind: EntityKind,
    fields: Dict[str, Any],
    uuid: Optional[str] = None,
    enqueue: bool = True,
):
    kind = EntityKind(kind)
    model = model_for(kind)
    values = {k: v for k, v in fields.items() if k not in _SYNC_COLUMNS}

    if uuid is None:
        now = utc_now()
        row = model(
            uuid=new_uuid(),
            created_at=now,
            updated_at=now,
            is_synced=False,
            operation_type=Operation.INSERT.value,
            **values,
        )
        db.add(row)
        db.flush()
        operation = Operation.INSERT
    else:
        row = get_by_uuid(db, kind, uuid)
        if row is None:
            raise NotFoundError(f"{kind.value} {uuid} introuvable.")
        for field, value in values.items():
            setattr(row, field, value)
        row.updated_at = next_updated_at(row.updated_at)
        row.is_synced = False
        # Une ligne jamais poussée reste un INSERT : l'UPDATE suivant poussera les mêmes valeurs
        if not (row.remote_id is None and row.operation_type == Operation.INSERT.value):
            row.operation_type = Operation.UPDATE.value
        db.flush()
        operation = Operation.UPDATE

    if enqueue:
        sync_queue_service.enqueue(db, kind, operation, row.uuid, snapshot(db, kind, row))
    return row


def _soft_delete(db: Session, kind: EntityKind, uuid: str):
    kind = EntityKind(kind)
    if kind not in SOFT_DELETE_KINDS:
        raise ValueError(f"{kind.value} ne supporte pas la suppression logique.")
    row = get_by_uuid(db, kind, uuid)
    if row is None:
        raise NotFoundError(f"{kind.value} {uuid} introuvable.")

    row.deleted_at = utc_now()
    row.updated_at = next_updated_at(row.updated_at)
    row.is_synced = False
    row.operation_type = Operation.DELETE.value
    db.flush()
    sync_queue_service.enqueue(db, kind, Operation.DELETE, row.uuid, snapshot(db, kind, row))
    return row


def _hard_delete(db: Session, kind: EntityKind, uuid: str) -> None:
    kind = EntityKind(kind)
    row = get_by_uuid(db, kind, uuid)
    if row is None:
        raise NotFoundError(f"{kind.value} {uuid} introuvable.")

    payload = snapshot(db, kind, row)
    if kind == EntityKind.ATTENDANCE_RECORD:
        db.execute(delete(StudentAttendance).where(StudentAttendance.attendance_record_uuid == uuid))
    db.delete(row)
    db.flush()
    sync_queue_service.enqueue(db, kind, Operation.DELETE, uuid, payload)


def mark_synced(row) -> None:
    row.is_synced = True
    row.operation_type = None


def statuses_for(db: Session, record_uuid: str) -> List[StudentAttendance]:
    return list(db.execute(
        select(StudentAttendance)
        .where(StudentAttendance.attendance_record_uuid == record_uuid)
        .order_by(StudentAttendance.local_id)
    ).scalars().all())


def snapshot(db: Session, kind: EntityKind, row) -> SyncPayload:
    """Instantané typé d'une ligne, stocké avec l'entrée de file."""
    kind = EntityKind(kind)
    common = {"uuid": row.uuid, "created_at": row.created_at, "updated_at": row.updated_at}

    if kind == EntityKind.OFFICE:
        return OfficePayload(name=row.name, deleted_at=row.deleted_at, **common)
    if kind == EntityKind.LEVEL:
        return LevelPayload(name=row.name, deleted_at=row.deleted_at, **common)
    if kind == EntityKind.STUDENT:
        return StudentPayload(
            name=row.name,
            birth_date=row.birth_date,
            phone=row.phone,
            address=row.address,
            office_uuid=row.office_uuid,
            level_uuid=row.level_uuid,
            deleted_at=row.deleted_at,
            **common,
        )
    if kind == EntityKind.ATTENDANCE_RECORD:
        return AttendanceRecordPayload(
            date=row.date,
            office_uuid=row.office_uuid,
            level_uuid=row.level_uuid,
            statuses=[
                StatusSnapshot(student_uuid=sa.student_uuid, status=sa.status)
                for sa in statuses_for(db, row.uuid)
            ],
            **common,
        )
    raise ValueError(f"Pas d'instantané pour {kind.value}")
