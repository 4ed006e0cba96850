"""
Service métier pour les feuilles d'appel.

Une sauvegarde remplace toujours l'ensemble des statuts de la feuille
(suppression puis réinsertion) dans une seule transaction :
une feuille à moitié écrite n'est jamais visible.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, aliased

from attendance_sync.database import transaction
from attendance_sync.exceptions import DuplicateError, NotFoundError, ValidationError
from attendance_sync.models.attendance import AttendanceRecord, StudentAttendance
from attendance_sync.models.enums import EntityKind, Operation
from attendance_sync.models.level import Level
from attendance_sync.models.office import Office
from attendance_sync.models.student import Student
from attendance_sync.schemas.attendance import (
    AttendanceRecordResponse,
    AttendanceSave,
    StudentAttendanceResponse,
)
from attendance_sync.services import local_store, sync_queue_service
from attendance_sync.timestamps import utc_now

logger = logging.getLogger(__name__)


def find_record(db: Session, date: str, office_uuid: str, level_uuid: str) -> Optional[AttendanceRecord]:
    """Feuille existante pour (date, centre, niveau), ou None."""
    return db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.date == date,
            AttendanceRecord.office_uuid == office_uuid,
            AttendanceRecord.level_uuid == level_uuid,
        )
    ).scalar()


def save_attendance(db: Session, data: AttendanceSave, record_uuid: Optional[str] = None) -> AttendanceRecord:
    """
    Crée (record_uuid=None) ou remplace une feuille d'appel.

    Étapes (une seule transaction) :
    1. Vérifier centre, niveau et élèves référencés → ValidationError
    2. Refuser une deuxième feuille pour le même (date, centre, niveau) → DuplicateError
    3. Écrire la feuille (INSERT ou UPDATE)
    4. Supprimer tous les statuts de la feuille puis insérer le nouvel ensemble
    5. Ajouter une entrée dans la file avec l'instantané complet
    """
    date = data.date.isoformat()

    with transaction(db):
        _check_references(db, data)

        existing = find_record(db, date, data.office_uuid, data.level_uuid)
        if existing is not None and existing.uuid != record_uuid:
            raise DuplicateError("Une feuille d'appel existe déjà pour cette date, ce centre et ce niveau.")

        fields = {"date": date, "office_uuid": data.office_uuid, "level_uuid": data.level_uuid}
        record = local_store._upsert(db, EntityKind.ATTENDANCE_RECORD, fields, uuid=record_uuid, enqueue=False)

        db.execute(delete(StudentAttendance).where(StudentAttendance.attendance_record_uuid == record.uuid))
        now = utc_now()
        for item in data.statuses:
            db.add(StudentAttendance(
                attendance_record_uuid=record.uuid,
                student_uuid=item.student_uuid,
                status=item.status.value,
                is_synced=False,
                operation_type=Operation.INSERT.value,
                created_at=now,
                updated_at=now,
            ))
        db.flush()

        operation = Operation.INSERT if record_uuid is None else Operation.UPDATE
        sync_queue_service.enqueue(
            db,
            EntityKind.ATTENDANCE_RECORD,
            operation,
            record.uuid,
            local_store.snapshot(db, EntityKind.ATTENDANCE_RECORD, record),
        )

    logger.info(
        "Feuille d'appel %s enregistrée (%s) : %d statut(s)",
        record.uuid, operation.value, len(data.statuses),
    )
    return record


def delete_attendance_record(db: Session, uuid: str) -> None:
    """Supprime définitivement une feuille et ses statuts (suppression physique)."""
    local_store.hard_delete(db, EntityKind.ATTENDANCE_RECORD, uuid)
    logger.info("Feuille d'appel supprimée localement : %s", uuid)


def get_attendance_records(db: Session) -> List[AttendanceRecordResponse]:
    """Toutes les feuilles, les plus récentes d'abord, avec le nom du centre et du niveau."""
    office = aliased(Office)
    level = aliased(Level)
    rows = db.execute(
        select(AttendanceRecord, office.name, level.name)
        .outerjoin(office, office.uuid == AttendanceRecord.office_uuid)
        .outerjoin(level, level.uuid == AttendanceRecord.level_uuid)
        .order_by(AttendanceRecord.date.desc(), AttendanceRecord.local_id.desc())
    ).all()
    return [
        _to_response(record, office_name=office_name, level_name=level_name)
        for record, office_name, level_name in rows
    ]


def get_attendance_record(db: Session, uuid: str) -> AttendanceRecordResponse:
    """Détail d'une feuille avec ses statuts. Lève NotFoundError si absente."""
    record = local_store.get_by_uuid(db, EntityKind.ATTENDANCE_RECORD, uuid)
    if record is None:
        raise NotFoundError("Feuille d'appel introuvable.")
    statuses = local_store.statuses_for(db, uuid)
    return _to_response(record, statuses=statuses)


def _check_references(db: Session, data: AttendanceSave) -> None:
    if local_store.get_by_uuid(db, EntityKind.OFFICE, data.office_uuid) is None:
        raise ValidationError("Veuillez sélectionner un centre existant.")
    if local_store.get_by_uuid(db, EntityKind.LEVEL, data.level_uuid) is None:
        raise ValidationError("Veuillez sélectionner un niveau existant.")

    student_uuids = {item.student_uuid for item in data.statuses}
    if student_uuids:
        known = set(db.execute(
            select(Student.uuid).where(Student.uuid.in_(student_uuids), Student.deleted_at.is_(None))
        ).scalars().all())
        missing = student_uuids - known
        if missing:
            raise ValidationError(f"Élève(s) introuvable(s) : {', '.join(sorted(missing))}")


def _to_response(
    record: AttendanceRecord,
    office_name: Optional[str] = None,
    level_name: Optional[str] = None,
    statuses: Optional[List[StudentAttendance]] = None,
) -> AttendanceRecordResponse:
    return AttendanceRecordResponse(
        uuid=record.uuid,
        date=record.date,
        office_uuid=record.office_uuid,
        level_uuid=record.level_uuid,
        office_name=office_name,
        level_name=level_name,
        is_synced=record.is_synced,
        operation_type=record.operation_type,
        created_at=record.created_at,
        updated_at=record.updated_at,
        statuses=[StudentAttendanceResponse.model_validate(sa) for sa in statuses or []],
    )
