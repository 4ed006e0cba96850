"""
Adaptateurs d'entités : traduction entre lignes locales et lignes du serveur.

Aucune politique ici (le moteur décide quand pousser, tirer ou purger) :
un adaptateur sait seulement quels champs envoyer, comment relire une ligne
distante et comment résoudre les clés étrangères de part et d'autre.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from attendance_sync.models.attendance import AttendanceRecord, StudentAttendance
from attendance_sync.models.enums import EntityKind
from attendance_sync.models.level import Level
from attendance_sync.models.office import Office
from attendance_sync.models.student import Student
from attendance_sync.schemas.remote import (
    RemoteAttendanceRecordRow,
    RemoteNamedRow,
    RemoteRow,
    RemoteStudentRow,
)
from attendance_sync.services import local_store
from attendance_sync.services.identity_gate import AccessScope
from attendance_sync.services.remote_client import RemoteServiceClient, in_filter
from attendance_sync.timestamps import to_utc

logger = logging.getLogger(__name__)


class EntityAdapter:
    """Contrat commun. Les sous-classes fixent kind, model et remote_schema."""

    kind: EntityKind
    model: Any
    remote_schema = RemoteRow
    remote_select = "*"
    soft_delete = True

    # --- Push ---

    async def to_remote(self, db: Session, row, remote: RemoteServiceClient) -> Dict[str, Any]:
        raise NotImplementedError

    async def push_children(
        self, db: Session, row, remote: RemoteServiceClient, replace: bool
    ) -> None:
        """Envoie les lignes dépendantes juste après le parent (feuilles d'appel seulement)."""

    async def push_delete(self, db: Session, uuid: str, remote: RemoteServiceClient, deleted_at) -> None:
        await remote.soft_delete(self.kind, uuid, deleted_at)

    # --- Pull ---

    def scope_filters(self, scope: AccessScope) -> Optional[Dict[str, str]]:
        """Filtres PostgREST de la portée d'accès. None : rien à tirer pour cette identité."""
        return {}

    def parse(self, raw: Dict[str, Any]) -> RemoteRow:
        return self.remote_schema.model_validate(raw)

    def from_remote(self, db: Session, remote_row) -> Optional[Dict[str, Any]]:
        """Colonnes locales d'une ligne distante. None si une référence locale manque."""
        raise NotImplementedError

    def apply_children(self, db: Session, row, remote_row) -> None:
        """Remplace les lignes dépendantes locales par celles du serveur."""

    def is_referenced(self, db: Session, uuid: str) -> bool:
        """Vrai si une ligne locale pointe encore vers cette entité (purge différée)."""
        return False

    def natural_duplicate(self, db: Session, uuid: str, fields: Dict[str, Any]):
        """Ligne locale d'un autre UUID occupant la même clé naturelle, ou None."""
        return None


class _NamedAdapter(EntityAdapter):
    remote_schema = RemoteNamedRow

    async def to_remote(self, db, row, remote):
        return {
            "uuid": row.uuid,
            "name": row.name,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
            "deleted_at": row.deleted_at,
        }

    def from_remote(self, db, remote_row):
        return {"name": remote_row.name}


class OfficeAdapter(_NamedAdapter):
    kind = EntityKind.OFFICE
    model = Office

    def scope_filters(self, scope):
        if scope.all_offices:
            return {}
        if not scope.office_ids:
            return None
        return {"id": in_filter(scope.office_ids)}

    def is_referenced(self, db, uuid):
        return _any_row(db, Student, Student.office_uuid == uuid) or _any_row(
            db, AttendanceRecord, AttendanceRecord.office_uuid == uuid
        )


class LevelAdapter(_NamedAdapter):
    """Les niveaux sont communs à tous les centres : toujours tirés en entier."""

    kind = EntityKind.LEVEL
    model = Level

    def is_referenced(self, db, uuid):
        return _any_row(db, Student, Student.level_uuid == uuid) or _any_row(
            db, AttendanceRecord, AttendanceRecord.level_uuid == uuid
        )


class StudentAdapter(EntityAdapter):
    """
    Côté serveur, un élève référence son centre et son niveau par id numérique.
    Push : uuid local → id serveur (remote_id connu localement, sinon recherche distante).
    Pull : ressources embarquées office:offices(uuid) / level:levels(uuid).
    """

    kind = EntityKind.STUDENT
    model = Student
    remote_schema = RemoteStudentRow
    remote_select = "*,office:offices(uuid),level:levels(uuid)"

    async def to_remote(self, db, row, remote):
        return {
            "uuid": row.uuid,
            "name": row.name,
            "birth_date": row.birth_date,
            "phone": row.phone,
            "address": row.address,
            "office_id": await _remote_id_for(db, remote, EntityKind.OFFICE, row.office_uuid),
            "level_id": await _remote_id_for(db, remote, EntityKind.LEVEL, row.level_uuid),
            "created_at": row.created_at,
            "updated_at": row.updated_at,
            "deleted_at": row.deleted_at,
        }

    def scope_filters(self, scope):
        if scope.all_offices:
            return {}
        if not scope.office_ids:
            return None
        return {"office_id": in_filter(scope.office_ids)}

    def from_remote(self, db, remote_row):
        office_uuid = _local_uuid_for(db, Office, remote_row.office, remote_row.office_id)
        level_uuid = _local_uuid_for(db, Level, remote_row.level, remote_row.level_id)
        if office_uuid is None or level_uuid is None:
            logger.warning(
                "Élève %s ignoré : centre ou niveau absent localement", remote_row.uuid
            )
            return None
        return {
            "name": remote_row.name,
            "birth_date": remote_row.birth_date,
            "phone": remote_row.phone,
            "address": remote_row.address,
            "office_uuid": office_uuid,
            "level_uuid": level_uuid,
        }


class AttendanceRecordAdapter(EntityAdapter):
    """
    Feuille d'appel + statuts des élèves.
    Les statuts sont toujours envoyés en bloc : insertion complète pour un INSERT,
    suppression puis réinsertion complète pour un UPDATE.
    """

    kind = EntityKind.ATTENDANCE_RECORD
    model = AttendanceRecord
    remote_schema = RemoteAttendanceRecordRow
    remote_select = "*,student_attendances(student_uuid,status,created_at,updated_at)"
    soft_delete = False

    async def to_remote(self, db, row, remote):
        return {
            "uuid": row.uuid,
            "date": row.date,
            "office_uuid": row.office_uuid,
            "level_uuid": row.level_uuid,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }

    async def push_children(self, db, row, remote, replace):
        statuses = local_store.statuses_for(db, row.uuid)
        if replace:
            await remote.delete_where(
                EntityKind.STUDENT_ATTENDANCE, "attendance_record_uuid", row.uuid
            )
        await remote.insert_many(
            EntityKind.STUDENT_ATTENDANCE,
            [
                {
                    "uuid": sa.uuid,
                    "attendance_record_uuid": row.uuid,
                    "student_uuid": sa.student_uuid,
                    "status": sa.status,
                    "created_at": sa.created_at,
                    "updated_at": sa.updated_at,
                }
                for sa in statuses
            ],
        )
        for sa in statuses:
            local_store.mark_synced(sa)

    async def push_delete(self, db, uuid, remote, deleted_at):
        await remote.delete_where(EntityKind.STUDENT_ATTENDANCE, "attendance_record_uuid", uuid)
        await remote.hard_delete(self.kind, uuid)

    def scope_filters(self, scope):
        if scope.all_offices:
            return {}
        if not scope.office_uuids:
            return None
        return {"office_uuid": in_filter(scope.office_uuids)}

    def from_remote(self, db, remote_row):
        if (
            local_store.get_by_uuid(db, EntityKind.OFFICE, remote_row.office_uuid, include_deleted=True) is None
            or local_store.get_by_uuid(db, EntityKind.LEVEL, remote_row.level_uuid, include_deleted=True) is None
        ):
            logger.warning(
                "Feuille d'appel %s ignorée : centre ou niveau absent localement", remote_row.uuid
            )
            return None
        return {
            "date": remote_row.date,
            "office_uuid": remote_row.office_uuid,
            "level_uuid": remote_row.level_uuid,
        }

    def natural_duplicate(self, db, uuid, fields):
        # Une seule feuille par (date, centre, niveau)
        return db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.date == fields["date"],
                AttendanceRecord.office_uuid == fields["office_uuid"],
                AttendanceRecord.level_uuid == fields["level_uuid"],
                AttendanceRecord.uuid != uuid,
            )
        ).scalars().first()

    def apply_children(self, db, row, remote_row):
        db.execute(delete(StudentAttendance).where(StudentAttendance.attendance_record_uuid == row.uuid))
        known = _known_students(db, [sa.student_uuid for sa in remote_row.student_attendances])
        for item in remote_row.student_attendances:
            if item.student_uuid not in known:
                logger.debug("Statut ignoré : élève %s absent localement", item.student_uuid)
                continue
            db.add(StudentAttendance(
                attendance_record_uuid=row.uuid,
                student_uuid=item.student_uuid,
                status=item.status,
                is_synced=True,
                operation_type=None,
                created_at=to_utc(item.created_at or remote_row.created_at),
                updated_at=to_utc(item.updated_at or item.created_at or remote_row.last_change),
            ))
        db.flush()


DEFAULT_ADAPTERS: List[EntityAdapter] = [
    OfficeAdapter(),
    LevelAdapter(),
    StudentAdapter(),
    AttendanceRecordAdapter(),
]


def _any_row(db: Session, model, *criteria) -> bool:
    return db.execute(select(model.local_id).where(*criteria).limit(1)).scalar() is not None


async def _remote_id_for(db: Session, remote: RemoteServiceClient, kind: EntityKind, uuid: str) -> int:
    row = local_store.get_by_uuid(db, kind, uuid, include_deleted=True)
    if row is not None and row.remote_id is not None:
        return row.remote_id
    return await remote.resolve_remote_id(kind, uuid)


def _local_uuid_for(db: Session, model, embedded, remote_id: Optional[int]) -> Optional[str]:
    if embedded is not None:
        uuid = embedded.uuid
    elif remote_id is not None:
        uuid = db.execute(select(model.uuid).where(model.remote_id == remote_id)).scalar()
    else:
        return None
    if uuid is None:
        return None
    return db.execute(select(model.uuid).where(model.uuid == uuid)).scalar()


def _known_students(db: Session, uuids: List[str]) -> set:
    if not uuids:
        return set()
    return set(db.execute(select(Student.uuid).where(Student.uuid.in_(uuids))).scalars().all())
