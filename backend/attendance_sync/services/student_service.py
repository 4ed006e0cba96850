"""
Service métier pour les élèves.
Un élève appartient toujours à un centre et à un niveau actifs.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from attendance_sync.exceptions import NotFoundError, ValidationError
from attendance_sync.models.enums import EntityKind
from attendance_sync.models.student import Student
from attendance_sync.schemas.student import StudentCreate, StudentUpdate
from attendance_sync.services import local_store

logger = logging.getLogger(__name__)


def create_student(db: Session, data: StudentCreate) -> Student:
    """
    Crée un élève localement et l'ajoute à la file.
    Lève ValidationError si le centre ou le niveau est absent ou supprimé (aucune écriture).
    """
    _check_references(db, data.office_uuid, data.level_uuid)
    student = local_store.upsert_entity(db, EntityKind.STUDENT, _to_fields(data.model_dump()))
    logger.info("Élève créé localement : %s (%s)", student.name, student.uuid)
    return student


def update_student(db: Session, uuid: str, data: StudentUpdate) -> Student:
    """Met à jour les champs fournis d'un élève. Les champs absents ne sont pas modifiés."""
    student = local_store.get_by_uuid(db, EntityKind.STUDENT, uuid)
    if student is None:
        raise NotFoundError("Élève introuvable.")

    update_data = data.model_dump(exclude_unset=True)
    _check_references(
        db,
        update_data.get("office_uuid", student.office_uuid),
        update_data.get("level_uuid", student.level_uuid),
    )
    return local_store.upsert_entity(db, EntityKind.STUDENT, _to_fields(update_data), uuid=uuid)


def delete_student(db: Session, uuid: str) -> None:
    """Suppression logique : la ligne est conservée jusqu'à la confirmation du serveur."""
    local_store.soft_delete(db, EntityKind.STUDENT, uuid)
    logger.info("Élève supprimé localement (logique) : %s", uuid)


def get_students(
    db: Session,
    office_uuid: Optional[str] = None,
    level_uuid: Optional[str] = None,
) -> List[Student]:
    """Élèves actifs triés par nom, filtrés éventuellement par centre et niveau."""
    criteria = []
    if office_uuid:
        criteria.append(Student.office_uuid == office_uuid)
    if level_uuid:
        criteria.append(Student.level_uuid == level_uuid)
    return local_store.query(db, EntityKind.STUDENT, *criteria, order_by=Student.name)


def _check_references(db: Session, office_uuid: Optional[str], level_uuid: Optional[str]) -> None:
    if not office_uuid or local_store.get_by_uuid(db, EntityKind.OFFICE, office_uuid) is None:
        raise ValidationError("Veuillez sélectionner un centre existant.")
    if not level_uuid or local_store.get_by_uuid(db, EntityKind.LEVEL, level_uuid) is None:
        raise ValidationError("Veuillez sélectionner un niveau existant.")


def _to_fields(data: dict) -> dict:
    """Les dates sont stockées au format ISO (texte), comme sur le serveur."""
    fields = dict(data)
    if fields.get("birth_date") is not None:
        fields["birth_date"] = fields["birth_date"].isoformat()
    return fields
