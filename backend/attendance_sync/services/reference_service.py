"""
Service métier pour les centres et les niveaux.
Les deux entités ont la même forme (un nom unique) et le même cycle de vie.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from attendance_sync.exceptions import DuplicateError, NotFoundError
from attendance_sync.models.enums import EntityKind
from attendance_sync.models.level import Level
from attendance_sync.models.office import Office
from attendance_sync.schemas.reference import NamedEntityCreate, NamedEntityUpdate
from attendance_sync.services import local_store

logger = logging.getLogger(__name__)

_LABELS = {EntityKind.OFFICE: "Un centre", EntityKind.LEVEL: "Un niveau"}


def create_office(db: Session, data: NamedEntityCreate) -> Office:
    return _create_named(db, EntityKind.OFFICE, data)


def update_office(db: Session, uuid: str, data: NamedEntityUpdate) -> Office:
    return _update_named(db, EntityKind.OFFICE, uuid, data)


def delete_office(db: Session, uuid: str) -> None:
    _delete_named(db, EntityKind.OFFICE, uuid)


def get_offices(db: Session) -> List[Office]:
    """Retourne les centres actifs, triés par nom."""
    return local_store.query(db, EntityKind.OFFICE, order_by=Office.name)


def create_level(db: Session, data: NamedEntityCreate) -> Level:
    return _create_named(db, EntityKind.LEVEL, data)


def update_level(db: Session, uuid: str, data: NamedEntityUpdate) -> Level:
    return _update_named(db, EntityKind.LEVEL, uuid, data)


def delete_level(db: Session, uuid: str) -> None:
    _delete_named(db, EntityKind.LEVEL, uuid)


def get_levels(db: Session) -> List[Level]:
    """Retourne les niveaux actifs, triés par nom."""
    return local_store.query(db, EntityKind.LEVEL, order_by=Level.name)


def _create_named(db: Session, kind: EntityKind, data: NamedEntityCreate):
    """
    Crée un centre ou un niveau.
    Lève DuplicateError si un élément actif porte déjà ce nom (insensible à la casse).
    """
    _ensure_name_free(db, kind, data.name)
    row = local_store.upsert_entity(db, kind, {"name": data.name})
    logger.info("%s créé localement : %s (%s)", kind.value, row.name, row.uuid)
    return row


def _update_named(db: Session, kind: EntityKind, uuid: str, data: NamedEntityUpdate):
    if local_store.get_by_uuid(db, kind, uuid) is None:
        raise NotFoundError(f"{_LABELS[kind]} introuvable.")
    _ensure_name_free(db, kind, data.name, exclude_uuid=uuid)
    return local_store.upsert_entity(db, kind, {"name": data.name}, uuid=uuid)


def _delete_named(db: Session, kind: EntityKind, uuid: str) -> None:
    local_store.soft_delete(db, kind, uuid)
    logger.info("%s supprimé localement (logique) : %s", kind.value, uuid)


def _ensure_name_free(db: Session, kind: EntityKind, name: str, exclude_uuid: Optional[str] = None) -> None:
    model = local_store.model_for(kind)
    stmt = select(model.uuid).where(
        func.lower(model.name) == name.lower(),
        model.deleted_at.is_(None),
    )
    if exclude_uuid is not None:
        stmt = stmt.where(model.uuid != exclude_uuid)
    if db.execute(stmt.limit(1)).scalar() is not None:
        raise DuplicateError(f"{_LABELS[kind]} avec le nom '{name}' existe déjà.")
