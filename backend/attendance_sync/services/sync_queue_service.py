"""
File de synchronisation : registre FIFO de « ce qui doit être poussé ».

La file est la seule source de vérité du travail de push : le moteur ne déduit
jamais les changements en comparant des instantanés.
Aucune fonction ici ne fait de commit : l'appelant fixe la portée transactionnelle.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from attendance_sync.models.enums import QUEUEABLE_KINDS, EntityKind, Operation
from attendance_sync.models.sync_queue import SyncQueueEntry
from attendance_sync.schemas.sync import SyncPayload, sync_payload_adapter
from attendance_sync.timestamps import utc_now

logger = logging.getLogger(__name__)


def enqueue(
    db: Session,
    entity_kind: EntityKind,
    operation: Operation,
    entity_uuid: str,
    payload: Optional[SyncPayload] = None,
) -> SyncQueueEntry:
    """
    Ajoute un changement en fin de file.
    Lève ValueError pour une entité qui n'a pas d'entrées propres (présences élèves).
    """
    entity_kind = EntityKind(entity_kind)
    if entity_kind not in QUEUEABLE_KINDS:
        raise ValueError(f"Entité non synchronisable directement : {entity_kind.value}")

    entry = SyncQueueEntry(
        entity_kind=entity_kind.value,
        entity_uuid=entity_uuid,
        operation=Operation(operation).value,
        payload=sync_payload_adapter.dump_json(payload).decode() if payload is not None else None,
        created_at=utc_now(),
    )
    db.add(entry)
    db.flush()  # Obtenir l'id (séquence d'insertion)
    logger.debug("File : %s %s %s (#%s)", entry.operation, entry.entity_kind, entity_uuid, entry.id)
    return entry


def list_pending(db: Session, entity_kind: Optional[EntityKind] = None) -> List[SyncQueueEntry]:
    """Entrées en attente, de la plus ancienne à la plus récente."""
    stmt = select(SyncQueueEntry).order_by(SyncQueueEntry.id)
    if entity_kind is not None:
        stmt = stmt.where(SyncQueueEntry.entity_kind == EntityKind(entity_kind).value)
    return list(db.execute(stmt).scalars().all())


def remove(db: Session, entry_id: int) -> bool:
    """Retire une entrée confirmée. Retourne False si elle n'existait plus."""
    result = db.execute(delete(SyncQueueEntry).where(SyncQueueEntry.id == entry_id))
    return result.rowcount > 0


def remove_for_entity(db: Session, entity_uuid: str) -> int:
    """Retire toutes les entrées d'une ligne (ligne réconciliée et supprimée localement)."""
    result = db.execute(delete(SyncQueueEntry).where(SyncQueueEntry.entity_uuid == entity_uuid))
    return result.rowcount


def count_pending(db: Session, entity_kind: Optional[EntityKind] = None) -> int:
    """Nombre d'entrées en attente (filtré au niveau de la requête)."""
    stmt = select(func.count()).select_from(SyncQueueEntry)
    if entity_kind is not None:
        stmt = stmt.where(SyncQueueEntry.entity_kind == EntityKind(entity_kind).value)
    return db.execute(stmt).scalar() or 0


def count_pending_by_kind(db: Session) -> Dict[str, int]:
    rows = db.execute(
        select(SyncQueueEntry.entity_kind, func.count())
        .group_by(SyncQueueEntry.entity_kind)
    ).all()
    counts = {kind.value: 0 for kind in QUEUEABLE_KINDS}
    counts.update({kind: count for kind, count in rows})
    return counts


def has_other_pending(db: Session, entity_uuid: str, exclude_id: int) -> bool:
    """Vrai si la ligne a encore un changement en attente en dehors de l'entrée donnée."""
    found = db.execute(
        select(SyncQueueEntry.id)
        .where(SyncQueueEntry.entity_uuid == entity_uuid, SyncQueueEntry.id != exclude_id)
        .limit(1)
    ).scalar()
    return found is not None


def purge_older_than(db: Session, age: timedelta) -> int:
    """
    Supprime les entrées plus anciennes que `age` (abandon volontaire d'un arriéré).
    Les lignes concernées gardent leur operation_type : un pull ne les écrasera pas.
    """
    cutoff = utc_now() - age
    result = db.execute(delete(SyncQueueEntry).where(SyncQueueEntry.created_at < cutoff))
    if result.rowcount:
        logger.warning("File : %d entrée(s) plus ancienne(s) que %s purgée(s)", result.rowcount, age)
    return result.rowcount


def decode_payload(entry: SyncQueueEntry) -> Optional[SyncPayload]:
    """Relit l'instantané typé d'une entrée (None si l'entrée n'en a pas)."""
    if not entry.payload:
        return None
    return sync_payload_adapter.validate_json(entry.payload)
