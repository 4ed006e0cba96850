"""
Colonnes de suivi de synchronisation partagées par toutes les entités.

- local_id       : clé technique SQLite, jamais transmise comme identité
- uuid           : généré côté client à la création, seule clé de jointure inter-bases
- remote_id      : id numérique attribué par le serveur (NULL avant le premier push)
- is_synced      : vrai si aucun changement local n'attend d'être poussé
- operation_type : INSERT / UPDATE / DELETE en attente, NULL sinon
- updated_at     : seul critère de résolution de conflit (last-write-wins)
"""

import uuid as uuid_module

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from attendance_sync.timestamps import utc_now


def new_uuid() -> str:
    return str(uuid_module.uuid4())


class SyncColumnsMixin:
    local_id = Column("id", Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, default=new_uuid)
    remote_id = Column(Integer, unique=True, nullable=True)
    is_synced = Column(Boolean, nullable=False, default=False)
    operation_type = Column(String(10), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=True, default=utc_now)


class SoftDeleteMixin:
    """Suppression logique : la ligne reste pour propager la suppression aux autres appareils."""

    deleted_at = Column(DateTime, nullable=True)
