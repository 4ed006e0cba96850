"""
Modèle SQLAlchemy pour la file de synchronisation (générique à toutes les entités).

L'id auto-incrémenté est la séquence d'insertion : c'est l'ordre de rejeu du push.
Une entrée n'est supprimée qu'après confirmation du serveur (ou si elle est devenue inutile).
"""

from sqlalchemy import Column, DateTime, Integer, String, Text

from attendance_sync.database import Base
from attendance_sync.timestamps import utc_now


class SyncQueueEntry(Base):
    __tablename__ = "sync_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_kind = Column(String(30), nullable=False, index=True)
    entity_uuid = Column(String(36), nullable=False, index=True)
    operation = Column(String(10), nullable=False)    # INSERT, UPDATE, DELETE
    payload = Column(Text, nullable=True)             # Instantané JSON typé (schemas.sync.SyncPayload)
    created_at = Column(DateTime, nullable=False, default=utc_now)
