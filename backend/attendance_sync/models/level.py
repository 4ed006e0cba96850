"""
Modèle SQLAlchemy pour les niveaux.
"""

from sqlalchemy import Column, String

from attendance_sync.database import Base
from attendance_sync.models.mixins import SoftDeleteMixin, SyncColumnsMixin


class Level(SyncColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "levels"

    name = Column(String(255), nullable=False)
