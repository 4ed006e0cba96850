"""
Modèle SQLAlchemy pour les centres (offices).
"""

from sqlalchemy import Column, String

from attendance_sync.database import Base
from attendance_sync.models.mixins import SoftDeleteMixin, SyncColumnsMixin


class Office(SyncColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "offices"

    name = Column(String(255), nullable=False)
