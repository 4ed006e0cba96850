"""
Modèle SQLAlchemy pour la table students.
Le centre et le niveau sont référencés par UUID, jamais par id local.
"""

from sqlalchemy import Column, ForeignKey, String

from attendance_sync.database import Base
from attendance_sync.models.mixins import SoftDeleteMixin, SyncColumnsMixin


class Student(SyncColumnsMixin, SoftDeleteMixin, Base):
    __tablename__ = "students"

    name = Column(String(255), nullable=False)
    birth_date = Column(String(10), nullable=True)   # Date ISO, optionnelle
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    office_uuid = Column(String(36), ForeignKey("offices.uuid"), nullable=False)
    level_uuid = Column(String(36), ForeignKey("levels.uuid"), nullable=False)
