"""
Modèles SQLAlchemy pour les feuilles d'appel et les présences élèves.

Une feuille d'appel (AttendanceRecord) est unique par (date, centre, niveau) :
contrôlé par une vérification explicite avant insertion, pas par une contrainte.
Les présences (StudentAttendance) sont toujours ré-écrites en bloc pour une feuille.
"""

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint

from attendance_sync.database import Base
from attendance_sync.models.mixins import SyncColumnsMixin


class AttendanceRecord(SyncColumnsMixin, Base):
    """Feuille d'appel d'un jour pour un centre et un niveau (suppression physique)."""
    __tablename__ = "attendance_records"

    date = Column(String(10), nullable=False)   # YYYY-MM-DD
    office_uuid = Column(String(36), ForeignKey("offices.uuid"), nullable=False)
    level_uuid = Column(String(36), ForeignKey("levels.uuid"), nullable=False)


class StudentAttendance(SyncColumnsMixin, Base):
    """Statut d'un élève sur une feuille d'appel : present, absent ou excused."""
    __tablename__ = "student_attendances"
    __table_args__ = (
        UniqueConstraint("attendance_record_uuid", "student_uuid", name="uq_student_attendance"),
    )

    attendance_record_uuid = Column(
        String(36), ForeignKey("attendance_records.uuid", ondelete="CASCADE"), nullable=False
    )
    student_uuid = Column(String(36), ForeignKey("students.uuid", ondelete="CASCADE"), nullable=False)
    status = Column(String(10), nullable=False)
