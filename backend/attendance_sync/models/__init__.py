# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères par UUID.
# offices et levels doivent précéder students et attendance_records.

from attendance_sync.models.enums import EntityKind
from attendance_sync.models.office import Office  # noqa: F401
from attendance_sync.models.level import Level  # noqa: F401
from attendance_sync.models.student import Student  # noqa: F401
from attendance_sync.models.attendance import AttendanceRecord, StudentAttendance  # noqa: F401
from attendance_sync.models.sync_queue import SyncQueueEntry  # noqa: F401

ENTITY_MODELS = {
    EntityKind.OFFICE: Office,
    EntityKind.LEVEL: Level,
    EntityKind.STUDENT: Student,
    EntityKind.ATTENDANCE_RECORD: AttendanceRecord,
    EntityKind.STUDENT_ATTENDANCE: StudentAttendance,
}
