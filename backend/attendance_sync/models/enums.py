"""Types d'entités synchronisables et opérations de la file."""

import enum


class EntityKind(str, enum.Enum):
    """La valeur est le nom de table, identique en local et sur le serveur."""

    OFFICE = "offices"
    LEVEL = "levels"
    STUDENT = "students"
    ATTENDANCE_RECORD = "attendance_records"
    STUDENT_ATTENDANCE = "student_attendances"


class Operation(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    EXCUSED = "excused"


# Entités qui possèdent leurs propres entrées dans la file.
# Les présences élèves voyagent avec leur feuille d'appel.
QUEUEABLE_KINDS = (
    EntityKind.OFFICE,
    EntityKind.LEVEL,
    EntityKind.STUDENT,
    EntityKind.ATTENDANCE_RECORD,
)

SOFT_DELETE_KINDS = (EntityKind.OFFICE, EntityKind.LEVEL, EntityKind.STUDENT)
