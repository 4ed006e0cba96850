"""
Tests unitaires pour les feuilles d'appel.
Couverture : remplacement complet des statuts, garde contre la double feuille
(même date, centre et niveau), références, suppression physique, lecture.
"""

from datetime import date

import pytest
from pydantic import ValidationError as SchemaValidationError

from attendance_sync.exceptions import DuplicateError, NotFoundError, ValidationError
from attendance_sync.models.enums import EntityKind
from attendance_sync.schemas.attendance import AttendanceSave, StudentStatusItem
from attendance_sync.schemas.reference import NamedEntityCreate
from attendance_sync.schemas.student import StudentCreate
from attendance_sync.services import (
    attendance_service,
    local_store,
    reference_service,
    student_service,
    sync_queue_service,
)


# --- Helpers ---

def make_context(db, nb_students=2):
    office = reference_service.create_office(db, NamedEntityCreate(name="Centre Nord"))
    level = reference_service.create_level(db, NamedEntityCreate(name="Débutant"))
    students = [
        student_service.create_student(db, StudentCreate(
            name=f"Élève {i}", office_uuid=office.uuid, level_uuid=level.uuid,
        ))
        for i in range(1, nb_students + 1)
    ]
    return office, level, students


def make_save(office, level, statuses, day=date(2026, 3, 2)) -> AttendanceSave:
    return AttendanceSave(
        date=day,
        office_uuid=office.uuid,
        level_uuid=level.uuid,
        statuses=[StudentStatusItem(student_uuid=uuid, status=status) for uuid, status in statuses],
    )


def record_count(db) -> int:
    return len(local_store.query(db, EntityKind.ATTENDANCE_RECORD))


# ============================================================
# Création
# ============================================================

def test_save_attendance_creation(db):
    office, level, (s1, s2) = make_context(db)

    record = attendance_service.save_attendance(
        db, make_save(office, level, [(s1.uuid, "present"), (s2.uuid, "absent")])
    )

    assert record.date == "2026-03-02"
    assert record.operation_type == "INSERT"
    statuses = {sa.student_uuid: sa.status for sa in local_store.statuses_for(db, record.uuid)}
    assert statuses == {s1.uuid: "present", s2.uuid: "absent"}
    last = sync_queue_service.list_pending(db)[-1]
    assert (last.entity_kind, last.operation) == ("attendance_records", "INSERT")


def test_save_attendance_une_seule_entree_de_file(db):
    """Les statuts voyagent avec la feuille : une seule entrée par sauvegarde."""
    office, level, (s1, s2) = make_context(db)
    before = sync_queue_service.count_pending(db)

    attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "present"), (s2.uuid, "excused")]))

    assert sync_queue_service.count_pending(db) == before + 1


# ============================================================
# Remplacement complet des statuts
# ============================================================

def test_resauvegarde_remplace_tous_les_statuts(db):
    """[{S1,present},{S2,absent}] puis [{S1,absent}] → une seule ligne (S1, absent)."""
    office, level, (s1, s2) = make_context(db)
    record = attendance_service.save_attendance(
        db, make_save(office, level, [(s1.uuid, "present"), (s2.uuid, "absent")])
    )

    attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "absent")]), record_uuid=record.uuid)

    rows = local_store.statuses_for(db, record.uuid)
    assert [(sa.student_uuid, sa.status) for sa in rows] == [(s1.uuid, "absent")]
    last = sync_queue_service.list_pending(db)[-1]
    assert (last.operation, last.entity_uuid) == ("UPDATE", record.uuid)
    payload = sync_queue_service.decode_payload(last)
    assert [s.student_uuid for s in payload.statuses] == [s1.uuid]


# ============================================================
# Garde contre la double feuille
# ============================================================

def test_deuxieme_feuille_meme_jour_refusee(db):
    office, level, (s1, _) = make_context(db)
    attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "present")]))

    with pytest.raises(DuplicateError):
        attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "absent")]))

    assert record_count(db) == 1


def test_autre_jour_autorise(db):
    office, level, (s1, _) = make_context(db)
    attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "present")]))
    attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "present")], day=date(2026, 3, 3)))

    assert record_count(db) == 2


# ============================================================
# Références
# ============================================================

def test_eleve_inconnu_refuse_sans_ecriture(db):
    office, level, _ = make_context(db)
    before = sync_queue_service.count_pending(db)

    with pytest.raises(ValidationError):
        attendance_service.save_attendance(db, make_save(office, level, [("inconnu", "present")]))

    assert record_count(db) == 0
    assert sync_queue_service.count_pending(db) == before


def test_centre_supprime_refuse(db):
    office, level, (s1, _) = make_context(db)
    reference_service.delete_office(db, office.uuid)

    with pytest.raises(ValidationError):
        attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "present")]))


def test_eleve_en_double_dans_la_feuille_rejete():
    with pytest.raises(SchemaValidationError):
        AttendanceSave(
            date=date(2026, 3, 2), office_uuid="o", level_uuid="l",
            statuses=[
                StudentStatusItem(student_uuid="s-1", status="present"),
                StudentStatusItem(student_uuid="s-1", status="absent"),
            ],
        )


# ============================================================
# Suppression et lecture
# ============================================================

def test_delete_attendance_record(db):
    office, level, (s1, _) = make_context(db)
    record = attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "present")]))

    attendance_service.delete_attendance_record(db, record.uuid)

    assert record_count(db) == 0
    assert local_store.statuses_for(db, record.uuid) == []


def test_get_attendance_records_avec_noms_plus_recent_d_abord(db):
    office, level, (s1, _) = make_context(db)
    attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "present")], day=date(2026, 3, 2)))
    attendance_service.save_attendance(db, make_save(office, level, [(s1.uuid, "absent")], day=date(2026, 3, 5)))

    records = attendance_service.get_attendance_records(db)

    assert [r.date for r in records] == ["2026-03-05", "2026-03-02"]
    assert records[0].office_name == "Centre Nord"
    assert records[0].level_name == "Débutant"


def test_get_attendance_record_detail(db):
    office, level, (s1, s2) = make_context(db)
    record = attendance_service.save_attendance(
        db, make_save(office, level, [(s1.uuid, "present"), (s2.uuid, "excused")])
    )

    detail = attendance_service.get_attendance_record(db, record.uuid)

    assert {s.status for s in detail.statuses} == {"present", "excused"}


def test_get_attendance_record_introuvable(db):
    with pytest.raises(NotFoundError):
        attendance_service.get_attendance_record(db, "inconnu")
