"""
Tests unitaires pour le stockage local générique.
Couverture : marquage INSERT/UPDATE/DELETE, mise en file dans la même transaction,
updated_at jamais rétrograde, suppression logique et physique, requêtes.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from attendance_sync.exceptions import NotFoundError
from attendance_sync.models.attendance import StudentAttendance
from attendance_sync.models.enums import EntityKind
from attendance_sync.services import local_store, sync_queue_service
from attendance_sync.timestamps import to_utc, utc_now


# --- Helpers ---

def make_office(db, name="Centre Nord"):
    return local_store.upsert_entity(db, EntityKind.OFFICE, {"name": name})


def make_level(db, name="Débutant"):
    return local_store.upsert_entity(db, EntityKind.LEVEL, {"name": name})


# ============================================================
# upsert_entity : création
# ============================================================

def test_creation_marquee_insert_et_mise_en_file(db):
    office = make_office(db)

    assert office.uuid
    assert office.remote_id is None
    assert office.is_synced is False
    assert office.operation_type == "INSERT"
    pending = sync_queue_service.list_pending(db)
    assert [(e.entity_uuid, e.operation) for e in pending] == [(office.uuid, "INSERT")]


def test_creation_ignore_les_colonnes_de_synchronisation(db):
    """remote_id, is_synced, etc. ne sont jamais modifiables par les appelants."""
    office = local_store.upsert_entity(
        db, EntityKind.OFFICE, {"name": "Centre Sud", "remote_id": 99, "is_synced": True}
    )
    assert office.remote_id is None
    assert office.is_synced is False


# ============================================================
# upsert_entity : mise à jour
# ============================================================

def test_modification_ligne_jamais_poussee_reste_insert(db):
    office = make_office(db)

    updated = local_store.upsert_entity(db, EntityKind.OFFICE, {"name": "Centre Est"}, uuid=office.uuid)

    assert updated.name == "Centre Est"
    assert updated.operation_type == "INSERT"
    assert [e.operation for e in sync_queue_service.list_pending(db)] == ["INSERT", "UPDATE"]


def test_modification_ligne_deja_poussee_devient_update(db):
    office = make_office(db)
    office.remote_id = 12
    local_store.mark_synced(office)
    db.commit()

    updated = local_store.upsert_entity(db, EntityKind.OFFICE, {"name": "Centre Est"}, uuid=office.uuid)

    assert updated.operation_type == "UPDATE"
    assert updated.is_synced is False


def test_updated_at_jamais_retrograde(db):
    """Même si l'horloge locale recule, updated_at ne diminue pas."""
    office = make_office(db)
    future = utc_now() + timedelta(hours=2)
    office.updated_at = future
    db.commit()

    updated = local_store.upsert_entity(db, EntityKind.OFFICE, {"name": "Centre Est"}, uuid=office.uuid)

    assert to_utc(updated.updated_at) >= to_utc(future)


def test_modification_cible_absente(db):
    with pytest.raises(NotFoundError):
        local_store.upsert_entity(db, EntityKind.OFFICE, {"name": "X"}, uuid="inconnu")


# ============================================================
# Suppressions
# ============================================================

def test_suppression_logique(db):
    office = make_office(db)

    local_store.soft_delete(db, EntityKind.OFFICE, office.uuid)

    assert local_store.get_by_uuid(db, EntityKind.OFFICE, office.uuid) is None
    deleted = local_store.get_by_uuid(db, EntityKind.OFFICE, office.uuid, include_deleted=True)
    assert deleted.deleted_at is not None
    assert deleted.operation_type == "DELETE"
    assert sync_queue_service.list_pending(db)[-1].operation == "DELETE"


def test_suppression_logique_refusee_pour_les_feuilles(db):
    with pytest.raises(ValueError):
        local_store.soft_delete(db, EntityKind.ATTENDANCE_RECORD, "a-1")


def test_suppression_physique_feuille_et_statuts(db):
    office = make_office(db)
    level = make_level(db)
    student = local_store.upsert_entity(db, EntityKind.STUDENT, {
        "name": "Amina", "office_uuid": office.uuid, "level_uuid": level.uuid,
    })
    record = local_store.upsert_entity(db, EntityKind.ATTENDANCE_RECORD, {
        "date": "2026-03-02", "office_uuid": office.uuid, "level_uuid": level.uuid,
    })
    db.add(StudentAttendance(
        attendance_record_uuid=record.uuid, student_uuid=student.uuid, status="present",
    ))
    db.commit()

    local_store.hard_delete(db, EntityKind.ATTENDANCE_RECORD, record.uuid)

    assert local_store.get_by_uuid(db, EntityKind.ATTENDANCE_RECORD, record.uuid) is None
    assert local_store.statuses_for(db, record.uuid) == []
    last = sync_queue_service.list_pending(db)[-1]
    assert (last.entity_uuid, last.operation) == (record.uuid, "DELETE")


def test_suppression_cible_absente(db):
    with pytest.raises(NotFoundError):
        local_store.soft_delete(db, EntityKind.STUDENT, "inconnu")


def test_echec_ne_laisse_aucune_ecriture(db):
    """Contrainte violée (centre inexistant) : ni ligne ni entrée de file."""
    with pytest.raises(IntegrityError):
        local_store.upsert_entity(db, EntityKind.STUDENT, {
            "name": "Yanis", "office_uuid": "absent", "level_uuid": "absent",
        })

    assert local_store.query(db, EntityKind.STUDENT) == []
    assert sync_queue_service.count_pending(db) == 0


# ============================================================
# Requêtes
# ============================================================

def test_query_exclut_les_lignes_supprimees(db):
    a = make_office(db, "A")
    make_office(db, "B")
    local_store.soft_delete(db, EntityKind.OFFICE, a.uuid)

    assert [o.name for o in local_store.query(db, EntityKind.OFFICE)] == ["B"]
    assert len(local_store.query(db, EntityKind.OFFICE, include_deleted=True)) == 2


def test_snapshot_feuille_contient_les_statuts(db):
    office = make_office(db)
    level = make_level(db)
    student = local_store.upsert_entity(db, EntityKind.STUDENT, {
        "name": "Amina", "office_uuid": office.uuid, "level_uuid": level.uuid,
    })
    record = local_store.upsert_entity(db, EntityKind.ATTENDANCE_RECORD, {
        "date": "2026-03-02", "office_uuid": office.uuid, "level_uuid": level.uuid,
    })
    db.add(StudentAttendance(attendance_record_uuid=record.uuid, student_uuid=student.uuid, status="absent"))
    db.commit()

    payload = local_store.snapshot(db, EntityKind.ATTENDANCE_RECORD, record)

    assert payload.entity_kind == "attendance_records"
    assert [(s.student_uuid, s.status.value) for s in payload.statuses] == [(student.uuid, "absent")]
