"""
Tests d'intégration API pour les centres et les niveaux.
Testent les URLs, les codes HTTP, la validation et le format des réponses.
"""

import uuid
from datetime import datetime
from unittest.mock import patch

from attendance_sync.exceptions import DuplicateError, NotFoundError
from attendance_sync.schemas.reference import NamedEntityResponse


# --- Helper ---

def make_named_response(**kwargs) -> NamedEntityResponse:
    return NamedEntityResponse(
        uuid=kwargs.get("uuid", str(uuid.uuid4())),
        name=kwargs.get("name", "Centre Nord"),
        remote_id=kwargs.get("remote_id"),
        is_synced=kwargs.get("is_synced", False),
        operation_type=kwargs.get("operation_type", "INSERT"),
        created_at=datetime.now(),
        updated_at=datetime.now(),
    )


# ============================================================
# POST /api/v1/offices
# ============================================================

def test_create_office_succes(client):
    """Création hors-ligne → 201, ligne marquée INSERT."""
    with patch("attendance_sync.routers.offices.reference_service.create_office") as mock:
        mock.return_value = make_named_response(name="Centre Nord")

        response = client.post("/api/v1/offices", json={"name": "Centre Nord"})

    assert response.status_code == 201
    assert response.json()["name"] == "Centre Nord"
    assert response.json()["is_synced"] is False
    assert response.json()["operation_type"] == "INSERT"


def test_create_office_nom_vide(client):
    response = client.post("/api/v1/offices", json={"name": "   "})
    assert response.status_code == 422


def test_create_office_nom_duplique(client):
    """Nom déjà utilisé → 409 Conflict."""
    with patch("attendance_sync.routers.offices.reference_service.create_office") as mock:
        mock.side_effect = DuplicateError("Un centre nommé 'Centre Nord' existe déjà.")

        response = client.post("/api/v1/offices", json={"name": "Centre Nord"})

    assert response.status_code == 409
    assert "existe déjà" in response.json()["detail"]


# ============================================================
# GET / PUT / DELETE /api/v1/offices
# ============================================================

def test_list_offices(client):
    with patch("attendance_sync.routers.offices.reference_service.get_offices") as mock:
        mock.return_value = [make_named_response(name="A"), make_named_response(name="B")]
        response = client.get("/api/v1/offices")

    assert response.status_code == 200
    assert [o["name"] for o in response.json()] == ["A", "B"]


def test_update_office_introuvable(client):
    with patch("attendance_sync.routers.offices.reference_service.update_office") as mock:
        mock.side_effect = NotFoundError("offices inconnu introuvable.")

        response = client.put("/api/v1/offices/inconnu", json={"name": "Centre Sud"})

    assert response.status_code == 404


def test_update_office_succes(client):
    office_uuid = str(uuid.uuid4())
    with patch("attendance_sync.routers.offices.reference_service.update_office") as mock:
        mock.return_value = make_named_response(uuid=office_uuid, name="Centre Sud", operation_type="UPDATE")

        response = client.put(f"/api/v1/offices/{office_uuid}", json={"name": "Centre Sud"})

    assert response.status_code == 200
    assert response.json()["operation_type"] == "UPDATE"
    assert mock.call_args.args[1] == office_uuid


def test_delete_office(client):
    with patch("attendance_sync.routers.offices.reference_service.delete_office") as mock:
        response = client.delete("/api/v1/offices/o-1")

    assert response.status_code == 204
    assert mock.call_args.args[1] == "o-1"


# ============================================================
# /api/v1/levels
# ============================================================

def test_create_level_succes(client):
    with patch("attendance_sync.routers.levels.reference_service.create_level") as mock:
        mock.return_value = make_named_response(name="Débutant")

        response = client.post("/api/v1/levels", json={"name": "Débutant"})

    assert response.status_code == 201
    assert response.json()["name"] == "Débutant"


def test_list_levels(client):
    with patch("attendance_sync.routers.levels.reference_service.get_levels") as mock:
        mock.return_value = [make_named_response(name="Débutant", is_synced=True, operation_type=None)]
        response = client.get("/api/v1/levels")

    assert response.status_code == 200
    assert response.json()[0]["operation_type"] is None


def test_delete_level_introuvable(client):
    with patch("attendance_sync.routers.levels.reference_service.delete_level") as mock:
        mock.side_effect = NotFoundError("levels l-1 introuvable.")
        response = client.delete("/api/v1/levels/l-1")

    assert response.status_code == 404


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
