"""
Configuration partagée pour tous les tests.

- client : API locale avec la dépendance get_db mockée (tests de routers)
- db / session_factory : base SQLite en mémoire, tables créées, partagée par
  toutes les sessions d'un même test (StaticPool)
- remote : faux serveur PostgREST en mémoire, sans réseau
- gate / engine : passerelle d'identité et moteur branchés sur le faux serveur
"""

import asyncio
import os

# Avant tout import du paquet : base en mémoire, pas de planificateur
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_SYNC_ENABLED"] = "false"

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from attendance_sync.database import create_local_engine, get_db, init_db
from attendance_sync.exceptions import ConnectivityError, DuplicateError, NotFoundError, RemoteServiceError
from attendance_sync.main import app
from attendance_sync.models.enums import EntityKind
from attendance_sync.services.identity_gate import AccessScope, Identity, IdentityGate
from attendance_sync.services.sync_service import SyncEngine


@pytest.fixture
def client():
    """Client HTTP de test avec la BDD mockée."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def session_factory():
    engine = create_local_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def gate(remote):
    """Passerelle connectée en administrateur (portée complète)."""
    g = IdentityGate(remote)
    g.set_identity(Identity(id="user-admin", email="admin@ecole.be", role="admin",
                            access_scope=AccessScope(all_offices=True)))
    return g


@pytest.fixture
def engine(session_factory, remote, gate):
    return SyncEngine(session_factory, remote, gate)


# ============================================================
# Faux serveur PostgREST
# ============================================================

class FakeRemote:
    """
    Tables en mémoire, même contrat que RemoteServiceClient.
    - offline=True : chaque appel lève ConnectivityError, ping() renvoie False
    - lose_ack : UUIDs dont l'insertion est enregistrée mais l'accusé perdu
    - fail_uuids : UUIDs dont l'écriture échoue (RemoteServiceError)
    - un nom déjà actif côté serveur (centres, niveaux) provoque un conflit d'unicité
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {kind.value: [] for kind in EntityKind}
        self.offline = False
        self.lose_ack = set()
        self.fail_uuids = set()
        self.calls: List[tuple] = []
        self.access_token: Optional[str] = None
        self._next_id = 1

    # --- Aide aux tests ---

    def seed(self, kind: EntityKind, **fields) -> Dict[str, Any]:
        row = dict(fields)
        row.setdefault("id", self._allocate_id())
        self.tables[EntityKind(kind).value].append(row)
        return row

    def rows(self, kind: EntityKind) -> List[Dict[str, Any]]:
        return self.tables[EntityKind(kind).value]

    def get(self, kind: EntityKind, uuid: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.rows(kind) if r.get("uuid") == uuid), None)

    # --- Contrat du client ---

    def set_access_token(self, token):
        self.access_token = token

    async def aclose(self):
        pass

    async def ping(self) -> bool:
        await asyncio.sleep(0)  # point de suspension, comme un vrai appel réseau
        return not self.offline

    async def insert(self, kind, fields):
        self._check("insert", kind, fields.get("uuid"))
        table = self.rows(kind)
        if any(r.get("uuid") == fields["uuid"] for r in table):
            raise DuplicateError("duplicate key value violates unique constraint")
        if "name" in fields and kind in (EntityKind.OFFICE, EntityKind.LEVEL) and any(
            r.get("name") == fields["name"] and r.get("deleted_at") is None for r in table
        ):
            raise DuplicateError("duplicate key value violates unique constraint")
        row = dict(fields, id=self._allocate_id())
        table.append(row)
        if fields["uuid"] in self.lose_ack:
            self.lose_ack.discard(fields["uuid"])
            raise ConnectivityError("Connexion perdue avant la réponse")
        return row["id"]

    async def insert_many(self, kind, rows):
        self._check("insert_many", kind, None)
        for fields in rows:
            self.rows(kind).append(dict(fields, id=self._allocate_id()))

    async def update(self, kind, uuid, fields, only_active=False):
        self._check("update", kind, uuid)
        row = self.get(kind, uuid)
        if row is None or (only_active and row.get("deleted_at") is not None):
            raise NotFoundError(f"{kind.value} {uuid} introuvable sur le serveur.")
        row.update(fields)

    async def soft_delete(self, kind, uuid, deleted_at):
        await self.update(kind, uuid, {"deleted_at": deleted_at, "updated_at": deleted_at})

    async def hard_delete(self, kind, uuid):
        self._check("hard_delete", kind, uuid)
        row = self.get(kind, uuid)
        if row is None:
            raise NotFoundError(f"{kind.value} {uuid} introuvable sur le serveur.")
        self.rows(kind).remove(row)

    async def delete_where(self, kind, column, value):
        self._check("delete_where", kind, None)
        self.tables[EntityKind(kind).value] = [r for r in self.rows(kind) if r.get(column) != value]

    async def select_all(self, kind, select="*", filters=None):
        self._check("select_all", kind, None)
        rows = [dict(r) for r in self.rows(kind) if _matches(r, filters or {})]
        if "office:offices(uuid)" in select:
            for row in rows:
                row["office"] = self._embed(EntityKind.OFFICE, row.get("office_id"))
                row["level"] = self._embed(EntityKind.LEVEL, row.get("level_id"))
        if "student_attendances(" in select:
            for row in rows:
                row["student_attendances"] = [
                    dict(sa) for sa in self.rows(EntityKind.STUDENT_ATTENDANCE)
                    if sa.get("attendance_record_uuid") == row["uuid"]
                ]
        return rows

    async def select_deleted_uuids(self, kind, filters=None):
        params = dict(filters or {}, deleted_at="not.is.null")
        return {row["uuid"] for row in await self.select_all(kind, select="uuid", filters=params)}

    async def find_by_uuid(self, kind, uuid):
        self._check("find_by_uuid", kind, uuid)
        row = self.get(kind, uuid)
        return dict(row) if row else None

    async def resolve_remote_id(self, kind, uuid):
        row = self.get(kind, uuid)
        if row is None:
            raise NotFoundError(f"{kind.value} {uuid} introuvable sur le serveur.")
        return row["id"]

    async def sign_out(self):
        self._check("sign_out", None, None)

    # --- Interne ---

    def _check(self, method, kind, uuid):
        self.calls.append((method, EntityKind(kind).value if kind else None, uuid))
        if self.offline:
            raise ConnectivityError("Serveur injoignable")
        if uuid is not None and uuid in self.fail_uuids:
            raise RemoteServiceError("Erreur serveur 500", status_code=500)

    def _embed(self, kind, remote_id):
        row = next((r for r in self.rows(kind) if r.get("id") == remote_id), None)
        return {"uuid": row["uuid"]} if row else None

    def _allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id


def _matches(row: Dict[str, Any], filters: Dict[str, str]) -> bool:
    for column, expr in filters.items():
        value = row.get(column)
        if expr == "is.null":
            if value is not None:
                return False
        elif expr == "not.is.null":
            if value is None:
                return False
        elif expr.startswith("eq."):
            if str(value) != expr[3:]:
                return False
        elif expr.startswith("in.("):
            if str(value) not in expr[4:-1].split(","):
                return False
    return True
