"""
Client du service distant (API REST de type PostgREST / Supabase).

Façade fine sur les opérations ligne à ligne du serveur : lecture, insertion,
mise à jour, suppression logique ou physique. Les erreurs HTTP sont traduites
dans la taxonomie du noyau :
- 409 ou code Postgres 23505 → DuplicateError
- PATCH/DELETE sans ligne touchée → NotFoundError
- erreur de transport ou délai dépassé → ConnectivityError
- toute autre réponse en erreur → RemoteServiceError
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

import httpx

from attendance_sync.config import settings
from attendance_sync.exceptions import (
    ConnectivityError,
    DuplicateError,
    NotFoundError,
    RemoteServiceError,
)
from attendance_sync.models.enums import EntityKind
from attendance_sync.timestamps import to_utc

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def in_filter(values) -> str:
    """Filtre PostgREST « in.(a,b,c) »."""
    return "in.(" + ",".join(str(v) for v in values) + ")"


class RemoteServiceClient:
    """Un client par processus, créé au démarrage et fermé à l'arrêt (aclose)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.REMOTE_API_KEY
        self._access_token: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.REMOTE_API_URL).rstrip("/"),
            timeout=timeout if timeout is not None else settings.REMOTE_TIMEOUT_SECONDS,
            transport=transport,
        )

    def set_access_token(self, token: Optional[str]) -> None:
        """Jeton de la session courante (None = clé anonyme seule)."""
        self._access_token = token

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------
    # Écritures
    # ------------------------------------------------------------

    async def insert(self, kind: EntityKind, fields: Dict[str, Any]) -> int:
        """Insère une ligne et retourne l'id attribué par le serveur."""
        rows = await self._request(
            "POST", _table(kind), json=[_jsonable(fields)],
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise RemoteServiceError(f"Insertion {_table(kind)} sans ligne retournée")
        return rows[0]["id"]

    async def insert_many(self, kind: EntityKind, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        await self._request(
            "POST", _table(kind), json=[_jsonable(r) for r in rows],
            headers={"Prefer": "return=minimal"},
        )

    async def update(self, kind: EntityKind, uuid: str, fields: Dict[str, Any], only_active: bool = False) -> None:
        """Met à jour la ligne portant cet UUID. Lève NotFoundError si aucune ligne ne correspond."""
        params = {"uuid": f"eq.{uuid}"}
        if only_active:
            params["deleted_at"] = "is.null"
        rows = await self._request(
            "PATCH", _table(kind), params=params, json=_jsonable(fields),
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise NotFoundError(f"{_table(kind)} {uuid} introuvable sur le serveur.")

    async def soft_delete(self, kind: EntityKind, uuid: str, deleted_at: datetime) -> None:
        """Suppression logique horodatée (deleted_at = updated_at = horodatage local)."""
        await self.update(kind, uuid, {"deleted_at": deleted_at, "updated_at": deleted_at})

    async def hard_delete(self, kind: EntityKind, uuid: str) -> None:
        rows = await self._request(
            "DELETE", _table(kind), params={"uuid": f"eq.{uuid}"},
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise NotFoundError(f"{_table(kind)} {uuid} introuvable sur le serveur.")

    async def delete_where(self, kind: EntityKind, column: str, value: Any) -> None:
        """Suppression en bloc (ex. tous les statuts d'une feuille). Aucune ligne n'est pas une erreur."""
        await self._request("DELETE", _table(kind), params={column: f"eq.{value}"})

    # ------------------------------------------------------------
    # Lectures
    # ------------------------------------------------------------

    async def select_all(
        self,
        kind: EntityKind,
        select: str = "*",
        filters: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        params = {"select": select}
        params.update(filters or {})
        return await self._request("GET", _table(kind), params=params) or []

    async def select_deleted_uuids(self, kind: EntityKind, filters: Optional[Dict[str, str]] = None) -> Set[str]:
        """UUIDs des lignes supprimées logiquement sur le serveur."""
        params = {"deleted_at": "not.is.null"}
        params.update(filters or {})
        rows = await self.select_all(kind, select="uuid", filters=params)
        return {row["uuid"] for row in rows}

    async def find_by_uuid(self, kind: EntityKind, uuid: str) -> Optional[Dict[str, Any]]:
        rows = await self.select_all(kind, filters={"uuid": f"eq.{uuid}"})
        return rows[0] if rows else None

    async def resolve_remote_id(self, kind: EntityKind, uuid: str) -> int:
        """Id numérique serveur d'une ligne connue par son UUID (clés étrangères des élèves)."""
        rows = await self.select_all(kind, select="id", filters={"uuid": f"eq.{uuid}"})
        if not rows:
            raise NotFoundError(f"{_table(kind)} {uuid} introuvable sur le serveur.")
        return rows[0]["id"]

    async def ping(self) -> bool:
        """Vrai si le serveur répond (quel que soit le code HTTP)."""
        try:
            await self._client.get("/rest/v1/", headers=self._headers(), timeout=5.0)
        except httpx.TransportError:
            return False
        return True

    # ------------------------------------------------------------
    # Authentification
    # ------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Retourne la session (access_token, user) du service d'authentification."""
        return await self._call(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    async def sign_out(self) -> None:
        await self._call("POST", "/auth/v1/logout")

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._request(
            "GET", "profiles", params={"select": "role,full_name", "id": f"eq.{user_id}"},
        )
        return rows[0] if rows else None

    async def fetch_user_office_scope(self, user_id: str) -> List[Dict[str, Any]]:
        """Centres autorisés pour un utilisateur : [{office_id, office: {uuid}}]."""
        return await self._request(
            "GET", "user_offices",
            params={"select": "office_id,office:offices(uuid)", "user_id": f"eq.{user_id}"},
        ) or []

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"apikey": self._api_key}
        token = self._access_token or self._api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(self, method: str, table: str, **kwargs):
        return await self._call(method, f"/rest/v1/{table}", **kwargs)

    async def _call(self, method: str, path: str, headers: Optional[Dict[str, str]] = None, **kwargs):
        merged = self._headers()
        merged.update(headers or {})
        try:
            response = await self._client.request(method, path, headers=merged, **kwargs)
        except httpx.TransportError as exc:
            raise ConnectivityError(f"Serveur injoignable : {exc}") from exc

        if response.is_success:
            if not response.content:
                return None
            return response.json()

        detail = _error_detail(response)
        if response.status_code == 409 or detail.get("code") == UNIQUE_VIOLATION:
            raise DuplicateError(detail.get("message") or "Conflit d'unicité sur le serveur.")
        if response.status_code == 404:
            raise NotFoundError(detail.get("message") or f"{path} introuvable.")
        logger.warning("Réponse %s pour %s %s : %s", response.status_code, method, path, detail)
        raise RemoteServiceError(
            detail.get("message") or f"Erreur serveur {response.status_code}",
            status_code=response.status_code,
        )


def _table(kind: EntityKind) -> str:
    return EntityKind(kind).value


def _jsonable(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (to_utc(v).isoformat() if isinstance(v, datetime) else v) for k, v in fields.items()}


def _error_detail(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    return body if isinstance(body, dict) else {"message": str(body)}
