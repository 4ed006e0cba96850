"""
Passerelle d'identité : état réseau et utilisateur authentifié.

Le moteur de synchronisation ne démarre que si l'appareil est en ligne et
qu'une identité est connue. Un utilisateur non administrateur ne voit que
les centres qui lui sont attribués (user_offices) : c'est sa portée d'accès.
"""

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from attendance_sync.exceptions import ConnectivityError, SyncError
from attendance_sync.services.remote_client import RemoteServiceClient

logger = logging.getLogger(__name__)


class AccessScope(BaseModel):
    """all_offices=True pour un administrateur ; sinon la liste des centres autorisés."""

    all_offices: bool = False
    office_ids: List[int] = []
    office_uuids: List[str] = []


class Identity(BaseModel):
    id: str
    email: str = ""
    role: str = "user"
    full_name: Optional[str] = None
    access_scope: AccessScope = Field(default_factory=AccessScope)


AuthListener = Callable[[Optional[Identity]], None]


class IdentityGate:
    """Créée une fois au démarrage et passée par référence au moteur et aux routers."""

    def __init__(self, remote: RemoteServiceClient):
        self._remote = remote
        self._identity: Optional[Identity] = None
        self._listeners: List[AuthListener] = []

    # --- Connectivité ---

    async def is_online(self) -> bool:
        return await self._remote.ping()

    # --- Identité ---

    def is_authenticated(self) -> bool:
        return self._identity is not None

    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def set_identity(self, identity: Optional[Identity], access_token: Optional[str] = None) -> None:
        """Injecte l'identité courante (session restaurée par l'hôte, tests)."""
        self._identity = identity
        self._remote.set_access_token(access_token)
        self._notify()

    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Connexion en ligne : session, profil (rôle) puis portée d'accès.
        Lève ConnectivityError hors-ligne, SyncError si la connexion est refusée.
        """
        if not await self.is_online():
            raise ConnectivityError("Aucune connexion réseau : connexion impossible.")

        session = await self._remote.sign_in(email, password)
        user = (session or {}).get("user") or {}
        if not user.get("id"):
            raise SyncError("Échec de la connexion.")
        self._remote.set_access_token(session.get("access_token"))

        profile = await self._remote.fetch_profile(user["id"]) or {}
        role = profile.get("role") or "user"
        identity = Identity(
            id=user["id"],
            email=user.get("email") or email,
            role=role,
            full_name=profile.get("full_name"),
            access_scope=await self._load_scope(user["id"], role),
        )
        self._identity = identity
        logger.info("Utilisateur connecté : %s (%s)", identity.email, identity.role)
        self._notify()
        return identity

    async def sign_out(self) -> None:
        """Déconnexion locale, même si le serveur est injoignable."""
        if self._identity is not None:
            try:
                await self._remote.sign_out()
            except SyncError as exc:
                logger.warning("Déconnexion distante impossible, poursuite en local : %s", exc)
        self._identity = None
        self._remote.set_access_token(None)
        self._notify()

    # --- Abonnés ---

    def add_auth_listener(self, listener: AuthListener) -> None:
        """Ajoute un abonné et lui envoie immédiatement l'état courant."""
        self._listeners.append(listener)
        listener(self._identity)

    def remove_auth_listener(self, listener: AuthListener) -> None:
        self._listeners = [existing for existing in self._listeners if existing != listener]

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._identity)
            except Exception:
                logger.exception("Abonné d'authentification en erreur")

    async def _load_scope(self, user_id: str, role: str) -> AccessScope:
        if role == "admin":
            return AccessScope(all_offices=True)
        rows = await self._remote.fetch_user_office_scope(user_id)
        return AccessScope(
            office_ids=[row["office_id"] for row in rows],
            office_uuids=[row["office"]["uuid"] for row in rows if row.get("office")],
        )
