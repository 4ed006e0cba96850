"""
Moteur de synchronisation hors-ligne ↔ serveur.

Un cycle = push (la file, de l'entrée la plus ancienne à la plus récente)
puis pull (chaque type d'entité, lecture distante puis repli local atomique).

Règles :
- Un seul cycle à la fois dans le processus : un deuxième appel reçoit « busy »
- Hors-ligne ou sans identité : aucun cycle, aucune diffusion
- Push : une erreur sur une entrée la laisse dans la file (réessai au cycle suivant)
  sans interrompre les autres. Seule une perte de réseau interrompt le cycle
- Pull : last-write-wins sur updated_at, jamais sur une ligne locale en attente
  (operation_type non NULL)
- Seuls les états syncing / completed / error sont diffusés aux abonnés
"""

import logging
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from attendance_sync.database import transaction
from attendance_sync.exceptions import ConnectivityError, DuplicateError, NotFoundError
from attendance_sync.models.enums import EntityKind, Operation
from attendance_sync.models.sync_queue import SyncQueueEntry
from attendance_sync.schemas.sync import PendingCounts, SyncOutcome, SyncResult, SyncStatus
from attendance_sync.services import local_store, sync_queue_service
from attendance_sync.services.identity_gate import AccessScope, IdentityGate
from attendance_sync.services.remote_client import RemoteServiceClient
from attendance_sync.services.sync_adapters import DEFAULT_ADAPTERS, EntityAdapter
from attendance_sync.timestamps import to_utc, utc_now

logger = logging.getLogger(__name__)

SyncListener = Callable[[SyncStatus], None]


class SyncEngine:
    """Créé une fois au démarrage (lifespan) et partagé par les routers et le planificateur."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        remote: RemoteServiceClient,
        identity_gate: IdentityGate,
        adapters: Optional[Iterable[EntityAdapter]] = None,
    ):
        self._session_factory = session_factory
        self._remote = remote
        self._gate = identity_gate
        self._adapters: Dict[EntityKind, EntityAdapter] = {
            adapter.kind: adapter for adapter in (adapters if adapters is not None else DEFAULT_ADAPTERS)
        }
        self._listeners: List[SyncListener] = []
        self._in_progress = False

    # ============================================================
    # Abonnés
    # ============================================================

    def add_listener(self, listener: SyncListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SyncListener) -> None:
        self._listeners = [existing for existing in self._listeners if existing != listener]

    def is_sync_in_progress(self) -> bool:
        return self._in_progress

    def _broadcast(self, status: SyncStatus) -> None:
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Abonné de synchronisation en erreur (%s)", status.value)

    # ============================================================
    # Points d'entrée
    # ============================================================

    async def sync_all(self) -> SyncResult:
        """Push de toute la file puis pull de tous les types d'entités."""
        return await self._run(list(self._adapters))

    async def sync_entity(self, kind: EntityKind) -> SyncResult:
        """Même cycle, limité à un type d'entité. Lève ValueError pour un type non synchronisable."""
        kind = EntityKind(kind)
        if kind not in self._adapters:
            raise ValueError(f"Type d'entité non synchronisable : {kind.value}")
        return await self._run([kind])

    async def auto_sync(self) -> Optional[SyncResult]:
        """
        Déclencheur automatique (planificateur, retour du réseau).
        Ne lance un cycle que si l'appareil est en ligne avec une identité ; ne lève jamais.
        """
        if self._in_progress:
            logger.debug("Synchronisation automatique ignorée : cycle déjà en cours")
            return None
        try:
            if not self._gate.is_authenticated() or not await self._gate.is_online():
                logger.debug("Synchronisation automatique ignorée : hors-ligne ou non connecté")
                return None
            return await self.sync_all()
        except Exception:
            logger.exception("Échec de la synchronisation automatique")
            return None

    def pending_counts(self) -> PendingCounts:
        """Arriéré de la file par type d'entité."""
        db = self._session_factory()
        try:
            by_kind = sync_queue_service.count_pending_by_kind(db)
        finally:
            db.close()
        return PendingCounts(
            total=sum(by_kind.values()),
            by_kind=by_kind,
            sync_in_progress=self._in_progress,
        )

    async def purge_stale_entries(self, retention_days: int) -> int:
        """Abandonne les entrées plus anciennes que la rétention (aucun effet pendant un cycle)."""
        if self._in_progress:
            return 0
        db = self._session_factory()
        try:
            with transaction(db):
                return sync_queue_service.purge_older_than(db, timedelta(days=retention_days))
        finally:
            db.close()

    # ============================================================
    # Cycle
    # ============================================================

    async def _run(self, kinds: List[EntityKind]) -> SyncResult:
        # Le drapeau est posé avant le premier await : aucun autre cycle ne peut s'intercaler
        if self._in_progress:
            logger.info("Synchronisation refusée : un cycle est déjà en cours")
            return SyncResult(
                success=False,
                outcome=SyncOutcome.BUSY,
                message="Une synchronisation est déjà en cours.",
            )
        self._in_progress = True
        try:
            if not await self._gate.is_online():
                return SyncResult(
                    success=False,
                    outcome=SyncOutcome.OFFLINE,
                    message="Aucune connexion réseau : synchronisation impossible.",
                )
            identity = self._gate.current_identity()
            if identity is None:
                return SyncResult(
                    success=False,
                    outcome=SyncOutcome.UNAUTHENTICATED,
                    message="Utilisateur non connecté : synchronisation impossible.",
                )

            self._broadcast(SyncStatus.SYNCING)
            result = await self._cycle(kinds, identity.access_scope)
            self._broadcast(SyncStatus.COMPLETED if result.success else SyncStatus.ERROR)
            return result
        finally:
            self._in_progress = False

    async def _cycle(self, kinds: List[EntityKind], scope: AccessScope) -> SyncResult:
        result = SyncResult(success=True, outcome=SyncOutcome.COMPLETED, message="")
        db = self._session_factory()
        try:
            await self._push(db, kinds, result)
            await self._pull(db, kinds, scope, result)
        except ConnectivityError as exc:
            db.rollback()
            logger.warning("Cycle interrompu, serveur injoignable : %s", exc)
            result.errors.append(str(exc))
            result.outcome = SyncOutcome.ERROR
        except Exception as exc:
            db.rollback()
            logger.error("Erreur inattendue pendant la synchronisation : %s", exc, exc_info=True)
            result.errors.append(str(exc))
            result.outcome = SyncOutcome.ERROR
        finally:
            db.close()

        result.success = result.outcome == SyncOutcome.COMPLETED
        result.message = _summary(result)
        logger.info(
            "Synchronisation %s : %d envoyé(s), %d en échec, %d réconcilié(s), "
            "%d ajouté(s), %d mis à jour, %d purgé(s)",
            result.outcome.value, result.pushed, result.failed, result.reconciled,
            result.inserted, result.updated, result.purged,
        )
        return result

    # ============================================================
    # Push
    # ============================================================

    async def _push(self, db: Session, kinds: List[EntityKind], result: SyncResult) -> None:
        wanted = {kind.value for kind in kinds}
        entries = [e for e in sync_queue_service.list_pending(db) if e.entity_kind in wanted]
        if entries:
            logger.info("Push : %d entrée(s) en attente", len(entries))

        for entry in entries:
            # L'entrée a pu être retirée par la réconciliation d'une entrée précédente
            if not _still_queued(db, entry.id):
                continue
            adapter = self._adapters[EntityKind(entry.entity_kind)]
            try:
                await self._push_entry(db, adapter, entry, result)
                db.commit()
            except ConnectivityError:
                db.rollback()
                raise
            except Exception as exc:
                db.rollback()
                result.failed += 1
                result.errors.append(f"{entry.entity_kind} {entry.entity_uuid} : {exc}")
                logger.error(
                    "Push %s %s %s en échec, entrée conservée : %s",
                    entry.operation, entry.entity_kind, entry.entity_uuid, exc,
                )

    async def _push_entry(
        self, db: Session, adapter: EntityAdapter, entry: SyncQueueEntry, result: SyncResult
    ) -> None:
        operation = Operation(entry.operation)
        row = local_store.get_by_uuid(db, adapter.kind, entry.entity_uuid, include_deleted=True)

        if operation == Operation.DELETE:
            await self._push_delete(db, adapter, entry, row)
            result.pushed += 1
            return

        if row is None:
            # Ligne supprimée localement après la mise en file : le DELETE suivant suffit
            sync_queue_service.remove(db, entry.id)
            result.reconciled += 1
            logger.debug("Entrée #%s sans ligne locale, retirée", entry.id)
            return

        if operation == Operation.INSERT:
            confirmed = await self._push_insert(db, adapter, entry, row)
        else:
            confirmed = await self._push_update(db, adapter, entry, row)

        if confirmed:
            result.pushed += 1
        else:
            result.reconciled += 1

    async def _push_insert(self, db: Session, adapter: EntityAdapter, entry: SyncQueueEntry, row) -> bool:
        """Retourne False si la ligne locale a été abandonnée au profit de la version distante."""
        fields = await adapter.to_remote(db, row, self._remote)
        try:
            remote_id = await self._remote.insert(adapter.kind, fields)
        except DuplicateError:
            existing = await self._remote.find_by_uuid(adapter.kind, row.uuid)
            if existing is None:
                self._reconcile_away(db, adapter, row)
                return False
            # Même UUID côté serveur : l'accusé de réception du premier envoi a été perdu
            logger.info("%s %s déjà présent sur le serveur, id %s repris", adapter.kind.value, row.uuid, existing["id"])
            row.remote_id = existing["id"]
            await adapter.push_children(db, row, self._remote, replace=True)
            self._confirm(db, entry, row)
            return True

        row.remote_id = remote_id
        await adapter.push_children(db, row, self._remote, replace=False)
        self._confirm(db, entry, row)
        return True

    async def _push_update(self, db: Session, adapter: EntityAdapter, entry: SyncQueueEntry, row) -> bool:
        fields = await adapter.to_remote(db, row, self._remote)
        if adapter.soft_delete:
            # Une modification ne touche jamais deleted_at : seul un DELETE supprime,
            # et une ligne supprimée sur le serveur n'est pas modifiable
            fields.pop("deleted_at", None)
        try:
            await self._remote.update(adapter.kind, row.uuid, fields, only_active=adapter.soft_delete)
        except NotFoundError:
            logger.info("%s %s absent du serveur : UPDATE promu en INSERT", adapter.kind.value, row.uuid)
            return await self._push_insert(db, adapter, entry, row)
        await adapter.push_children(db, row, self._remote, replace=True)
        self._confirm(db, entry, row)
        return True

    async def _push_delete(self, db: Session, adapter: EntityAdapter, entry: SyncQueueEntry, row) -> None:
        deleted_at = None
        if row is not None and adapter.soft_delete:
            deleted_at = row.deleted_at
        if deleted_at is None:
            payload = sync_queue_service.decode_payload(entry)
            deleted_at = getattr(payload, "deleted_at", None) or utc_now()
        try:
            await adapter.push_delete(db, entry.entity_uuid, self._remote, deleted_at)
        except NotFoundError:
            logger.info("%s %s déjà absent du serveur", adapter.kind.value, entry.entity_uuid)
        self._confirm(db, entry, row)

    def _confirm(self, db: Session, entry: SyncQueueEntry, row) -> None:
        """Retire l'entrée ; la ligne n'est marquée synchronisée que si plus rien ne l'attend."""
        sync_queue_service.remove(db, entry.id)
        if row is not None and not sync_queue_service.has_other_pending(db, row.uuid, entry.id):
            local_store.mark_synced(row)
        db.flush()

    def _reconcile_away(self, db: Session, adapter: EntityAdapter, row) -> None:
        """Conflit d'unicité sans équivalent par UUID : la version du serveur fait foi."""
        if adapter.is_referenced(db, row.uuid):
            raise DuplicateError(
                f"{adapter.kind.value} {row.uuid} en conflit sur le serveur mais encore référencé localement"
            )
        logger.warning(
            "%s %s en conflit d'unicité sur le serveur : ligne locale abandonnée",
            adapter.kind.value, row.uuid,
        )
        sync_queue_service.remove_for_entity(db, row.uuid)
        db.delete(row)
        db.flush()

    # ============================================================
    # Pull
    # ============================================================

    async def _pull(self, db: Session, kinds: List[EntityKind], scope: AccessScope, result: SyncResult) -> None:
        for kind in kinds:
            adapter = self._adapters[kind]
            filters = adapter.scope_filters(scope)
            if filters is None:
                logger.info("Pull %s ignoré : aucun centre autorisé", kind.value)
                continue
            try:
                await self._pull_kind(db, adapter, filters, result)
            except Exception as exc:
                db.rollback()
                result.outcome = SyncOutcome.ERROR
                result.errors.append(f"pull {kind.value} : {exc}")
                logger.error("Pull %s en échec : %s", kind.value, exc)

    async def _pull_kind(
        self, db: Session, adapter: EntityAdapter, filters: Dict[str, str], result: SyncResult
    ) -> None:
        # 1. Lecture distante (aucune transaction locale ouverte pendant les appels)
        active_filters = dict(filters)
        if adapter.soft_delete:
            active_filters["deleted_at"] = "is.null"
        raw_rows = await self._remote.select_all(adapter.kind, select=adapter.remote_select, filters=active_filters)
        deleted_uuids = set()
        if adapter.soft_delete:
            deleted_uuids = await self._remote.select_deleted_uuids(adapter.kind, filters)
        remote_rows = [adapter.parse(raw) for raw in raw_rows]

        # 2. Repli local atomique pour ce type
        with transaction(db):
            inserted, updated, purged = self._fold(db, adapter, remote_rows, deleted_uuids)

        result.inserted += inserted
        result.updated += updated
        result.purged += purged
        logger.info(
            "Pull %s : %d distant(s), %d ajouté(s), %d mis à jour, %d purgé(s)",
            adapter.kind.value, len(remote_rows), inserted, updated, purged,
        )

    def _fold(self, db: Session, adapter: EntityAdapter, remote_rows, deleted_uuids) -> Tuple[int, int, int]:
        local_rows = {
            row.uuid: row
            for row in local_store.query(db, adapter.kind, include_deleted=True)
        }
        inserted = updated = replaced = 0
        seen = set()

        for remote_row in remote_rows:
            seen.add(remote_row.uuid)
            fields = adapter.from_remote(db, remote_row)
            if fields is None:
                continue
            local = local_rows.get(remote_row.uuid)

            if local is None:
                duplicate = adapter.natural_duplicate(db, remote_row.uuid, fields)
                if duplicate is not None:
                    if duplicate.operation_type is not None or (
                        to_utc(duplicate.updated_at) >= to_utc(remote_row.last_change)
                    ):
                        logger.debug(
                            "%s %s ignoré : la ligne locale %s occupe déjà la même clé",
                            adapter.kind.value, remote_row.uuid, duplicate.uuid,
                        )
                        continue
                    logger.info(
                        "%s %s remplacé par la version distante %s",
                        adapter.kind.value, duplicate.uuid, remote_row.uuid,
                    )
                    local_rows.pop(duplicate.uuid, None)
                    db.delete(duplicate)
                    db.flush()
                    replaced += 1
                local = adapter.model(
                    uuid=remote_row.uuid,
                    remote_id=remote_row.id,
                    is_synced=True,
                    operation_type=None,
                    created_at=to_utc(remote_row.created_at),
                    updated_at=to_utc(remote_row.last_change),
                    **fields,
                )
                db.add(local)
                db.flush()
                adapter.apply_children(db, local, remote_row)
                inserted += 1
                continue

            # Une ligne en attente de push n'est jamais écrasée
            if local.operation_type is not None:
                continue
            if to_utc(remote_row.last_change) > to_utc(local.updated_at):
                for field, value in fields.items():
                    setattr(local, field, value)
                if adapter.soft_delete:
                    local.deleted_at = None
                local.updated_at = to_utc(remote_row.last_change)
                local.remote_id = local.remote_id or remote_row.id
                local_store.mark_synced(local)
                db.flush()
                adapter.apply_children(db, local, remote_row)
                updated += 1
            elif local.remote_id is None:
                local.remote_id = remote_row.id

        if adapter.soft_delete:
            purged = self._purge_soft_deleted(db, adapter, local_rows, deleted_uuids)
        else:
            purged = self._purge_missing(db, local_rows, seen)
        db.flush()
        return inserted, updated, purged + replaced

    def _purge_soft_deleted(self, db: Session, adapter: EntityAdapter, local_rows, deleted_uuids) -> int:
        """Lignes supprimées logiquement sur le serveur et sans changement local en attente."""
        purged = 0
        for uuid in deleted_uuids:
            local = local_rows.get(uuid)
            if local is None or local.operation_type is not None:
                continue
            if adapter.is_referenced(db, uuid):
                # Conservée tant que des lignes locales y font référence, mais masquée
                if local.deleted_at is None:
                    local.deleted_at = utc_now()
                logger.debug("%s %s supprimé sur le serveur mais encore référencé", adapter.kind.value, uuid)
                continue
            db.delete(local)
            purged += 1
        return purged

    def _purge_missing(self, db: Session, local_rows, seen) -> int:
        """Feuilles déjà synchronisées, sans changement en attente et absentes du serveur."""
        purged = 0
        for uuid, local in local_rows.items():
            if uuid in seen or local.remote_id is None or local.operation_type is not None:
                continue
            db.delete(local)
            purged += 1
        return purged


def _still_queued(db: Session, entry_id: int) -> bool:
    return db.execute(select(SyncQueueEntry.id).where(SyncQueueEntry.id == entry_id)).scalar() is not None


def _summary(result: SyncResult) -> str:
    if result.outcome == SyncOutcome.COMPLETED:
        message = (
            f"Synchronisation terminée : {result.pushed} envoyé(s), "
            f"{result.inserted + result.updated} reçu(s), {result.purged} purgé(s)."
        )
        if result.failed:
            message += f" {result.failed} changement(s) en attente de nouvel essai."
        return message
    return "Synchronisation en erreur : " + "; ".join(result.errors)
