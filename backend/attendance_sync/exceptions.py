"""
Taxonomie des erreurs du noyau de synchronisation.

- ValidationError   : référence obligatoire manquante (centre, niveau), rejetée avant toute écriture
- DuplicateError    : doublon détecté localement ou conflit d'unicité signalé par le serveur
- NotFoundError     : cible absente (localement ou côté serveur)
- ConnectivityError : pas de réseau / délai dépassé
- ConcurrencyError  : une synchronisation est déjà en cours
- RemoteServiceError: toute autre réponse en erreur du serveur
"""


from typing import Optional


class SyncError(Exception):
    """Base commune à toutes les erreurs du noyau."""


class ValidationError(SyncError):
    pass


class DuplicateError(SyncError):
    pass


class NotFoundError(SyncError):
    pass


class ConnectivityError(SyncError):
    pass


class ConcurrencyError(SyncError):
    pass


class RemoteServiceError(SyncError):
    """Réponse HTTP en erreur qui n'est ni un conflit ni une absence."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
