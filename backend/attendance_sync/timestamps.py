"""
Horodatage UTC.

SQLite ne conserve pas le fuseau : les colonnes DateTime relues sont naïves.
Toutes les comparaisons passent donc par to_utc().
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Rend un datetime « aware » en UTC (un datetime naïf est supposé déjà en UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_updated_at(previous: Optional[datetime]) -> datetime:
    """Nouvel updated_at d'une ligne : jamais antérieur au précédent, même si l'horloge recule."""
    now = utc_now()
    previous = to_utc(previous)
    if previous is not None and previous > now:
        return previous
    return now
