"""
Configuration de la base locale SQLite (stockage hors-ligne).
Un seul fichier contient les cinq tables d'entités et la file de synchronisation.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from attendance_sync.config import settings

Base = declarative_base()


def create_local_engine(url: str, **kwargs) -> Engine:
    """
    Crée un moteur SQLite avec les clés étrangères activées.
    SQLite ne vérifie les FK que si PRAGMA foreign_keys=ON est posé sur chaque connexion.
    """
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    local_engine = create_engine(url, connect_args=connect_args, **kwargs)

    @event.listens_for(local_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return local_engine


engine = create_local_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    """Crée les tables manquantes (appelé au démarrage)."""
    import attendance_sync.models  # noqa: F401 (enregistre les tables dans Base.metadata)

    Base.metadata.create_all(bind=bind)


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Portée transactionnelle : commit si le bloc réussit, rollback sinon.
    Une écriture partielle n'est donc jamais visible.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
