"""
Planificateur APScheduler de la synchronisation automatique.

Deux tâches sur la boucle asyncio de l'API :
- auto_sync toutes les AUTO_SYNC_INTERVAL_SECONDS (sans effet hors-ligne ou sans identité)
- purge quotidienne des entrées de file plus anciennes que SYNC_QUEUE_RETENTION_DAYS
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from attendance_sync.config import settings
from attendance_sync.services.sync_service import SyncEngine

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None


def start_scheduler(engine: SyncEngine) -> AsyncIOScheduler:
    """Démarre le planificateur (appelé dans le lifespan, donc avec une boucle active)."""
    global scheduler
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        engine.auto_sync,
        trigger="interval",
        seconds=settings.AUTO_SYNC_INTERVAL_SECONDS,
        id="auto_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        engine.purge_stale_entries,
        trigger="interval",
        hours=24,
        id="sync_queue_retention",
        replace_existing=True,
        kwargs={"retention_days": settings.SYNC_QUEUE_RETENTION_DAYS},
    )
    scheduler.start()
    logger.info(
        "Scheduler démarré — synchronisation automatique toutes les %s s.",
        settings.AUTO_SYNC_INTERVAL_SECONDS,
    )
    return scheduler


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
    scheduler = None
