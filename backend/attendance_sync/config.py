"""
Configuration centrale du poste hors-ligne via variables d'environnement.
Charger depuis un fichier .env en développement.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Base locale SQLite (copie de référence sur l'appareil)
    DATABASE_URL: str = "sqlite:///./attendance_local.db"

    # Backend distant (API REST de type PostgREST / Supabase)
    REMOTE_API_URL: str = "http://localhost:54321"
    REMOTE_API_KEY: str = ""
    REMOTE_TIMEOUT_SECONDS: float = 15.0

    # Synchronisation automatique
    AUTO_SYNC_ENABLED: bool = True
    AUTO_SYNC_INTERVAL_SECONDS: int = 300

    # Rétention des entrées de file (purge quotidienne)
    SYNC_QUEUE_RETENTION_DAYS: int = 30

    # Journalisation
    LOG_LEVEL: str = "INFO"

    # Environnement
    ENV: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
