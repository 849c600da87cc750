# ============================
# 📁 app/config.py
# (zentrale Einstellungen, aus Umgebung bzw. .env)

import os
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class Settings:
    """Laufzeit-Konfiguration. Werte werden beim Erzeugen aus os.environ gelesen."""

    def __init__(self, **overrides):
        # Storage: "memory" (Referenz) oder "sql" (SQLAlchemy)
        self.STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "memory").strip().lower()
        self.DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///app/db.sqlite3")

        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

        # Geplante Veröffentlichungen prüfen (0 = Job aus)
        self.SCHEDULER_INTERVAL_SECONDS = _env_int("SCHEDULER_INTERVAL_SECONDS", 60)

        # Pagination / Suche
        self.DEFAULT_PAGE_SIZE = _env_int("DEFAULT_PAGE_SIZE", 10)
        self.MAX_PAGE_SIZE = _env_int("MAX_PAGE_SIZE", 100)
        self.SEARCH_DEFAULT_LIMIT = _env_int("SEARCH_DEFAULT_LIMIT", 10)

        origins = os.environ.get("CORS_ORIGINS", "*")
        self.CORS_ORIGINS = [o.strip() for o in origins.split(",") if o.strip()]

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

        # Railway & Co. liefern postgres://, SQLAlchemy will postgresql://
        if self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
