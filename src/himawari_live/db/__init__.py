"""Local SQLite storage for viewer preferences (SQLAlchemy + Alembic)."""

from .database import SessionLocal, init_database
from .repositories import SettingsRepository

__all__ = [
    "SessionLocal",
    "init_database",
    "SettingsRepository",
]
