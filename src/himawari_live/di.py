from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.orm import Session

from .db.database import SessionLocal, init_database
from .services.settings import SettingsStore


class Container:
    def __init__(self) -> None:
        self._ready = False
        self._settings_store: Optional[SettingsStore] = None

    def ensure_ready(self) -> None:
        if self._ready:
            return
        init_database()
        self._ready = True

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:  # noqa: BLE001
            session.rollback()
            raise
        finally:
            session.close()

    def settings_store(self) -> SettingsStore:
        if self._settings_store is None:
            self.ensure_ready()
            self._settings_store = SettingsStore(self.session)
        return self._settings_store


_container: Container | None = None


def get_container() -> Container:
    global _container
    if _container is None:
        _container = Container()
    return _container
