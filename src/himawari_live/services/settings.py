from __future__ import annotations

import logging
import threading
from contextlib import AbstractContextManager
from typing import Any, Callable, List, Set

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..config import ZOOM_MAX, ZOOM_MIN
from ..db.repositories import SettingsRepository
from ..models import ViewerSettings

log = logging.getLogger(__name__)

SettingsListener = Callable[[ViewerSettings, Set[str]], None]


class SettingsStore:
    """
    Persisted viewer preferences.

    ``current()`` is an immutable snapshot; ``update`` validates, stores and
    notifies subscribers with the new snapshot and the names that changed.
    """

    def __init__(self, session_factory: Callable[[], AbstractContextManager[Session]]) -> None:
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._listeners: List[SettingsListener] = []
        self._current = self._load()

    def _load(self) -> ViewerSettings:
        with self._session_factory() as session:
            raw = SettingsRepository(session).load()
        try:
            return ViewerSettings.model_validate(raw)
        except ValidationError as exc:
            log.warning("Stored settings invalid, using defaults: %s", exc)
            return ViewerSettings()

    def current(self) -> ViewerSettings:
        return self._current

    def update(self, **changes: Any) -> ViewerSettings:
        zoom = changes.get("zoom")
        if zoom is not None and not (ZOOM_MIN <= float(zoom) <= ZOOM_MAX):
            # out-of-range zoom keeps the previous value
            log.warning("Ignoring zoom %s outside [%s, %s]", zoom, ZOOM_MIN, ZOOM_MAX)
            changes.pop("zoom")

        with self._lock:
            old = self._current
            merged = old.model_dump()
            merged.update({k: v for k, v in changes.items() if k in merged})
            new = ViewerSettings.model_validate(merged)
            changed = {name for name in merged if getattr(old, name) != getattr(new, name)}
            if not changed:
                return old
            with self._session_factory() as session:
                SettingsRepository(session).save_many({name: getattr(new, name) for name in changed})
            self._current = new
            listeners = list(self._listeners)

        log.info("Settings changed: %s", ", ".join(sorted(changed)))
        for listener in listeners:
            try:
                listener(new, changed)
            except Exception:  # noqa: BLE001
                log.exception("Settings listener failed")
        return new

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe
