import asyncio
import logging
import threading
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal

from ..config import DEFAULT_CONCURRENCY
from ..models import CycleOutcome, CycleState, DisplayFrame, ViewerSettings
from ..services.publisher import DisplayPublisher
from ..services.scheduler import RefreshScheduler

logger = logging.getLogger(__name__)


class RefreshWorker(QObject):
    """
    Hosts the refresh scheduler on a private asyncio loop.
    Meant to be moved to a QThread; ``run`` blocks until ``stop``.
    """

    displayable = Signal(object)
    log = Signal(str)
    state_changed = Signal(str)
    finished = Signal()

    def __init__(
        self,
        settings: ViewerSettings,
        display_width: int,
        is_unmetered: Callable[[], bool],
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.display_width = display_width
        self.concurrency = max(1, concurrency)
        self.publisher = DisplayPublisher()
        self._is_unmetered = is_unmetered
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._scheduler: Optional[RefreshScheduler] = None
        self._lock = threading.Lock()
        self.publisher.subscribe(self._on_frame)

    def run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        scheduler = RefreshScheduler(
            self.publisher,
            self.settings,
            self.display_width,
            concurrency=self.concurrency,
            is_unmetered=self._is_unmetered,
            on_outcome=self._on_outcome,
        )
        with self._lock:
            self._loop = loop
            self._scheduler = scheduler
        try:
            loop.call_soon(scheduler.start)
            loop.run_forever()
        except Exception as exc:  # noqa: BLE001
            self.log.emit(f"Цикл обновления упал: {exc}")
        finally:
            loop.run_until_complete(scheduler.stop())
            loop.run_until_complete(loop.shutdown_asyncgens())
            with self._lock:
                self._loop = None
                self._scheduler = None
            loop.close()
            self.finished.emit()

    def refresh_now(self) -> None:
        self._call(lambda scheduler: scheduler.trigger("manual"))

    def apply_settings(self, settings: ViewerSettings) -> None:
        self.settings = settings
        self._call(lambda scheduler: scheduler.apply_settings(settings))

    def set_visible(self, visible: bool) -> None:
        self._call(lambda scheduler: scheduler.set_visible(visible))

    def network_changed(self, unmetered: bool) -> None:
        self._call(lambda scheduler: scheduler.network_changed(unmetered))

    def stop(self) -> None:
        with self._lock:
            loop = self._loop
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)

    def _call(self, action: Callable[[RefreshScheduler], object]) -> None:
        with self._lock:
            loop, scheduler = self._loop, self._scheduler
        if loop is None or scheduler is None:
            logger.debug("Refresh loop not running, dropping request")
            return
        loop.call_soon_threadsafe(action, scheduler)

    def _on_frame(self, frame: DisplayFrame) -> None:
        self.displayable.emit(frame)

    def _on_outcome(self, cycle: CycleState) -> None:
        outcome = cycle.outcome
        if outcome is CycleOutcome.COMPLETED:
            self.log.emit(f"Цикл {cycle.number}: снимок обновлён ({cycle.grid.tile_count}x{cycle.grid.tile_count} тайлов)")
        elif outcome is CycleOutcome.FAILED:
            self.log.emit(f"Цикл {cycle.number}: ошибка: {cycle.error}")
        elif outcome is CycleOutcome.CANCELLED:
            self.log.emit(f"Цикл {cycle.number}: отменён более новым")
        elif outcome is CycleOutcome.SKIPPED:
            self.log.emit("Пропуск: ждём безлимитную сеть")
        if outcome is not None:
            self.state_changed.emit(outcome.value)
