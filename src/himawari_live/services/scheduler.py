from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Set

import httpx

from ..config import DEFAULT_CONCURRENCY, DESCRIPTOR_URL, TILE_BASE_URL, TILE_WIDTH
from ..errors import CancelledCycle, RefreshError
from ..models import CycleOutcome, CycleState, DisplayFrame, GridSpec, ViewerSettings
from ..utils import grid_for_zoom
from .http import build_http_client
from .pipeline import compose_latest
from .publisher import DisplayPublisher

log = logging.getLogger(__name__)

_WATCHED_SETTINGS = ("zoom", "period_minutes", "wifi_only")


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_OUTCOME_STATES = {
    CycleOutcome.COMPLETED: SchedulerState.COMPLETED,
    CycleOutcome.FAILED: SchedulerState.FAILED,
    CycleOutcome.CANCELLED: SchedulerState.CANCELLED,
    CycleOutcome.SKIPPED: SchedulerState.IDLE,
}


class RefreshScheduler:
    """
    Drives refresh cycles on one asyncio loop.

    Every trigger (timer tick, settings change, visibility regained, manual)
    starts a cycle with its own CycleState token and a frozen GridSpec.
    Starting a cycle cancels the previous token and task; a cancelled cycle
    never places tiles, never publishes and does not re-arm the timer.
    Completed and failed cycles re-arm for one period.
    """

    def __init__(
        self,
        publisher: DisplayPublisher,
        settings: ViewerSettings,
        display_width: int,
        *,
        tile_width: int = TILE_WIDTH,
        descriptor_url: str = DESCRIPTOR_URL,
        tile_base_url: str = TILE_BASE_URL,
        concurrency: int = DEFAULT_CONCURRENCY,
        client_factory: Callable[[int], httpx.AsyncClient] = build_http_client,
        is_unmetered: Optional[Callable[[], bool]] = None,
        on_outcome: Optional[Callable[[CycleState], None]] = None,
    ) -> None:
        self._publisher = publisher
        self._settings = settings
        self._display_width = display_width
        self._tile_width = tile_width
        self._descriptor_url = descriptor_url
        self._tile_base_url = tile_base_url
        self._concurrency = max(1, concurrency)
        self._client_factory = client_factory
        self._is_unmetered = is_unmetered or (lambda: True)
        self._on_outcome = on_outcome
        self._grid = grid_for_zoom(display_width, settings.zoom, tile_width)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._cycle: Optional[CycleState] = None
        self._counter = 0
        self._started = False
        self._visible = True
        self._pending_reason: Optional[str] = None
        self._gated = False
        self._last_started_at: Optional[float] = None
        self.state = SchedulerState.IDLE

    @property
    def grid(self) -> GridSpec:
        return self._grid

    @property
    def settings(self) -> ViewerSettings:
        return self._settings

    @property
    def current_cycle(self) -> Optional[CycleState]:
        return self._cycle

    @property
    def running(self) -> bool:
        return self._cycle is not None and self._cycle.outcome is None

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def next_run_in(self) -> Optional[float]:
        if self._timer is None or self._loop is None:
            return None
        return max(0.0, self._timer.when() - self._loop.time())

    def start(self) -> Optional[CycleState]:
        """Begin the schedule with an immediate cycle. Call from the loop."""
        self._loop = asyncio.get_running_loop()
        self._started = True
        return self.trigger("start")

    async def stop(self) -> None:
        self._started = False
        self._pending_reason = None
        self._disarm()
        self._supersede()
        task = self._task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        self.state = SchedulerState.IDLE

    def trigger(self, reason: str = "manual") -> Optional[CycleState]:
        if not self._started or self._loop is None:
            log.debug("Ignoring %s trigger, scheduler not started", reason)
            return None
        self._disarm()
        self._pending_reason = None
        settings = self._settings

        if settings.wifi_only and not self._is_unmetered():
            log.info("Skipping %s refresh: wifi-only and no unmetered network", reason)
            skipped = CycleState(
                number=0,
                grid=self._grid,
                settings=settings,
                reason=reason,
                outcome=CycleOutcome.SKIPPED,
            )
            self._gated = True
            self._notify(skipped)
            if not self.running:
                self.state = SchedulerState.IDLE
                self._arm(settings.period_seconds)
            return None

        self._gated = False
        self._supersede()
        self._counter += 1
        cycle = CycleState(number=self._counter, grid=self._grid, settings=settings, reason=reason)
        self._cycle = cycle
        self._last_started_at = self._loop.time()
        self.state = SchedulerState.RUNNING
        log.info(
            "Cycle %d started (%s): %dx%d tiles -> %dpx",
            cycle.number,
            reason,
            cycle.grid.tile_count,
            cycle.grid.tile_count,
            cycle.grid.output_pixel_size,
        )
        self._task = self._loop.create_task(self._run_cycle(cycle))
        return cycle

    def apply_settings(self, settings: ViewerSettings) -> Set[str]:
        """
        Take a new configuration snapshot. A zoom change recomputes the grid
        for the next cycle; an in-flight cycle keeps the grid it started with.
        """
        old = self._settings
        changed = {name for name in _WATCHED_SETTINGS if getattr(old, name) != getattr(settings, name)}
        if not changed:
            return changed
        self._settings = settings
        if "zoom" in changed:
            self._grid = grid_for_zoom(self._display_width, settings.zoom, self._tile_width)
            log.info(
                "Zoom %.2f -> %.2f: next cycle uses %dx%d tiles -> %dpx",
                old.zoom,
                settings.zoom,
                self._grid.tile_count,
                self._grid.tile_count,
                self._grid.output_pixel_size,
            )
        if self.running:
            self._pending_reason = "settings"
            log.debug("Settings changed (%s) during a cycle, queued", ", ".join(sorted(changed)))
        else:
            self.trigger("settings")
        return changed

    def set_visible(self, visible: bool) -> None:
        if visible == self._visible:
            return
        self._visible = visible
        if not visible:
            self._disarm()
            return
        if not self._started or self._loop is None or self.running:
            return
        period = self._settings.period_seconds
        if self._last_started_at is None or self._publisher.read() is None:
            self.trigger("visible")
            return
        elapsed = self._loop.time() - self._last_started_at
        if elapsed >= period:
            self.trigger("visible")
        else:
            self._arm(period - elapsed)

    def network_changed(self, unmetered: bool) -> Optional[CycleState]:
        """Run the cycle a wifi-only skip held back once an unmetered network shows up."""
        if not unmetered or not self._gated or self.running:
            return None
        return self.trigger("network")

    async def _run_cycle(self, cycle: CycleState) -> None:
        try:
            frame = await self._refresh(cycle)
            if not self._publisher.publish(frame, cycle):
                raise CancelledCycle(f"Cycle {cycle.number} superseded before publish")
        except asyncio.CancelledError:
            if not cycle.cancelled:
                raise
            self._finish(cycle, CycleOutcome.CANCELLED)
            return
        except CancelledCycle:
            self._finish(cycle, CycleOutcome.CANCELLED)
            return
        except RefreshError as exc:
            log.warning("Cycle %d failed: %s", cycle.number, exc)
            self._finish(cycle, CycleOutcome.FAILED, exc)
        except Exception as exc:  # noqa: BLE001
            log.exception("Cycle %d crashed", cycle.number)
            self._finish(cycle, CycleOutcome.FAILED, exc)
        else:
            log.info("Cycle %d published capture %s", cycle.number, frame.identity)
            self._finish(cycle, CycleOutcome.COMPLETED)
        self._after_cycle(cycle)

    async def _refresh(self, cycle: CycleState) -> DisplayFrame:
        async with self._client_factory(self._concurrency) as client:
            return await compose_latest(
                client,
                cycle.grid,
                cycle,
                descriptor_url=self._descriptor_url,
                tile_base_url=self._tile_base_url,
                concurrency=self._concurrency,
            )

    def _finish(
        self,
        cycle: CycleState,
        outcome: CycleOutcome,
        error: Optional[BaseException] = None,
    ) -> None:
        cycle.outcome = outcome
        cycle.error = error
        if cycle is self._cycle:
            self.state = _OUTCOME_STATES[outcome]
        self._notify(cycle)

    def _after_cycle(self, cycle: CycleState) -> None:
        if cycle is not self._cycle or not self._started:
            return
        if self._pending_reason is not None:
            self.trigger(self._pending_reason)
            return
        self._arm(self._settings.period_seconds)

    def _supersede(self) -> None:
        previous, task = self._cycle, self._task
        if previous is None or previous.outcome is not None:
            return
        previous.cancel()
        log.info("Cycle %d superseded", previous.number)
        if task is not None and not task.done():
            task.cancel()

    def _arm(self, delay: float) -> None:
        self._disarm()
        if not self._visible or not self._started or self._loop is None:
            return
        self._timer = self._loop.call_later(delay, self._on_timer)
        log.debug("Next refresh in %.0fs", delay)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self.trigger("timer")

    def _notify(self, cycle: CycleState) -> None:
        if self._on_outcome is None:
            return
        try:
            self._on_outcome(cycle)
        except Exception:  # noqa: BLE001
            log.exception("Outcome listener failed")
