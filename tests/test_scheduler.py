import asyncio

import pytest

from conftest import TILE, wait_for
from himawari_live.errors import CancelledCycle, FetchError, ParseError
from himawari_live.models import CycleOutcome, CycleState, GridSpec, ViewerSettings
from himawari_live.services.pipeline import compose_latest
from himawari_live.services.publisher import DisplayPublisher
from himawari_live.services.scheduler import RefreshScheduler, SchedulerState

FIRST = "2024-03-01 04:10:00"
SECOND = "2024-03-01 04:20:00"


def make_scheduler(server, publisher, settings=None, **kwargs) -> RefreshScheduler:
    # 10px display with 8px tiles: 2x2 grid at zoom 1, 3x3 at zoom 2
    return RefreshScheduler(
        publisher,
        settings or ViewerSettings(),
        display_width=10,
        tile_width=TILE,
        concurrency=4,
        client_factory=server.client_factory,
        **kwargs,
    )


def test_cycle_publishes_and_rearms(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher)
        cycle = scheduler.start()
        assert scheduler.state is SchedulerState.RUNNING
        assert cycle.grid.tile_count == 2
        await wait_for(lambda: scheduler.state is SchedulerState.COMPLETED)
        assert scheduler.armed
        assert 590 < scheduler.next_run_in() <= 600
        await scheduler.stop()
        assert not scheduler.armed
        return cycle

    cycle = asyncio.run(scenario())
    frame = publisher.read()
    assert frame.cycle_number == cycle.number
    assert frame.image.size == (10, 10)
    assert frame.identity.stamp == "041000"
    assert len(server.tile_requests) == 4
    assert all("/2d/8/2024/03/01/041000_" in url for url in server.tile_requests)


def test_armed_timer_starts_next_cycle(make_server, monkeypatch):
    monkeypatch.setattr(ViewerSettings, "period_seconds", property(lambda self: 0.05))
    server = make_server(FIRST, SECOND)
    publisher = DisplayPublisher()
    outcomes = []

    async def scenario():
        scheduler = make_scheduler(server, publisher, on_outcome=outcomes.append)
        scheduler.start()
        await wait_for(lambda: len(outcomes) >= 2)
        await scheduler.stop()

    asyncio.run(scenario())
    first, second = outcomes[:2]
    assert (first.reason, first.outcome) == ("start", CycleOutcome.COMPLETED)
    assert (second.number, second.reason, second.outcome) == (2, "timer", CycleOutcome.COMPLETED)
    assert publisher.read().identity.stamp == "042000"


def test_new_trigger_discards_in_flight_cycle(make_server):
    server = make_server(FIRST, SECOND)
    server.colors = {"041000": (255, 0, 0), "042000": (0, 0, 255)}
    publisher = DisplayPublisher()
    frames = []
    publisher.subscribe(frames.append)
    outcomes = []

    async def scenario():
        server.gates["041000"] = asyncio.Event()
        scheduler = make_scheduler(server, publisher, on_outcome=outcomes.append)
        first = scheduler.start()
        await wait_for(lambda: bool(server.requests_for("041000")))

        second = scheduler.trigger("manual")
        assert first.cancelled
        await wait_for(lambda: second.outcome is CycleOutcome.COMPLETED)

        # cycle 1's tiles arrive only after cycle 2 already published
        server.gates["041000"].set()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        return first, second

    first, second = asyncio.run(scenario())
    assert first.outcome is CycleOutcome.CANCELLED
    assert [frame.cycle_number for frame in frames] == [second.number]
    frame = publisher.read()
    assert frame.identity.stamp == "042000"
    r, g, b = frame.image.getpixel((5, 5))
    assert r <= 1 and b >= 254
    assert {cycle.outcome for cycle in outcomes} == {CycleOutcome.CANCELLED, CycleOutcome.COMPLETED}


def test_superseded_work_completing_late_never_composes(make_server):
    server = make_server(FIRST)
    grid = GridSpec(tile_count=2, tile_pixel_width=TILE, output_pixel_size=10)
    cycle = CycleState(number=1, grid=grid, settings=ViewerSettings())

    async def scenario():
        server.gates["041000"] = asyncio.Event()
        async with server.client_factory(4) as client:
            task = asyncio.create_task(compose_latest(client, grid, cycle, concurrency=4))
            await wait_for(lambda: len(server.requests_for("041000")) == 4)
            cycle.cancel()
            server.gates["041000"].set()
            await task

    with pytest.raises(CancelledCycle):
        asyncio.run(scenario())


def test_one_failed_tile_leaves_published_frame(make_server):
    server = make_server(FIRST, SECOND)
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher)
        scheduler.start()
        await wait_for(lambda: scheduler.state is SchedulerState.COMPLETED)
        before = publisher.read()

        server.failing = {(1, 0)}
        cycle = scheduler.trigger("manual")
        await wait_for(lambda: cycle.outcome is not None)
        state, armed = scheduler.state, scheduler.armed
        await scheduler.stop()
        return before, cycle, state, armed

    before, cycle, state, armed = asyncio.run(scenario())
    assert cycle.outcome is CycleOutcome.FAILED
    assert isinstance(cycle.error, FetchError)
    assert state is SchedulerState.FAILED
    assert armed
    assert publisher.read() is before


def test_bad_descriptor_fails_without_fetching_tiles(make_server):
    server = make_server("yesterday")
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher)
        cycle = scheduler.start()
        await wait_for(lambda: cycle.outcome is not None)
        armed = scheduler.armed
        await scheduler.stop()
        return cycle, armed

    cycle, armed = asyncio.run(scenario())
    assert cycle.outcome is CycleOutcome.FAILED
    assert isinstance(cycle.error, ParseError)
    assert armed
    assert server.tile_requests == []
    assert publisher.read() is None


def test_zoom_change_mid_cycle_applies_to_next_cycle(make_server):
    server = make_server(FIRST, SECOND)
    publisher = DisplayPublisher()
    frames = []
    publisher.subscribe(frames.append)

    async def scenario():
        server.gates["041000"] = asyncio.Event()
        scheduler = make_scheduler(server, publisher)
        first = scheduler.start()
        await wait_for(lambda: bool(server.requests_for("041000")))

        changed = scheduler.apply_settings(ViewerSettings(zoom=2.0))
        assert changed == {"zoom"}
        assert scheduler.grid.tile_count == 3
        assert scheduler.grid.output_pixel_size == 20
        assert scheduler.current_cycle is first
        assert not first.cancelled

        server.gates["041000"].set()
        await wait_for(lambda: len(frames) == 2)
        await scheduler.stop()

    asyncio.run(scenario())
    old, new = frames
    assert old.grid.tile_count == 2
    assert old.image.size == (10, 10)
    assert old.identity.stamp == "041000"
    assert new.grid.tile_count == 3
    assert new.image.size == (20, 20)
    assert len(server.requests_for("042000")) == 9
    assert all("/3d/8/" in url for url in server.requests_for("042000"))


def test_wifi_only_gates_cycle_entry(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()
    network = {"unmetered": False}
    outcomes = []

    async def scenario():
        scheduler = make_scheduler(
            server,
            publisher,
            ViewerSettings(wifi_only=True),
            is_unmetered=lambda: network["unmetered"],
            on_outcome=outcomes.append,
        )
        assert scheduler.start() is None
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.armed
        assert server.descriptor_calls == 0

        network["unmetered"] = True
        cycle = scheduler.trigger("timer")
        await wait_for(lambda: cycle.outcome is CycleOutcome.COMPLETED)
        await scheduler.stop()

    asyncio.run(scenario())
    assert outcomes[0].outcome is CycleOutcome.SKIPPED
    assert publisher.read() is not None


def test_unmetered_network_lifts_wifi_gate(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()
    network = {"unmetered": False}

    async def scenario():
        scheduler = make_scheduler(
            server,
            publisher,
            ViewerSettings(wifi_only=True),
            is_unmetered=lambda: network["unmetered"],
        )
        assert scheduler.start() is None
        assert scheduler.network_changed(False) is None

        network["unmetered"] = True
        cycle = scheduler.network_changed(True)
        assert cycle.reason == "network"
        await wait_for(lambda: cycle.outcome is CycleOutcome.COMPLETED)
        again = scheduler.network_changed(True)
        await scheduler.stop()
        return again

    assert asyncio.run(scenario()) is None
    assert publisher.read() is not None


def test_network_change_without_skip_does_not_trigger(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher, ViewerSettings(wifi_only=True))
        first = scheduler.start()
        await wait_for(lambda: first.outcome is not None)
        result = scheduler.network_changed(True)
        await scheduler.stop()
        return result

    assert asyncio.run(scenario()) is None


def test_metered_network_allowed_without_wifi_only(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher, is_unmetered=lambda: False)
        cycle = scheduler.start()
        await wait_for(lambda: cycle.outcome is not None)
        await scheduler.stop()
        return cycle

    assert asyncio.run(scenario()).outcome is CycleOutcome.COMPLETED


def test_period_change_sets_next_rearm_delay(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher)
        scheduler.start()
        await wait_for(lambda: scheduler.state is SchedulerState.COMPLETED)
        assert scheduler.next_run_in() > 590

        assert scheduler.apply_settings(ViewerSettings(period_minutes=1)) == {"period_minutes"}
        cycle = scheduler.current_cycle
        assert cycle.number == 2
        await wait_for(lambda: cycle.outcome is CycleOutcome.COMPLETED)
        delay = scheduler.next_run_in()
        await scheduler.stop()
        return delay

    assert 50 < asyncio.run(scenario()) <= 60


def test_unchanged_settings_do_not_trigger(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher)
        first = scheduler.start()
        await wait_for(lambda: first.outcome is not None)
        assert scheduler.apply_settings(ViewerSettings()) == set()
        current = scheduler.current_cycle
        await scheduler.stop()
        return first, current

    first, current = asyncio.run(scenario())
    assert current is first


def test_visibility_pauses_and_resumes_timer(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher)
        scheduler.start()
        await wait_for(lambda: scheduler.state is SchedulerState.COMPLETED)
        calls = server.descriptor_calls

        scheduler.set_visible(False)
        assert not scheduler.armed
        scheduler.set_visible(True)
        assert scheduler.armed
        assert 590 < scheduler.next_run_in() <= 600
        assert server.descriptor_calls == calls
        await scheduler.stop()

    asyncio.run(scenario())


def test_visibility_regained_without_frame_refreshes(make_server):
    server = make_server("garbage")
    publisher = DisplayPublisher()

    async def scenario():
        scheduler = make_scheduler(server, publisher)
        first = scheduler.start()
        await wait_for(lambda: first.outcome is not None)
        scheduler.set_visible(False)
        scheduler.set_visible(True)
        current = scheduler.current_cycle
        await scheduler.stop()
        return first, current

    first, current = asyncio.run(scenario())
    assert current is not first
    assert current.reason == "visible"


def test_stop_cancels_in_flight_cycle(make_server):
    server = make_server(FIRST)
    publisher = DisplayPublisher()

    async def scenario():
        server.gates["041000"] = asyncio.Event()
        scheduler = make_scheduler(server, publisher)
        cycle = scheduler.start()
        await wait_for(lambda: bool(server.requests_for("041000")))
        await scheduler.stop()
        assert scheduler.trigger("manual") is None
        return scheduler, cycle

    scheduler, cycle = asyncio.run(scenario())
    assert cycle.outcome is CycleOutcome.CANCELLED
    assert scheduler.state is SchedulerState.IDLE
    assert not scheduler.armed
    assert publisher.read() is None
